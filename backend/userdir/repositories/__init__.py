"""Persistence boundary for user records."""
from .users import SqlUserRepository, UserRepository

__all__ = ["SqlUserRepository", "UserRepository"]
