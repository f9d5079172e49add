"""Route modules for the user directory."""
from . import rpc

__all__ = ["rpc"]
