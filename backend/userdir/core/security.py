"""Security helpers for password hashing and caller identity signing."""
from __future__ import annotations

from typing import Any

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from passlib.context import CryptContext

from .config import get_settings


_password_context = CryptContext(schemes=["argon2"], deprecated="auto")


class PasswordHasher:
    """Hash user passwords using Argon2id."""

    @staticmethod
    def hash(password: str) -> str:
        return _password_context.hash(password)


class CallerSigner:
    """Sign and unsign the caller identity forwarded by the gateway."""

    def __init__(self, secret_key: str | None = None, salt: str = "userdir-caller") -> None:
        settings = get_settings()
        self._serializer = URLSafeTimedSerializer(secret_key or settings.secret_key, salt=salt)

    def dumps(self, data: dict[str, Any]) -> str:
        return self._serializer.dumps(data)

    def loads(self, token: str, max_age: int | None = None) -> dict[str, Any]:
        try:
            return self._serializer.loads(token, max_age=max_age)
        except (BadSignature, SignatureExpired) as exc:
            raise ValueError("Invalid or expired caller token") from exc
