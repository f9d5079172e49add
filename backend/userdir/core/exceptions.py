"""Error taxonomy for the user directory.

Every failure an operation can report is a subclass of
:class:`DirectoryError`. Each class carries a stable ``kind`` string, the
HTTP-like ``status`` reported to the caller, and whether the failure is
transient (worth retrying by the caller) or not.
"""
from __future__ import annotations

from typing import Any


class DirectoryError(Exception):
    """Base exception for all user directory errors."""

    kind = "DirectoryError"
    status = 500
    transient = False
    default_message = "User directory error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        """Serialize the error for the message transport."""

        return {
            "status": self.status,
            "kind": self.kind,
            "message": self.message,
            "transient": self.transient,
        }


class InvalidIdentifier(DirectoryError):
    """Raised when a user id is not a well-formed UUID."""

    kind = "InvalidIdentifier"
    status = 400
    default_message = "Invalid user ID"


class InvalidPayload(DirectoryError):
    """Raised when a message payload fails validation."""

    kind = "InvalidPayload"
    status = 400
    default_message = "Invalid payload"


class Forbidden(DirectoryError):
    """Raised when the caller is not allowed to perform an operation."""

    kind = "Forbidden"
    status = 403
    default_message = "Operation not permitted"


class NotFound(DirectoryError):
    """Raised when a user record cannot be found."""

    kind = "NotFound"
    status = 404
    default_message = "User not found"


class DuplicateKey(DirectoryError):
    """Raised when a username or email is already taken."""

    kind = "DuplicateKey"
    status = 409
    default_message = "User already exists"

    def __init__(self, field: str | None = None, message: str | None = None):
        self.field = field
        if message is None and field:
            message = f"A user with this {field} already exists"
        super().__init__(message)


class AlreadyRemoved(DirectoryError):
    """Raised when removing a record that is already removed."""

    kind = "AlreadyRemoved"
    status = 409
    default_message = "User is already removed"


class NotRemoved(DirectoryError):
    """Raised when restoring a record that was never removed."""

    kind = "NotRemoved"
    status = 409
    default_message = "User is not removed"


class StorageUnavailable(DirectoryError):
    """Raised when the backing store cannot serve a request."""

    kind = "StorageUnavailable"
    status = 503
    transient = True
    default_message = "User storage is unavailable"


__all__ = [
    "AlreadyRemoved",
    "DirectoryError",
    "DuplicateKey",
    "Forbidden",
    "InvalidIdentifier",
    "InvalidPayload",
    "NotFound",
    "NotRemoved",
    "StorageUnavailable",
]
