"""User identifier validation."""
from __future__ import annotations

import re
import uuid

from userdir.core.exceptions import InvalidIdentifier

_UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)


def is_identifier(candidate: object) -> bool:
    return isinstance(candidate, str) and _UUID_PATTERN.fullmatch(candidate) is not None


def validate_identifier(candidate: object) -> str:
    """Return the lower-cased ``candidate`` if it is a canonical UUID string.

    Anything else, including braced, URN and unhyphenated forms, raises
    InvalidIdentifier.
    """

    if not is_identifier(candidate):
        raise InvalidIdentifier()
    return candidate.lower()  # type: ignore[union-attr]


def new_identifier() -> str:
    return str(uuid.uuid4())
