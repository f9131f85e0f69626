"""Data models for the snippet vault."""

import datetime
import os
import threading
from datetime import timezone
from typing import List

from pydantic import BaseModel, Field, field_validator

from snipvault.exceptions import ErrorCode, ValidationError

# Zero value for timestamps missing from a record's metadata block
ZERO_TIME = datetime.datetime(1, 1, 1, tzinfo=timezone.utc)

# Crockford base32 alphabet (no I, L, O, U)
_CROCKFORD_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_RANDOM_BITS = 80
_RANDOM_MAX = (1 << _RANDOM_BITS) - 1
ID_LENGTH = 26


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current time with UTC timezone info attached.
    """
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: datetime.datetime) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    Hand-edited records may carry timestamps without an offset; those are
    assumed to be UTC.

    Args:
        dt_value: A datetime that may or may not have timezone info.

    Returns:
        The same datetime with UTC timezone if it was naive, otherwise unchanged.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


# Monotonic state for generate_id(), shared across threads
_id_lock = threading.Lock()
_last_millis = 0
_last_random = 0


def _encode_crockford(value: int, length: int) -> str:
    chars = []
    for _ in range(length):
        chars.append(_CROCKFORD_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


def generate_id() -> str:
    """Generate a lexicographically sortable, time-ordered snippet ID.

    Returns:
        A 26-character Crockford base32 string made of a 48-bit millisecond
        timestamp followed by 80 random bits.

    IDs generated in the same millisecond reuse the timestamp and increment
    the random component, so IDs from one process always sort in creation
    order.
    """
    global _last_millis, _last_random

    with _id_lock:
        millis = int(utc_now().timestamp() * 1000)
        if millis <= _last_millis:
            # Same (or skewed-back) millisecond: keep ordering monotonic
            millis = _last_millis
            if _last_random >= _RANDOM_MAX:
                millis += 1
                _last_random = 0
            else:
                _last_random += 1
        else:
            _last_random = int.from_bytes(os.urandom(_RANDOM_BITS // 8), "big")
        _last_millis = millis

        value = (millis << _RANDOM_BITS) | _last_random

    return _encode_crockford(value, ID_LENGTH)


class Snippet(BaseModel):
    """A stored snippet: metadata plus a free-text body.

    Instances are plain values. Required fields are not enforced at
    construction so that records with missing metadata can still be decoded;
    call ``ensure_valid()`` before persisting or indexing.
    """

    id: str = Field(default="", description="Opaque unique ID, never changed by edits")
    title: str = Field(default="", description="Human-readable label")
    tags: List[str] = Field(default_factory=list, description="Tags, order preserved")
    language: str = Field(default="", description="Optional language label")
    is_favorite: bool = Field(default=False, description="Favorite flag")
    created_at: datetime.datetime = Field(
        default=ZERO_TIME, description="When the snippet was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default=ZERO_TIME, description="When the snippet was last saved (UTC)"
    )
    body: str = Field(default="", description="Payload text, stored after the metadata")

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamp(cls, v: datetime.datetime) -> datetime.datetime:
        """Attach UTC to naive timestamps."""
        return ensure_timezone_aware(v)

    def ensure_valid(self) -> None:
        """Check the fields required for persisting or indexing.

        Raises:
            ValidationError: If ``id`` or ``title`` is empty.
        """
        if not self.id:
            raise ValidationError(
                "Snippet ID cannot be empty",
                field="id",
                code=ErrorCode.SNIPPET_ID_REQUIRED,
            )
        if not self.title:
            raise ValidationError(
                "Snippet title cannot be empty",
                field="title",
                code=ErrorCode.SNIPPET_TITLE_REQUIRED,
            )

    def touch(self) -> None:
        """Refresh ``updated_at``; never earlier than ``created_at``."""
        self.updated_at = max(utc_now(), self.created_at)

    def clone(self) -> "Snippet":
        """Return an independent deep copy."""
        return self.model_copy(deep=True)


def new_snippet(title: str, body: str = "") -> Snippet:
    """Create a fresh snippet with a generated ID and matching timestamps."""
    now = utc_now()
    return Snippet(
        id=generate_id(),
        title=title,
        tags=[],
        language="",
        is_favorite=False,
        created_at=now,
        updated_at=now,
        body=body,
    )
