"""Record encoding and decoding for snippets.

A record is the on-disk text of one snippet: a YAML metadata block
between ``---`` markers, a blank separator line, then the body verbatim.
Decoding is strict: the metadata block maps onto a fixed, typed schema
and anything unknown or mistyped is rejected rather than ignored.
"""
import datetime
import logging
from typing import Any, Dict, List, Union

import yaml
from frontmatter.default_handlers import YAMLHandler
from pydantic import BaseModel, StrictBool, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError

from snipvault.exceptions import (
    MalformedRecordError,
    MetadataParseError,
    UnterminatedRecordError,
)
from snipvault.models.schema import ZERO_TIME, Snippet, ensure_timezone_aware

logger = logging.getLogger(__name__)

METADATA_DELIMITER = "---"

# Serialization order of the metadata block
METADATA_FIELDS = (
    "id",
    "title",
    "tags",
    "language",
    "is_favorite",
    "created_at",
    "updated_at",
)


class RecordMetadata(BaseModel):
    """Typed view of a record's metadata block.

    YAML ``null`` (or an absent key) reads as the field's zero value.
    """

    id: StrictStr = ""
    title: StrictStr = ""
    tags: List[StrictStr] = []
    language: StrictStr = ""
    is_favorite: StrictBool = False
    created_at: datetime.datetime = ZERO_TIME
    updated_at: datetime.datetime = ZERO_TIME

    model_config = {"extra": "forbid"}

    @field_validator("*", mode="before")
    @classmethod
    def null_as_zero(cls, v: Any, info) -> Any:
        """Map YAML nulls onto zero values."""
        if v is None:
            return cls.model_fields[info.field_name].get_default(
                call_default_factory=True
            )
        return v

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def timestamp_type(cls, v: Any) -> Any:
        """Accept RFC 3339 strings and YAML timestamps only."""
        if v is None or isinstance(v, (str, datetime.datetime)):
            return v
        raise ValueError("expected an RFC 3339 timestamp")

    @field_validator("created_at", "updated_at")
    @classmethod
    def timestamp_utc(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)


class RecordCodec:
    """Converts snippets to and from their on-disk record text."""

    def __init__(self) -> None:
        self._handler = YAMLHandler()

    def decode(self, content: Union[str, bytes]) -> Snippet:
        """Parse a record into a snippet.

        Args:
            content: Record text, or raw file bytes (UTF-8).

        Returns:
            The decoded snippet. It is not validated: required fields may be
            empty if the metadata block omits them.

        Raises:
            MalformedRecordError: If the record is empty, not UTF-8, or does
                not start with the metadata marker.
            UnterminatedRecordError: If the metadata block is never closed.
            MetadataParseError: If the metadata block is not valid YAML or
                does not match the metadata schema.
        """
        if isinstance(content, bytes):
            try:
                content = content.decode("utf-8-sig")
            except UnicodeDecodeError as e:
                raise MalformedRecordError(f"Record is not valid UTF-8: {e}") from e

        lines = content.split("\n")
        if not content or not self._is_delimiter(lines[0]):
            raise MalformedRecordError()

        end_index = None
        for i in range(1, len(lines)):
            if self._is_delimiter(lines[i]):
                end_index = i
                break
        if end_index is None:
            raise UnterminatedRecordError()

        metadata = self._load_metadata("\n".join(lines[1:end_index]))

        body = "\n".join(lines[end_index + 1:])
        # Drop the single blank separator line after the end marker
        if body.startswith("\n"):
            body = body[1:]

        return Snippet(
            id=metadata.id,
            title=metadata.title,
            tags=list(metadata.tags),
            language=metadata.language,
            is_favorite=metadata.is_favorite,
            created_at=metadata.created_at,
            updated_at=metadata.updated_at,
            body=body,
        )

    def encode(self, snippet: Snippet) -> str:
        """Serialize a snippet into record text.

        Raises:
            ValidationError: If the snippet has an empty id or title.
        """
        snippet.ensure_valid()

        metadata: Dict[str, Any] = {
            "id": snippet.id,
            "title": snippet.title,
            "tags": list(snippet.tags),
            "language": snippet.language,
            "is_favorite": snippet.is_favorite,
            "created_at": snippet.created_at.isoformat(),
            "updated_at": snippet.updated_at.isoformat(),
        }
        block = self._handler.export(metadata, sort_keys=False)

        return "\n".join(
            [METADATA_DELIMITER, block, METADATA_DELIMITER, "", snippet.body]
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _is_delimiter(line: str) -> bool:
        # Leading whitespace is significant: indented "---" belongs to YAML
        return line.rstrip() == METADATA_DELIMITER

    def _load_metadata(self, block: str) -> RecordMetadata:
        try:
            raw = self._handler.load(block)
        except yaml.YAMLError as e:
            raise MetadataParseError(
                f"Metadata block is not valid YAML: {e}", original_error=e
            ) from e

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise MetadataParseError(
                f"Metadata block must be a mapping, got {type(raw).__name__}"
            )

        try:
            return RecordMetadata.model_validate(raw)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or None
            raise MetadataParseError(
                f"Invalid metadata field '{field}': {first.get('msg')}",
                field=field,
                original_error=e,
            ) from e
