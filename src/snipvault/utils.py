"""Utility functions for the snippet vault."""
import datetime

# Characters that are unsafe in filenames on at least one common filesystem
_UNSAFE_FILENAME_CHARS = '/\\:*?"<>| '

FILENAME_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

# Most filesystems cap a single name at 255 bytes. The title part is kept
# well below that so the timestamp, a "_<n>" collision suffix, the
# extension and the ".<name>.XXXXXXXX.tmp" form used for atomic writes
# all still fit.
MAX_TITLE_BYTES = 180


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Cut text to at most ``max_bytes`` of UTF-8 without splitting a character."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


def sanitize_filename(
    text: str, max_length: int = 100, max_bytes: int = MAX_TITLE_BYTES
) -> str:
    """Make text safe to use as part of a filename.

    Every filesystem-unsafe character (``/ \\ : * ? " < > |``, spaces and
    control characters) is replaced with an underscore. The result is
    truncated to ``max_length`` characters and then to ``max_bytes`` bytes
    of UTF-8, so multi-byte titles cannot overflow the filename limit.

    Examples:
        "Go: HTTP server" -> "Go__HTTP_server"
        "a/b\\\\c" -> "a_b_c"

    Args:
        text: The text to sanitize.
        max_length: Maximum number of characters returned.
        max_bytes: Maximum UTF-8 size of the returned string.

    Returns:
        Filename-safe string (empty if text is empty).
    """
    if not text:
        return ""

    sanitized = "".join(
        "_" if c in _UNSAFE_FILENAME_CHARS or ord(c) < 32 or ord(c) == 127 else c
        for c in text
    )
    return truncate_utf8(sanitized[:max_length], max_bytes)


def build_filename(
    title: str, timestamp: datetime.datetime, extension: str = ".md"
) -> str:
    """Build a record filename ``<sanitized-title>_<YYYYMMDD_HHMMSS><ext>``.

    The filename is informational only and never used as an identity key.
    """
    if not extension.startswith("."):
        extension = f".{extension}"
    stamp = timestamp.strftime(FILENAME_TIMESTAMP_FORMAT)
    return f"{sanitize_filename(title)}_{stamp}{extension}"
