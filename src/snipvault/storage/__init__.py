"""Storage layer for the snippet vault."""

from snipvault.storage.file_store import FileStore
from snipvault.storage.record_codec import RecordCodec
from snipvault.storage.rwlock import ReadWriteLock
from snipvault.storage.snippet_store import LoadWarning, SnippetStore

__all__ = [
    "FileStore",
    "LoadWarning",
    "ReadWriteLock",
    "RecordCodec",
    "SnippetStore",
]
