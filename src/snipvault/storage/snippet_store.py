"""The snippet store: in-memory index kept consistent with record files.

The filesystem is the source of truth. ``load_all()`` rebuilds the index
from disk; ``save()`` and ``delete()`` change disk first and only then
touch the index, so an error at any step leaves the index as it was.
All index access goes through one reader/writer lock and callers only
ever receive copies of indexed snippets.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from snipvault.exceptions import (
    ErrorCode,
    RecordError,
    SnipVaultError,
    SnippetNotFoundError,
    StorageError,
    ValidationError,
)
from snipvault.models.schema import ZERO_TIME, Snippet
from snipvault.services.search_service import (
    SearchEngine,
    SearchOptions,
    SearchResult,
)
from snipvault.storage.file_store import DEFAULT_EXTENSION, FileStore
from snipvault.storage.record_codec import RecordCodec
from snipvault.storage.rwlock import ReadWriteLock
from snipvault.utils import build_filename

logger = logging.getLogger(__name__)

# Upper bound on "_<n>" suffixes tried when a filename is taken
_MAX_FILENAME_SUFFIX = 1000


@dataclass(frozen=True)
class LoadWarning:
    """A record file skipped during ``load_all()``."""

    path: Path
    reason: str


class SnippetStore:
    """Authoritative in-memory index of snippets backed by record files."""

    def __init__(
        self,
        data_dir: Optional[Union[str, Path]] = None,
        file_store: Optional[FileStore] = None,
        codec: Optional[RecordCodec] = None,
        search_engine: Optional[SearchEngine] = None,
        extension: Optional[str] = None,
    ):
        """Initialize the store. No disk access happens until first use.

        Args:
            data_dir: Directory holding the record files. If None (and no
                file_store is given), uses the configured data directory.
            file_store: Pre-built file store; overrides data_dir/extension.
            codec: Record codec. Created with defaults if None.
            search_engine: Search engine. Created with defaults if None.
            extension: Record file extension. If None, uses config.
        """
        if file_store is None:
            from snipvault.config import config

            root = Path(data_dir) if data_dir else config.get_data_dir()
            file_store = FileStore(
                root, extension=extension or config.file_extension or DEFAULT_EXTENSION
            )
        self.file_store = file_store
        self.codec = codec or RecordCodec()
        self.search_engine = search_engine or SearchEngine()

        self._lock = ReadWriteLock()
        self._snippets: Dict[str, Snippet] = {}
        # id -> record file, kept in step with _snippets
        self._paths: Dict[str, Path] = {}
        self._load_warnings: List[LoadWarning] = []
        self._loaded = False

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @property
    def is_loaded(self) -> bool:
        """Whether ``load_all()`` has completed at least once."""
        with self._lock.read_locked():
            return self._loaded

    @property
    def load_warnings(self) -> List[LoadWarning]:
        """Files skipped by the most recent ``load_all()``."""
        with self._lock.read_locked():
            return list(self._load_warnings)

    def load_all(self) -> int:
        """Rebuild the index from every record file on disk.

        Files that cannot be read, decoded or validated are skipped and
        recorded in ``load_warnings``; they never abort the load. The old
        index is replaced in one step once the new one is complete.

        Returns:
            Number of snippets indexed.

        Raises:
            StorageError: If the data directory cannot be listed. The
                previous index is kept in that case.
        """
        with self._lock.write_locked():
            files = sorted(self.file_store.list_files())

            snippets: Dict[str, Snippet] = {}
            paths: Dict[str, Path] = {}
            warnings: List[LoadWarning] = []

            for file_path in files:
                try:
                    snippet = self.codec.decode(self.file_store.read(file_path))
                    snippet.ensure_valid()
                except (StorageError, SnippetNotFoundError) as e:
                    logger.warning(f"Cannot read file {file_path.name}: {e}")
                    warnings.append(LoadWarning(file_path, str(e)))
                    continue
                except (RecordError, ValidationError) as e:
                    logger.warning(f"Invalid snippet format in {file_path.name}: {e}")
                    warnings.append(LoadWarning(file_path, str(e)))
                    continue

                existing = snippets.get(snippet.id)
                if existing is not None:
                    # Later updated_at wins; equal timestamps go to the later path
                    if snippet.updated_at < existing.updated_at:
                        loser = file_path
                    else:
                        loser = paths[snippet.id]
                        snippets[snippet.id] = snippet
                        paths[snippet.id] = file_path
                    reason = f"Duplicate snippet ID '{snippet.id}', superseded"
                    logger.warning(f"{reason}: {loser.name}")
                    warnings.append(LoadWarning(loser, reason))
                    continue

                snippets[snippet.id] = snippet
                paths[snippet.id] = file_path

            if warnings:
                names = [w.path.name for w in warnings]
                logger.warning(
                    f"Skipped {len(warnings)} files: "
                    f"{names[:5]}{'...' if len(names) > 5 else ''}"
                )

            self._snippets = snippets
            self._paths = paths
            self._load_warnings = warnings
            self._loaded = True

            logger.info(
                f"Loaded {len(snippets)} snippets from {len(files)} files "
                f"in {self.file_store.root}"
            )
            return len(snippets)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, snippet: Snippet) -> Snippet:
        """Validate, stamp, write and index a snippet (upsert by id).

        The record is written under a fresh ``<title>_<timestamp>`` filename.
        When the id was already stored under another file, that file is
        removed after the new one is written, so each id keeps exactly one
        record on disk.

        On success the caller's ``updated_at`` is refreshed too (and
        ``created_at`` if it was unset).

        Returns:
            A copy of the snippet as stored.

        Raises:
            ValidationError: If id or title is empty. Nothing is written.
            StorageError: If the record cannot be written. The index is
                left unchanged.
        """
        snippet.ensure_valid()
        with self._lock.write_locked():
            saved = self._write_locked(snippet.clone())

        snippet.created_at = saved.created_at
        snippet.updated_at = saved.updated_at
        return saved

    def update(self, snippet: Snippet) -> Snippet:
        """Replace an indexed snippet, keeping its stored ``created_at``.

        The existence check and the write happen under one write lock, so
        a concurrent ``delete()`` cannot be undone by a racing update.

        Returns:
            A copy of the snippet as stored.

        Raises:
            SnippetNotFoundError: If the id is not indexed. Nothing is written.
            ValidationError: If id or title is empty.
            StorageError: If the record cannot be written.
        """
        snippet.ensure_valid()
        with self._lock.write_locked():
            existing = self._snippets.get(snippet.id)
            if existing is None:
                raise SnippetNotFoundError(snippet.id)
            staged = snippet.clone()
            staged.created_at = existing.created_at
            return self._write_locked(staged)

    def delete(self, snippet_id: str) -> None:
        """Delete a snippet's record file(s) and its index entry.

        Every record file is decoded to find the ones carrying this id;
        filenames are never trusted as keys.

        Raises:
            SnippetNotFoundError: If the id is not indexed, or no record on
                disk carries it (index/disk drift). The index is unchanged.
            StorageError: If a matching file cannot be deleted.
        """
        with self._lock.write_locked():
            if snippet_id not in self._snippets:
                raise SnippetNotFoundError(snippet_id)

            matches = self._find_files_for(snippet_id)
            if not matches:
                logger.warning(
                    f"Snippet {snippet_id} is indexed but no record file carries it"
                )
                raise SnippetNotFoundError(
                    snippet_id,
                    message=f"No record file found for snippet '{snippet_id}'",
                    code=ErrorCode.SNIPPET_FILE_MISSING,
                )

            deleted = 0
            try:
                for file_path in matches:
                    try:
                        self.file_store.delete(file_path)
                    except SnippetNotFoundError:
                        # Removed concurrently by something outside the store
                        logger.debug(f"Record {file_path.name} already gone")
                    deleted += 1
            except SnipVaultError:
                if deleted:
                    # Part of the snippet is already gone from disk
                    self._snippets.pop(snippet_id, None)
                    self._paths.pop(snippet_id, None)
                raise

            del self._snippets[snippet_id]
            self._paths.pop(snippet_id, None)
            logger.debug(f"Deleted snippet {snippet_id} ({deleted} files)")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, snippet_id: str) -> Snippet:
        """Return a copy of the indexed snippet.

        Raises:
            SnippetNotFoundError: If the id is not indexed.
        """
        with self._lock.read_locked():
            snippet = self._snippets.get(snippet_id)
            if snippet is None:
                raise SnippetNotFoundError(snippet_id)
            return snippet.clone()

    def get_all(self) -> List[Snippet]:
        """Return copies of every indexed snippet, in no particular order."""
        with self._lock.read_locked():
            return [s.clone() for s in self._snippets.values()]

    def count(self) -> int:
        with self._lock.read_locked():
            return len(self._snippets)

    def __contains__(self, snippet_id: object) -> bool:
        with self._lock.read_locked():
            return snippet_id in self._snippets

    def search(self, query: str) -> List[SearchResult]:
        """Ranked search by query only."""
        return self.search_with_filters(SearchOptions(query=query))

    def search_with_filters(
        self, options: Optional[SearchOptions] = None
    ) -> List[SearchResult]:
        """Ranked search with optional tag (AND) and language filters."""
        with self._lock.read_locked():
            return self.search_engine.search(self._snippets.values(), options)

    # ------------------------------------------------------------------
    # Private helpers (caller holds the write lock)
    # ------------------------------------------------------------------

    def _write_locked(self, staged: Snippet) -> Snippet:
        """Stamp, write and index ``staged``; returns a copy of it."""
        staged.touch()
        if staged.created_at == ZERO_TIME:
            staged.created_at = staged.updated_at

        content = self.codec.encode(staged)

        old_path = self._paths.get(staged.id)
        file_path = self._allocate_path(staged, old_path)

        self.file_store.write(file_path, content)

        if old_path is not None and old_path != file_path:
            self._remove_superseded(staged.id, old_path, file_path)

        self._snippets[staged.id] = staged
        self._paths[staged.id] = file_path
        logger.debug(f"Saved snippet {staged.id} to {file_path.name}")
        return staged.clone()

    def _allocate_path(self, snippet: Snippet, own_path: Optional[Path]) -> Path:
        """Pick a record path, adding ``_<n>`` if another file has the name."""
        filename = build_filename(
            snippet.title, snippet.updated_at, self.file_store.extension
        )
        candidate = self.file_store.path_for(filename)
        if candidate == own_path or not self.file_store.exists(candidate):
            return candidate

        stem = filename[: -len(self.file_store.extension)]
        for n in range(1, _MAX_FILENAME_SUFFIX):
            candidate = self.file_store.path_for(
                f"{stem}_{n}{self.file_store.extension}"
            )
            if candidate == own_path or not self.file_store.exists(candidate):
                return candidate
        raise StorageError(
            f"No free filename for snippet {snippet.id}",
            operation="write",
            path=filename,
            code=ErrorCode.STORAGE_WRITE_FAILED,
        )

    def _remove_superseded(
        self, snippet_id: str, old_path: Path, new_path: Path
    ) -> None:
        """Delete the previous record of an edited snippet.

        If that fails the new record is removed again so disk still holds
        exactly the previous version.
        """
        try:
            self.file_store.delete(old_path)
        except SnippetNotFoundError:
            logger.debug(f"Previous record {old_path.name} already gone")
        except StorageError:
            logger.error(
                f"Failed to remove previous record {old_path.name} for "
                f"snippet {snippet_id}, rolling back write"
            )
            try:
                self.file_store.delete(new_path)
            except SnipVaultError as cleanup_err:
                logger.error(
                    f"Rollback failed, {new_path.name} left on disk: {cleanup_err}"
                )
            raise

    def _find_files_for(self, snippet_id: str) -> List[Path]:
        matches: List[Path] = []
        for file_path in sorted(self.file_store.list_files()):
            try:
                decoded = self.codec.decode(self.file_store.read(file_path))
            except (StorageError, SnippetNotFoundError, RecordError) as e:
                logger.debug(f"Skipping {file_path.name} while locating {snippet_id}: {e}")
                continue
            if decoded.id == snippet_id:
                matches.append(file_path)
        return matches
