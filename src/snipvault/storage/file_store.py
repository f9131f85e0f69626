"""Filesystem access for snippet record files.

A thin facade scoped to one root directory. It never interprets file
contents and never recovers from errors: every failure is raised to the
caller as a typed exception.
"""
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Union

from snipvault.exceptions import ErrorCode, SnippetNotFoundError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".md"


class FileStore:
    """Lists, reads, writes and deletes record files under a root directory."""

    def __init__(
        self, root: Union[str, Path], extension: str = DEFAULT_EXTENSION
    ):
        """Initialize the file store.

        Args:
            root: Directory holding the record files. Created (with parents)
                on first use if it does not exist.
            extension: Record file extension, matched case-insensitively.
        """
        self.root = Path(root)
        if not extension.startswith("."):
            extension = f".{extension}"
        self.extension = extension
        self._root_ready = False

    def ensure_root(self) -> Path:
        """Create the root directory if needed and return it."""
        if not self._root_ready:
            try:
                self.root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(
                    f"Failed to create snippets directory {self.root}",
                    operation="mkdir",
                    path=str(self.root),
                    code=ErrorCode.STORAGE_WRITE_FAILED,
                    original_error=e,
                ) from e
            self._root_ready = True
        return self.root

    def path_for(self, filename: str) -> Path:
        """Return the path a record named ``filename`` lives at."""
        return self.ensure_root() / filename

    def list_files(self) -> List[Path]:
        """Recursively list every record file below the root.

        Order is unspecified; callers sort if they need determinism.
        """
        root = self.ensure_root()
        suffix = self.extension.lower()
        files: List[Path] = []

        def _raise(err: OSError) -> None:
            raise err

        try:
            for dirpath, _dirnames, filenames in os.walk(root, onerror=_raise):
                for name in filenames:
                    if name.lower().endswith(suffix):
                        files.append(Path(dirpath) / name)
        except OSError as e:
            raise StorageError(
                "Failed to list snippet files",
                operation="list",
                path=str(root),
                code=ErrorCode.STORAGE_LIST_FAILED,
                original_error=e,
            ) from e
        return files

    def read(self, path: Union[str, Path]) -> bytes:
        """Read the raw bytes of a record file.

        Raises:
            SnippetNotFoundError: If the file no longer exists.
            StorageError: For any other filesystem failure.
        """
        path = Path(path)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise SnippetNotFoundError(
                message=f"Snippet file {path.name} not found",
                path=str(path),
                code=ErrorCode.SNIPPET_FILE_MISSING,
            ) from e
        except OSError as e:
            raise StorageError(
                f"Failed to read {path.name}",
                operation="read",
                path=str(path),
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e

    def write(self, path: Union[str, Path], data: Union[str, bytes]) -> None:
        """Create or overwrite a record file atomically.

        Data goes to a temporary file in the same directory which is then
        renamed over the target, so readers never see a partial file.

        Raises:
            StorageError: If the file cannot be written.
        """
        path = Path(path)
        if isinstance(data, str):
            data = data.encode("utf-8")

        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
            )
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StorageError(
                f"Failed to write {path.name}",
                operation="write",
                path=str(path),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError as cleanup_err:
                    logger.warning(
                        f"Failed to remove temporary file {tmp_name}: {cleanup_err}"
                    )

    def delete(self, path: Union[str, Path]) -> None:
        """Delete a record file.

        Raises:
            SnippetNotFoundError: If the file does not exist.
            StorageError: For any other filesystem failure.
        """
        path = Path(path)
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise SnippetNotFoundError(
                message=f"Snippet file {path.name} not found",
                path=str(path),
                code=ErrorCode.SNIPPET_FILE_MISSING,
            ) from e
        except OSError as e:
            raise StorageError(
                f"Failed to delete {path.name}",
                operation="delete",
                path=str(path),
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e

    def exists(self, path: Union[str, Path]) -> bool:
        """Whether a file exists at ``path``.

        Raises:
            StorageError: If the path cannot be checked (for example a name
                longer than the filesystem allows).
        """
        path = Path(path)
        try:
            os.stat(path)
        except (FileNotFoundError, NotADirectoryError):
            return False
        except OSError as e:
            raise StorageError(
                f"Failed to check {path.name}",
                operation="stat",
                path=str(path),
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e
        return True
