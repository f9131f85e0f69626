"""Common test fixtures for the snippet vault."""

import datetime
import logging
from datetime import timezone
from pathlib import Path

import pytest

from snipvault.models.schema import Snippet
from snipvault.observability import ROOT_LOGGER_NAME, metrics
from snipvault.services.snippet_service import SnippetService
from snipvault.storage.file_store import FileStore
from snipvault.storage.record_codec import RecordCodec
from snipvault.storage.snippet_store import SnippetStore

FIXED_TIME = datetime.datetime(2024, 5, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)


@pytest.fixture
def data_dir(tmp_path):
    """Snippets directory (not created yet, the store creates it)."""
    return tmp_path / "snippets"


@pytest.fixture
def file_store(data_dir):
    return FileStore(data_dir)


@pytest.fixture
def codec():
    return RecordCodec()


@pytest.fixture
def store(file_store):
    """A loaded store over an empty directory."""
    repository = SnippetStore(file_store=file_store)
    repository.load_all()
    yield repository


@pytest.fixture
def snippet_service(store):
    yield SnippetService(store=store, load=False)


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def make_snippet():
    """Factory for valid snippets with fixed timestamps."""

    def _make(id="snip-1", title="Test Snippet", **kwargs) -> Snippet:
        kwargs.setdefault("created_at", FIXED_TIME)
        kwargs.setdefault("updated_at", FIXED_TIME)
        return Snippet(id=id, title=title, **kwargs)

    return _make


@pytest.fixture
def write_record(data_dir):
    """Write raw record text to a file under the snippets directory."""

    def _write(name: str, content: str) -> Path:
        path = data_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def restore_logging():
    """Remove the handlers configure_logging() installs."""
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    level = root_logger.level
    yield root_logger
    for handler in list(root_logger.handlers):
        if getattr(handler, "_snipvault_handler", False):
            root_logger.removeHandler(handler)
            handler.close()
    root_logger.setLevel(level)
