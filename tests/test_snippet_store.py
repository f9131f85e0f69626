# tests/test_snippet_store.py
"""Tests for the snippet store: index and disk kept in step."""
import datetime
from datetime import timezone

import pytest

from snipvault.exceptions import (
    ErrorCode,
    SnippetNotFoundError,
    StorageError,
    ValidationError,
)
from snipvault.models.schema import ZERO_TIME, Snippet, new_snippet
from snipvault.storage.snippet_store import SnippetStore


def _record(snippet_id, title, updated_at="2024-01-01T00:00:00+00:00", body=""):
    return (
        "---\n"
        f"id: {snippet_id}\n"
        f"title: {title}\n"
        "created_at: '2024-01-01T00:00:00+00:00'\n"
        f"updated_at: '{updated_at}'\n"
        "---\n"
        "\n"
        f"{body}"
    )


def _files(data_dir):
    return sorted(p for p in data_dir.rglob("*.md"))


class TestLoadAll:
    """Tests for rebuilding the index from disk."""

    def test_empty_directory(self, file_store):
        store = SnippetStore(file_store=file_store)
        assert not store.is_loaded
        assert store.load_all() == 0
        assert store.is_loaded
        assert store.get_all() == []
        assert store.load_warnings == []

    def test_invalid_files_are_skipped(self, file_store, write_record):
        write_record("good.md", _record("valid-1", "Valid Snippet", body="code"))
        write_record("plain.md", "just some text without metadata")
        write_record("no_id.md", "---\nid: ''\ntitle: Missing id\n---\n")

        store = SnippetStore(file_store=file_store)
        assert store.load_all() == 1

        assert store.get_by_id("valid-1").body == "code"
        skipped = sorted(w.path.name for w in store.load_warnings)
        assert skipped == ["no_id.md", "plain.md"]

    def test_discovers_subdirectories(self, file_store, write_record):
        write_record("top.md", _record("a", "Top"))
        write_record("nested/deep/inner.md", _record("b", "Inner"))
        write_record("nested/readme.txt", "ignored")

        store = SnippetStore(file_store=file_store)
        assert store.load_all() == 2
        assert "b" in store

    def test_duplicate_ids_keep_latest(self, file_store, write_record):
        write_record("a_old.md", _record("dup", "Old", "2024-01-01T00:00:00+00:00"))
        write_record("z_new.md", _record("dup", "New", "2024-06-01T00:00:00+00:00"))
        write_record("m_mid.md", _record("dup", "Mid", "2024-03-01T00:00:00+00:00"))

        store = SnippetStore(file_store=file_store)
        assert store.load_all() == 1
        assert store.get_by_id("dup").title == "New"
        assert len(store.load_warnings) == 2

    def test_reload_reflects_external_changes(self, store, data_dir, write_record):
        saved = store.save(new_snippet("Will vanish"))
        for path in _files(data_dir):
            path.unlink()
        write_record("external.md", _record("ext-1", "External"))

        assert store.load_all() == 1
        assert saved.id not in store
        assert "ext-1" in store

    def test_list_failure_keeps_previous_index(self, store, monkeypatch):
        saved = store.save(new_snippet("Survivor"))

        def _fail():
            raise StorageError("listing failed", operation="list")

        monkeypatch.setattr(store.file_store, "list_files", _fail)
        with pytest.raises(StorageError):
            store.load_all()
        assert store.get_by_id(saved.id).title == "Survivor"

    def test_data_dir_argument(self, data_dir, write_record):
        write_record("one.md", _record("one", "One"))
        store = SnippetStore(data_dir=data_dir, extension=".md")
        assert store.load_all() == 1


class TestSave:
    """Tests for writing snippets."""

    def test_save_writes_named_record(self, store, data_dir):
        snippet = new_snippet("Go: HTTP server", "package main")
        saved = store.save(snippet)

        files = _files(data_dir)
        assert len(files) == 1
        stamp = saved.updated_at.strftime("%Y%m%d_%H%M%S")
        assert files[0].name == f"Go__HTTP_server_{stamp}.md"
        assert store.codec.decode(files[0].read_bytes()) == saved

    def test_save_round_trips_through_reload(self, store, file_store):
        snippet = new_snippet("Round trip", "body\n")
        snippet.tags = ["x", "y"]
        snippet.language = "python"
        saved = store.save(snippet)

        fresh = SnippetStore(file_store=file_store)
        fresh.load_all()
        assert fresh.get_by_id(saved.id) == saved

    @pytest.mark.parametrize(
        "snippet,field",
        [
            (Snippet(id="", title="No id"), "id"),
            (Snippet(id="abc", title=""), "title"),
        ],
    )
    def test_validation_gate(self, store, data_dir, snippet, field):
        with pytest.raises(ValidationError) as exc_info:
            store.save(snippet)
        assert exc_info.value.field == field
        assert _files(data_dir) == []
        assert store.count() == 0

    def test_save_refreshes_caller_timestamps(self, store, make_snippet):
        snippet = make_snippet()
        before = datetime.datetime.now(timezone.utc)
        saved = store.save(snippet)

        assert snippet.updated_at >= before
        assert snippet.updated_at == saved.updated_at
        assert snippet.created_at == saved.created_at

    def test_save_sets_missing_created_at(self, store):
        saved = store.save(Snippet(id="fresh", title="Fresh"))
        assert saved.created_at != ZERO_TIME
        assert saved.created_at == saved.updated_at

    def test_edit_leaves_a_single_file(self, store, data_dir):
        saved = store.save(new_snippet("Before", "v1"))
        saved.title = "After"
        saved.body = "v2"
        store.save(saved)

        files = _files(data_dir)
        assert len(files) == 1
        assert files[0].name.startswith("After_")
        assert store.get_by_id(saved.id).body == "v2"
        assert store.count() == 1

    def test_repeated_save_reuses_own_file(self, store, data_dir):
        saved = store.save(new_snippet("Same", "v1"))
        saved.body = "v2"
        store.save(saved)
        saved.body = "v3"
        store.save(saved)

        files = _files(data_dir)
        assert len(files) == 1
        assert store.codec.decode(files[0].read_bytes()).body == "v3"

    def test_same_title_gets_distinct_files(self, store, data_dir):
        first = store.save(new_snippet("Twin"))
        second = store.save(new_snippet("Twin"))

        assert len(_files(data_dir)) == 2
        assert first.id != second.id
        assert store.count() == 2

    @pytest.mark.parametrize("title", ["测" * 90, "😀" * 100, "é" * 150, "x" * 500])
    def test_long_title_fits_filename_limit(self, store, data_dir, file_store, title):
        saved = store.save(new_snippet(title, body="x"))
        store.save(new_snippet(title, body="y"))

        files = _files(data_dir)
        assert len(files) == 2
        assert all(len(p.name.encode("utf-8")) <= 255 for p in files)

        fresh = SnippetStore(file_store=file_store)
        assert fresh.load_all() == 2
        assert fresh.get_by_id(saved.id).title == title

    def test_write_failure_leaves_index_unchanged(self, store, make_snippet, monkeypatch):
        original = store.save(make_snippet(body="original"))

        def _fail(path, data):
            raise StorageError("disk full", operation="write")

        monkeypatch.setattr(store.file_store, "write", _fail)
        with pytest.raises(StorageError):
            store.save(make_snippet(body="changed"))
        with pytest.raises(StorageError):
            store.save(make_snippet(id="other"))

        assert store.get_by_id(original.id).body == "original"
        assert "other" not in store

    def test_failed_removal_of_old_record_rolls_back(
        self, store, data_dir, monkeypatch
    ):
        saved = store.save(new_snippet("Old title", "v1"))
        old_files = _files(data_dir)

        real_delete = store.file_store.delete

        def _fail_for_old(path):
            if path in old_files:
                raise StorageError("permission denied", operation="delete")
            real_delete(path)

        monkeypatch.setattr(store.file_store, "delete", _fail_for_old)
        saved.title = "New title"
        with pytest.raises(StorageError):
            store.save(saved)

        monkeypatch.undo()
        assert _files(data_dir) == old_files
        assert store.get_by_id(saved.id).title == "Old title"


class TestUpdate:
    """Tests for replacing snippets that must already exist."""

    def test_update_keeps_stored_created_at(self, store, make_snippet):
        saved = store.save(new_snippet("Original", "v1"))

        change = make_snippet(id=saved.id, title="Changed", body="v2")
        updated = store.update(change)

        assert updated.created_at == saved.created_at
        assert updated.title == "Changed"
        assert store.get_by_id(saved.id).body == "v2"

    def test_update_unknown_id_writes_nothing(self, store, data_dir, make_snippet):
        with pytest.raises(SnippetNotFoundError):
            store.update(make_snippet(id="missing"))
        assert _files(data_dir) == []
        assert "missing" not in store

    def test_update_after_delete_does_not_resurrect(self, store, data_dir):
        saved = store.save(new_snippet("Short lived"))
        stale = store.get_by_id(saved.id)
        store.delete(saved.id)

        stale.body = "late edit"
        with pytest.raises(SnippetNotFoundError):
            store.update(stale)

        assert saved.id not in store
        assert _files(data_dir) == []

    def test_update_validates_first(self, store):
        saved = store.save(new_snippet("Valid"))
        saved.title = ""
        with pytest.raises(ValidationError):
            store.update(saved)
        assert store.get_by_id(saved.id).title == "Valid"


class TestDelete:
    """Tests for deleting snippets."""

    def test_delete(self, store, data_dir):
        saved = store.save(new_snippet("Doomed"))
        store.delete(saved.id)

        assert saved.id not in store
        assert _files(data_dir) == []
        with pytest.raises(SnippetNotFoundError):
            store.get_by_id(saved.id)

    def test_delete_unknown_id(self, store):
        with pytest.raises(SnippetNotFoundError) as exc_info:
            store.delete("nope")
        assert exc_info.value.code == ErrorCode.SNIPPET_NOT_FOUND

    def test_delete_when_file_removed_externally(self, store, data_dir):
        saved = store.save(new_snippet("Drifted"))
        for path in _files(data_dir):
            path.unlink()

        with pytest.raises(SnippetNotFoundError) as exc_info:
            store.delete(saved.id)
        assert exc_info.value.code == ErrorCode.SNIPPET_FILE_MISSING
        assert saved.id in store

    def test_delete_removes_every_duplicate(self, file_store, data_dir, write_record):
        write_record("a.md", _record("dup", "One", "2024-01-01T00:00:00+00:00"))
        write_record("b.md", _record("dup", "Two", "2024-02-01T00:00:00+00:00"))
        write_record("c.md", _record("keep", "Keep"))
        store = SnippetStore(file_store=file_store)
        store.load_all()

        store.delete("dup")

        assert [p.name for p in _files(data_dir)] == ["c.md"]
        assert "dup" not in store
        assert "keep" in store

    def test_delete_ignores_filenames(self, file_store, data_dir, write_record):
        write_record("target.md", _record("other", "Other"))
        write_record("misleading.md", _record("target", "Target"))
        store = SnippetStore(file_store=file_store)
        store.load_all()

        store.delete("target")

        assert [p.name for p in _files(data_dir)] == ["target.md"]


class TestReads:
    """Returned snippets are copies and never alias the index."""

    def test_get_by_id_returns_copy(self, store, make_snippet):
        store.save(make_snippet(tags=["a"]))
        copy = store.get_by_id("snip-1")
        copy.title = "Mutated"
        copy.tags.append("b")

        stored = store.get_by_id("snip-1")
        assert stored.title == "Test Snippet"
        assert stored.tags == ["a"]

    def test_save_result_is_a_copy(self, store, make_snippet):
        saved = store.save(make_snippet())
        saved.title = "Mutated"
        assert store.get_by_id("snip-1").title == "Test Snippet"

    def test_get_all_returns_copies(self, store, make_snippet):
        store.save(make_snippet(id="a"))
        store.save(make_snippet(id="b"))
        for snippet in store.get_all():
            snippet.title = "Mutated"
        assert {s.title for s in store.get_all()} == {"Test Snippet"}

    def test_search_results_are_copies(self, store, make_snippet):
        store.save(make_snippet(title="Searchable"))
        result = store.search("Search")[0]
        result.snippet.title = "Mutated"
        assert store.get_by_id("snip-1").title == "Searchable"

    def test_get_unknown_id(self, store):
        with pytest.raises(SnippetNotFoundError):
            store.get_by_id("missing")

    def test_count_and_contains(self, store, make_snippet):
        assert store.count() == 0
        store.save(make_snippet())
        assert store.count() == 1
        assert "snip-1" in store
        assert "snip-2" not in store
