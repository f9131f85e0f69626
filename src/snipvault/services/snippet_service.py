"""Service layer for snippet operations.

This is the surface the command line and desktop front ends talk to:
create, edit, delete, list and search, plus the helpers they need to
hand a snippet to an external editor and read it back.
"""

import logging
from typing import Any, Dict, List, Optional

from snipvault.exceptions import ValidationError
from snipvault.models.schema import Snippet, new_snippet
from snipvault.observability import metrics, traced
from snipvault.services.search_service import SearchOptions, SearchResult
from snipvault.storage.snippet_store import SnippetStore

logger = logging.getLogger(__name__)


def _unique_casefolded(values: List[str]) -> List[str]:
    seen = {}
    for value in values:
        if value and value.lower() not in seen:
            seen[value.lower()] = value
    return sorted(seen.values(), key=str.lower)


class SnippetService:
    """Service for managing snippets."""

    def __init__(self, store: Optional[SnippetStore] = None, load: bool = True):
        """Initialize the service.

        Args:
            store: Snippet store. Created from config if None.
            load: Load every record from disk right away.
        """
        self.store = store or SnippetStore()
        if load:
            self.store.load_all()

    @traced("create_snippet")
    def create_snippet(
        self,
        title: str,
        body: str = "",
        tags: Optional[List[str]] = None,
        language: str = "",
        is_favorite: bool = False,
    ) -> Snippet:
        """Create and save a new snippet."""
        if not title or not title.strip():
            raise ValidationError("Title is required", field="title")

        snippet = new_snippet(title, body)
        snippet.tags = list(tags or [])
        snippet.language = language or ""
        snippet.is_favorite = is_favorite

        saved = self.store.save(snippet)
        logger.info(f"Created snippet {saved.id} '{saved.title}'")
        return saved

    @traced("update_snippet")
    def update_snippet(self, snippet: Snippet) -> Snippet:
        """Replace an existing snippet with the given version.

        The stored ``created_at`` is kept whatever the caller passes.

        Raises:
            SnippetNotFoundError: If the id is not stored.
            ValidationError: If the new version has no title.
        """
        return self.store.update(snippet)

    @traced("delete_snippet")
    def delete_snippet(self, snippet_id: str) -> None:
        self.store.delete(snippet_id)
        logger.info(f"Deleted snippet {snippet_id}")

    def get_snippet(self, snippet_id: str) -> Snippet:
        return self.store.get_by_id(snippet_id)

    @traced("list_snippets")
    def list_snippets(self) -> List[Snippet]:
        """All snippets, most recently updated first."""
        snippets = self.store.get_all()
        snippets.sort(key=lambda s: s.title.lower())
        snippets.sort(key=lambda s: s.updated_at, reverse=True)
        return snippets

    @traced("search")
    def search(self, query: str) -> List[SearchResult]:
        return self.store.search(query)

    @traced("search_with_filters")
    def search_with_filters(
        self,
        query: str = "",
        tags: Optional[List[str]] = None,
        language: str = "",
    ) -> List[SearchResult]:
        return self.store.search_with_filters(
            SearchOptions(query=query, tags=list(tags or []), language=language)
        )

    @traced("reload")
    def reload(self) -> int:
        """Re-read every record from disk."""
        return self.store.load_all()

    @traced("toggle_favorite")
    def toggle_favorite(self, snippet_id: str) -> Snippet:
        snippet = self.store.get_by_id(snippet_id)
        snippet.is_favorite = not snippet.is_favorite
        return self.store.update(snippet)

    def render_for_edit(self, snippet_id: str) -> str:
        """Record text of a snippet, for editing in an external editor."""
        return self.store.codec.encode(self.store.get_by_id(snippet_id))

    @traced("apply_edit")
    def apply_edit(self, snippet_id: str, text: str) -> Snippet:
        """Save the edited record text of an existing snippet.

        The id and ``created_at`` always come from the stored snippet, so an
        edit cannot re-key or back-date a snippet.

        Raises:
            SnippetNotFoundError: If the id is not stored.
            RecordError: If the edited text is not a valid record.
            ValidationError: If the edited title is empty.
        """
        existing = self.store.get_by_id(snippet_id)
        edited = self.store.codec.decode(text)
        if edited.id and edited.id != snippet_id:
            logger.warning(
                f"Ignoring id change {snippet_id} -> {edited.id} in edited record"
            )
        edited.id = existing.id
        return self.store.update(edited)

    def all_tags(self) -> List[str]:
        """Every tag in use, sorted and de-duplicated case-insensitively."""
        return _unique_casefolded(
            [tag for s in self.store.get_all() for tag in s.tags]
        )

    def all_languages(self) -> List[str]:
        return _unique_casefolded([s.language for s in self.store.get_all()])

    def stats(self) -> Dict[str, Any]:
        """Index size, skipped files and per-operation metrics."""
        return {
            "data_dir": str(self.store.file_store.root),
            "snippets": self.store.count(),
            "skipped_files": [
                f"{w.path.name}: {w.reason}" for w in self.store.load_warnings
            ],
            "metrics": metrics.summary(),
        }
