"""Ranked search over snippets.

Search runs in stages over a snapshot of the index:

1. exact filters (tags with AND semantics, language), case-insensitive;
2. with no query, every filtered snippet is returned with score 0;
3. fuzzy subsequence match of the query against titles;
4. for snippets without a title hit, substring bonuses for tags (+10)
   and body (+5);
5. stable sort by score, highest first.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from snipvault.models.schema import Snippet

logger = logging.getLogger(__name__)

TAG_MATCH_SCORE = 10
BODY_MATCH_SCORE = 5

# Fuzzy title scoring
MATCH_SCORE = 1
FIRST_CHAR_MATCH_BONUS = 10
SEPARATOR_MATCH_BONUS = 10
CAMEL_CASE_MATCH_BONUS = 10
ADJACENT_MATCH_BONUS = 15
UNMATCHED_LEADING_CHAR_PENALTY = -5
MAX_UNMATCHED_LEADING_CHAR_PENALTY = -15
SEPARATORS = frozenset(" _-/.")


@dataclass
class SearchOptions:
    """Query plus optional exact filters."""

    query: str = ""
    tags: List[str] = field(default_factory=list)
    language: str = ""


@dataclass
class SearchResult:
    """A search result with a snippet copy and its relevance score."""

    snippet: Snippet
    score: int


def fuzzy_score(pattern: str, candidate: str) -> Optional[int]:
    """Score ``pattern`` as a subsequence of ``candidate``.

    Matching is case-sensitive and greedy from the left. Matches on the
    first character, after a separator, on a camelCase hump, or directly
    after the previous match earn bonuses; unmatched leading characters
    cost a capped penalty.

    Returns:
        A positive score, or None if ``pattern`` is not a subsequence.
    """
    if not pattern:
        return None

    score = 0
    pattern_index = 0
    first_match = -1
    last_match = -2

    for i, char in enumerate(candidate):
        if pattern_index == len(pattern):
            break
        if char != pattern[pattern_index]:
            continue

        score += MATCH_SCORE
        if i == 0:
            score += FIRST_CHAR_MATCH_BONUS
        else:
            prev = candidate[i - 1]
            if prev in SEPARATORS:
                score += SEPARATOR_MATCH_BONUS
            elif prev.islower() and char.isupper():
                score += CAMEL_CASE_MATCH_BONUS
        if pattern_index > 0 and i == last_match + 1:
            score += ADJACENT_MATCH_BONUS

        if first_match < 0:
            first_match = i
        last_match = i
        pattern_index += 1

    if pattern_index < len(pattern):
        return None

    score += max(
        UNMATCHED_LEADING_CHAR_PENALTY * first_match,
        MAX_UNMATCHED_LEADING_CHAR_PENALTY,
    )
    return max(score, 1)


def matches_tags(snippet: Snippet, tags: Optional[Sequence[str]]) -> bool:
    """True if every requested tag is among the snippet's tags (AND).

    Tags compare case-insensitively but otherwise exactly. Empty entries
    and a None filter impose no constraint.
    """
    wanted = [t.lower() for t in tags or () if t]
    if not wanted:
        return True
    have = {t.lower() for t in snippet.tags}
    return all(tag in have for tag in wanted)


def matches_language(snippet: Snippet, language: Optional[str]) -> bool:
    """True if no language filter is set or the snippet's language matches."""
    if not language:
        return True
    return snippet.language.lower() == language.lower()


def substring_score(snippet: Snippet, query_lower: str) -> int:
    """Tag (+10) and body (+5) substring bonuses, additive."""
    score = 0
    if any(query_lower in tag.lower() for tag in snippet.tags):
        score += TAG_MATCH_SCORE
    if query_lower in snippet.body.lower():
        score += BODY_MATCH_SCORE
    return score


class SearchEngine:
    """Produces ranked search results from a snapshot of snippets.

    The engine never mutates its input: every result carries an
    independent copy of the matched snippet.
    """

    def search(
        self, snippets: Iterable[Snippet], options: Optional[SearchOptions] = None
    ) -> List[SearchResult]:
        options = options or SearchOptions()

        candidates = [
            s
            for s in snippets
            if matches_tags(s, options.tags)
            and matches_language(s, options.language)
        ]

        query = options.query or ""
        if not query:
            return [SearchResult(snippet=s.clone(), score=0) for s in candidates]

        title_hits: List[SearchResult] = []
        rest: List[Snippet] = []
        for snippet in candidates:
            score = fuzzy_score(query, snippet.title)
            if score is None:
                rest.append(snippet)
            else:
                title_hits.append(SearchResult(snippet=snippet, score=score))
        title_hits.sort(key=lambda r: r.score, reverse=True)

        query_lower = query.lower()
        substring_hits: List[SearchResult] = []
        for snippet in rest:
            score = substring_score(snippet, query_lower)
            if score > 0:
                substring_hits.append(SearchResult(snippet=snippet, score=score))

        ranked = sorted(
            title_hits + substring_hits, key=lambda r: r.score, reverse=True
        )
        logger.debug(
            f"Search {query!r}: {len(candidates)} candidates, "
            f"{len(title_hits)} title hits, {len(substring_hits)} substring hits"
        )
        return [SearchResult(snippet=r.snippet.clone(), score=r.score) for r in ranked]
