"""
Search suggestions for empty or unhelpful result sets.

Suggestions are advisory: they are returned next to the results and are
never substituted for the user's query.  Everything here runs on the
in-memory vocabulary of a :class:`TermRelationshipGraph`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .fuzzy import (
    find_fuzzy_matches,
    generate_broader_searches,
    generate_narrower_searches,
    has_role_suffix,
    is_probable_typo,
)
from .term_graph import TermRelationshipGraph

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 10


class SuggestionKind:
    TYPO = "typo"
    BROADER = "broader"
    NARROWER = "narrower"
    RELATED = "related"


@dataclass(frozen=True)
class SearchSuggestion:
    kind: str            # see SuggestionKind
    query: str
    reason: str
    confidence: float    # 0-1

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "query": self.query,
            "reason": self.reason,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SearchSuggestion":
        return cls(
            kind=data["kind"],
            query=data["query"],
            reason=data.get("reason", ""),
            confidence=float(data.get("confidence", 0.0)),
        )


class SuggestionEngine:
    """
    Builds "did you mean", broader, narrower and related-term suggestions.

    Parameters
    ----------
    graph:
        Term graph holding the known vocabulary.
    max_suggestions:
        Upper bound on suggestions returned by one call (capped at 10).
    typo_min_score:
        Minimum similarity for a vocabulary term to be offered as a typo fix.
    typo_threshold:
        Similarity from which a fix is phrased as "Did you mean".
    max_typos:
        Maximum number of typo suggestions.
    max_related:
        Maximum number of related-term suggestions.
    """

    def __init__(
        self,
        graph: TermRelationshipGraph,
        max_suggestions: int = MAX_SUGGESTIONS,
        typo_min_score: float = 0.7,
        typo_threshold: float = 0.85,
        max_typos: int = 5,
        max_related: int = 3,
    ) -> None:
        self._graph = graph
        self._max = max(0, min(max_suggestions, MAX_SUGGESTIONS))
        self._typo_min_score = typo_min_score
        self._typo_threshold = typo_threshold
        self._max_typos = max_typos
        self._max_related = max_related

    # ------------------------------------------------------------------
    # Individual categories
    # ------------------------------------------------------------------

    def typo_suggestions(self, query: str) -> list[SearchSuggestion]:
        matches = find_fuzzy_matches(
            query, self._graph.vocabulary, self._typo_min_score, self._max_typos
        )
        suggestions = []
        for m in matches:
            if is_probable_typo(query, m.term, self._typo_threshold):
                reason = f'Did you mean "{m.term}"?'
            else:
                reason = f'Similar term: "{m.term}" ({round(m.score * 100)}% match)'
            suggestions.append(SearchSuggestion(SuggestionKind.TYPO, m.term, reason, m.score))
        return suggestions

    def broader_suggestions(self, query: str) -> list[SearchSuggestion]:
        suggestions = []
        for broader in generate_broader_searches(query):
            if broader.endswith("*"):
                reason = f'Try wildcard search for "{broader[:-1]}" prefix'
                confidence = 0.6
            else:
                reason = "Try broader search without suffix"
                confidence = 0.7
            suggestions.append(SearchSuggestion(SuggestionKind.BROADER, broader, reason, confidence))
        return suggestions

    def narrower_suggestions(self, query: str) -> list[SearchSuggestion]:
        """Suffixed forms of *query*; forms that name known symbols rank first."""
        suggestions = []
        for narrower in generate_narrower_searches(query):
            suffix = narrower[len(query):]
            if self._graph.contains(narrower):
                suggestions.append(SearchSuggestion(
                    SuggestionKind.NARROWER, narrower,
                    f'Known symbol with suffix "{suffix}"', 0.8,
                ))
            else:
                suggestions.append(SearchSuggestion(
                    SuggestionKind.NARROWER, narrower,
                    f'Try with common suffix "{suffix}"', 0.65,
                ))
        return suggestions

    def related_suggestions(self, query: str) -> list[SearchSuggestion]:
        """
        Known terms sharing a root or leading word with *query*.

        Terms used most often by other symbols come first; terms with equal
        usage keep the graph's order.
        """
        related = self._graph.related_to(query)
        ranked = sorted(related, key=lambda term: -self._graph.popularity(term))
        return [
            SearchSuggestion(SuggestionKind.RELATED, term, "Related term with similar root", 0.6)
            for term in ranked[: self._max_related]
        ]

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def is_degenerate(self, query: str, result_count: int, limit: int) -> bool:
        """
        Whether a non-empty result set is too coarse to be useful.

        True when the result list was cut off at *limit*, or when *query*
        is a bare root term (no role suffix) that known names extend.
        """
        if result_count <= 0:
            return False
        if result_count >= limit:
            return True
        return not has_role_suffix(query) and self._graph.is_known_root(query)

    def for_zero_results(self, query: str) -> list[SearchSuggestion]:
        return self._bounded(
            self.typo_suggestions(query)
            + self.broader_suggestions(query)
            + self.related_suggestions(query)
        )

    def for_degenerate_results(self, query: str) -> list[SearchSuggestion]:
        return self._bounded(self.narrower_suggestions(query))

    def suggest(self, query: str, result_count: int, limit: int) -> list[SearchSuggestion]:
        """Suggestions appropriate for a search that returned *result_count* results."""
        if result_count == 0:
            suggestions = self.for_zero_results(query)
        elif self.is_degenerate(query, result_count, limit):
            suggestions = self.for_degenerate_results(query)
        else:
            return []
        logger.debug("Generated %d suggestions for %r", len(suggestions), query)
        return suggestions

    def _bounded(self, suggestions: list[SearchSuggestion]) -> list[SearchSuggestion]:
        """Drop repeated queries, order by confidence (stable), and cap the count."""
        seen: set[str] = set()
        unique = []
        for s in suggestions:
            key = s.query.lower()
            if key in seen:
                continue
            seen.add(key)
            unique.append(s)
        unique.sort(key=lambda s: -s.confidence)
        return unique[: self._max]


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

_SECTION_TITLES = [
    (SuggestionKind.TYPO, "Did you mean?"),
    (SuggestionKind.BROADER, "Try broader search"),
    (SuggestionKind.NARROWER, "Try narrower search"),
    (SuggestionKind.RELATED, "Related terms"),
]


def format_suggestions(suggestions: list[SearchSuggestion]) -> str:
    """Render *suggestions* as Markdown, grouped by kind."""
    if not suggestions:
        return ""
    lines: list[str] = []
    for kind, title in _SECTION_TITLES:
        group = [s for s in suggestions if s.kind == kind]
        if not group:
            continue
        lines.append(f"\n### {title}")
        for s in group:
            lines.append(f'- **"{s.query}"** - {s.reason}')
    return "\n".join(lines)
