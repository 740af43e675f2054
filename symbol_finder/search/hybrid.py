"""
Hybrid search over the persistent symbol index and a local workspace.

Results from both sources are scored with :func:`relevance_score`, merged,
deduplicated by name (the workspace copy of a symbol wins over the indexed
one) and truncated.  A failing source is logged and contributes nothing;
the other source still answers.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from ..errors import InvalidQueryError
from ..index.base import SymbolIndex
from ..index.models import Symbol
from ..workspace.models import WorkspaceFile
from ..workspace.scanner import WorkspaceScanner
from .fuzzy import relevance_score

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20

# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExternalResult:
    """A match from the persistent symbol index."""
    symbol: Symbol
    relevance: int
    source: str = field(default="external", init=False)

    @property
    def name(self) -> str:
        return self.symbol.name

    def to_dict(self) -> dict:
        return {"source": self.source, "relevance": self.relevance,
                "symbol": self.symbol.to_dict()}


@dataclass(frozen=True)
class WorkspaceResult:
    """A match from the local workspace scan."""
    file: WorkspaceFile
    relevance: int
    source: str = field(default="workspace", init=False)

    @property
    def name(self) -> str:
        return self.file.name

    def to_dict(self) -> dict:
        return {"source": self.source, "relevance": self.relevance,
                "file": self.file.to_dict()}


HybridSearchResult = Union[ExternalResult, WorkspaceResult]


def result_from_dict(data: dict) -> HybridSearchResult:
    """Inverse of ``to_dict`` on either result type."""
    if data.get("source") == "workspace":
        return WorkspaceResult(WorkspaceFile.from_dict(data["file"]), int(data["relevance"]))
    return ExternalResult(Symbol.from_dict(data["symbol"]), int(data["relevance"]))


@dataclass
class PatternSearchResult:
    """Raw material for pattern analysis: index aggregates plus workspace hits."""
    scenario: str
    external_patterns: dict = field(default_factory=dict)
    workspace_matches: list[WorkspaceFile] = field(default_factory=list)


def _bare_term(query: str) -> str:
    """*query* without glob wildcards, for name comparisons."""
    return query.replace("*", "").strip()


def merge_results(results: list[HybridSearchResult], limit: int) -> list[HybridSearchResult]:
    """
    Order *results* by relevance, drop repeated names and keep *limit*.

    The sort is stable, so equal relevance keeps source order (external
    first).  Names compare case-insensitively; when a name repeats, a
    workspace result takes the place of the external result already kept.
    """
    ordered = sorted(results, key=lambda r: -r.relevance)
    positions: dict[str, int] = {}
    merged: list[HybridSearchResult] = []
    for result in ordered:
        key = result.name.lower()
        idx = positions.get(key)
        if idx is None:
            positions[key] = len(merged)
            merged.append(result)
        elif result.source == "workspace" and merged[idx].source == "external":
            merged[idx] = result
    return merged[:limit]


# ---------------------------------------------------------------------------
# HybridSearch
# ---------------------------------------------------------------------------

class HybridSearch:
    """
    Combines a :class:`SymbolIndex` with a :class:`WorkspaceScanner`.

    Usage::

        hybrid = HybridSearch(index, scanner)
        results = await hybrid.search("CustTable", workspace_path="/ws",
                                      include_workspace=True)
    """

    def __init__(self, index: SymbolIndex, scanner: WorkspaceScanner) -> None:
        self._index = index
        self._scanner = scanner

    async def _external(self, query: str, limit: int,
                        types: Optional[Sequence[str]]) -> list[ExternalResult]:
        try:
            symbols = await asyncio.to_thread(self._index.search_symbols, query, limit, types)
        except Exception as exc:
            logger.warning("Symbol index search failed for %r: %s", query, exc)
            return []
        term = _bare_term(query)
        return [ExternalResult(s, relevance_score(term, s.name)) for s in symbols]

    async def _workspace(self, query: str, root: str,
                         type_: Optional[str]) -> list[WorkspaceResult]:
        term = _bare_term(query)
        try:
            files = await self._scanner.search_in_workspace(root, term, type_)
        except Exception as exc:
            logger.warning("Workspace search failed for %s: %s", root, exc)
            return []
        return [WorkspaceResult(f, relevance_score(term, f.name)) for f in files]

    async def search(
        self,
        query: str,
        types: Optional[Sequence[str]] = None,
        limit: int = DEFAULT_LIMIT,
        workspace_path: Optional[str] = None,
        include_workspace: bool = False,
    ) -> list[HybridSearchResult]:
        """
        Search both sources and return at most *limit* merged results.

        Parameters
        ----------
        query:
            Name or name fragment; ``*`` acts as a prefix wildcard.
        types:
            Restrict the index search to these kinds.  The workspace is
            filtered by the first one only.
        limit:
            Maximum number of results.
        workspace_path:
            Root of the local workspace.
        include_workspace:
            Search the workspace too.  Ignored without *workspace_path*.

        Raises
        ------
        InvalidQueryError
            If *query* is blank or *limit* is below 1.
        """
        if not query or not query.strip():
            raise InvalidQueryError("Search query must not be empty")
        if limit < 1:
            raise InvalidQueryError(f"limit must be at least 1, got {limit}")
        query = query.strip()
        types = list(types) if types else None

        t0 = time.perf_counter()
        results: list[HybridSearchResult] = list(await self._external(query, limit, types))
        if include_workspace and workspace_path:
            type_filter = types[0] if types else None
            results.extend(await self._workspace(query, workspace_path, type_filter))

        merged = merge_results(results, limit)
        elapsed = (time.perf_counter() - t0) * 1000
        logger.debug("Hybrid search %r: %d candidates, %d kept in %.1fms",
                     query, len(results), len(merged), elapsed)
        return merged

    async def search_patterns(self, scenario: str,
                              workspace_path: Optional[str] = None) -> PatternSearchResult:
        """
        Collect pattern data for *scenario* from both sources.

        The index contributes its aggregate analysis, the workspace the
        files whose names contain the scenario text.  Nothing is ranked.
        """
        if not scenario or not scenario.strip():
            raise InvalidQueryError("Scenario must not be empty")
        scenario = scenario.strip()
        result = PatternSearchResult(scenario=scenario)

        try:
            result.external_patterns = await asyncio.to_thread(
                self._index.analyze_code_patterns, scenario
            )
        except Exception as exc:
            logger.warning("Pattern analysis failed for %r: %s", scenario, exc)

        if workspace_path:
            try:
                result.workspace_matches = await self._scanner.search_in_workspace(
                    workspace_path, scenario
                )
            except Exception as exc:
                logger.warning("Workspace pattern search failed for %s: %s",
                               workspace_path, exc)
        return result
