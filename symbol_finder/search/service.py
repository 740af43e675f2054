"""
Search service: the entry point that ties the search pieces together.

A request is validated, answered from the query cache when possible, run
through :class:`HybridSearch` under a timeout otherwise, and decorated with
suggestions when the result set is empty or too coarse.  Non-empty result
sets also carry related searches and common patterns.  Only complete
answers are cached.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Sequence, Union

from ..errors import InvalidQueryError
from ..index.base import SymbolIndex
from ..index.models import SymbolKind
from ..query_cache import DiskCacheBackend, MemoryCacheBackend, QueryCache
from ..workspace.paths import validate_workspace_path
from ..workspace.scanner import WorkspaceScanner
from .context import (
    CommonPattern,
    RelatedSearch,
    common_patterns,
    format_common_patterns,
    format_related_searches,
    related_searches,
)
from .hybrid import (
    DEFAULT_LIMIT,
    HybridSearch,
    HybridSearchResult,
    PatternSearchResult,
    result_from_dict,
)
from .suggestions import SearchSuggestion, SuggestionEngine, format_suggestions
from .term_graph import TermRelationshipGraph

if TYPE_CHECKING:
    from ..config import Config

logger = logging.getLogger(__name__)

TYPE_ALL = "all"
SEARCH_TYPES: frozenset[str] = SymbolKind.ALL | {TYPE_ALL}

DEFAULT_TIMEOUT_SECONDS = 10.0
MAX_BATCH_QUERIES = 10


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------

@dataclass
class SearchResponse:
    """
    Everything one search produced.

    Attributes
    ----------
    results:
        Ranked, deduplicated matches.
    suggestions:
        Alternative queries; empty when the results look useful.
    related_searches:
        Follow-up queries for a non-empty result set.
    common_patterns:
        Base classes and role names shared by the external matches.
    from_cache:
        True when served from the query cache.
    timed_out:
        True when the search was abandoned; *results* is then empty.
    """
    query: str
    type: str = TYPE_ALL
    limit: int = DEFAULT_LIMIT
    results: list[HybridSearchResult] = field(default_factory=list)
    suggestions: list[SearchSuggestion] = field(default_factory=list)
    related_searches: list[RelatedSearch] = field(default_factory=list)
    common_patterns: list[CommonPattern] = field(default_factory=list)
    from_cache: bool = False
    timed_out: bool = False

    @property
    def workspace_count(self) -> int:
        return sum(1 for r in self.results if r.source == "workspace")

    @property
    def external_count(self) -> int:
        return sum(1 for r in self.results if r.source == "external")

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "type": self.type,
            "limit": self.limit,
            "results": [r.to_dict() for r in self.results],
            "suggestions": [s.to_dict() for s in self.suggestions],
            "related_searches": [r.to_dict() for r in self.related_searches],
            "common_patterns": [p.to_dict() for p in self.common_patterns],
            "from_cache": self.from_cache,
            "timed_out": self.timed_out,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SearchResponse":
        return cls(
            query=data["query"],
            type=data.get("type", TYPE_ALL),
            limit=int(data.get("limit", DEFAULT_LIMIT)),
            results=[result_from_dict(r) for r in data.get("results", [])],
            suggestions=[SearchSuggestion.from_dict(s) for s in data.get("suggestions", [])],
            related_searches=[RelatedSearch.from_dict(r)
                              for r in data.get("related_searches", [])],
            common_patterns=[CommonPattern.from_dict(p)
                             for p in data.get("common_patterns", [])],
            from_cache=bool(data.get("from_cache", False)),
            timed_out=bool(data.get("timed_out", False)),
        )


def render_response(response: SearchResponse) -> str:
    """Plain-text rendering of *response* for terminals and agents."""
    if not response.results:
        if response.timed_out:
            out = f'Search for "{response.query}" timed out; showing suggestions only.'
        else:
            out = f'No symbols found matching "{response.query}"'
        return out + format_suggestions(response.suggestions)

    lines = []
    for r in response.results:
        tag = r.source.upper()
        if r.source == "workspace":
            lines.append(f"[{tag}] [{r.file.type.upper()}] {r.file.name} ({r.file.path})")
        else:
            sym = r.symbol
            signature = f" - {sym.signature}" if sym.signature else ""
            lines.append(f"[{tag}] [{sym.kind.upper()}] {sym.qualified_name}{signature}")

    header = (
        f"Found {len(response.results)} matches "
        f"({response.workspace_count} workspace, {response.external_count} external)"
    )
    if response.from_cache:
        header += " [cached]"
    out = header + ":\n\n" + "\n".join(lines)
    for section in (
        format_suggestions(response.suggestions),
        format_related_searches(response.related_searches),
        format_common_patterns(response.common_patterns),
    ):
        if section:
            out += "\n" + section
    return out


# ---------------------------------------------------------------------------
# Batch search
# ---------------------------------------------------------------------------

@dataclass
class BatchQuery:
    """One query of a batch; fields mirror :meth:`SymbolSearchService.search`."""
    query: str
    type: str = TYPE_ALL
    limit: Optional[int] = None
    workspace_path: Optional[str] = None
    include_workspace: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "BatchQuery":
        return cls(
            query=data.get("query", ""),
            type=data.get("type", TYPE_ALL),
            limit=data.get("limit"),
            workspace_path=data.get("workspace_path"),
            include_workspace=bool(data.get("include_workspace", False)),
        )


@dataclass
class BatchItem:
    """Outcome of one batch query: a response, or the error that replaced it."""
    query: str
    response: Optional[SearchResponse] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "success": self.success,
            "response": self.response.to_dict() if self.response else None,
            "error": self.error,
        }


@dataclass
class BatchResponse:
    items: list[BatchItem]
    elapsed_ms: float = 0.0

    @property
    def success_count(self) -> int:
        return sum(1 for i in self.items if i.success)

    def to_dict(self) -> dict:
        return {
            "items": [i.to_dict() for i in self.items],
            "success_count": self.success_count,
            "elapsed_ms": round(self.elapsed_ms, 1),
        }


def render_batch(batch: BatchResponse) -> str:
    n = len(batch.items)
    parts = [
        f"Batch search: {n} {'query' if n == 1 else 'queries'} in {batch.elapsed_ms:.0f}ms "
        f"({batch.success_count}/{n} succeeded)"
    ]
    for i, item in enumerate(batch.items, start=1):
        body = render_response(item.response) if item.success else f"Error: {item.error}"
        parts.append(f'## Query {i}: "{item.query}"\n\n{body}')
    return "\n\n---\n\n".join(parts)


BatchRequest = Union[BatchQuery, dict, str]


def _as_batch_query(request: BatchRequest) -> BatchQuery:
    if isinstance(request, BatchQuery):
        return request
    if isinstance(request, str):
        return BatchQuery(query=request)
    return BatchQuery.from_dict(request)


# ---------------------------------------------------------------------------
# SymbolSearchService
# ---------------------------------------------------------------------------

class SymbolSearchService:
    """
    Validated, cached, suggestion-aware symbol search.

    Parameters
    ----------
    index:
        Persistent symbol catalog.
    scanner:
        Workspace scanner; a fresh one is created when omitted.
    cache:
        Query cache; an in-memory one is created when omitted.
    graph:
        Term graph backing the suggestions.  Filled from *index* on first
        use or by :meth:`rebuild_vocabulary`.
    engine:
        Suggestion engine over *graph*.
    timeout:
        Seconds a hybrid search may take before it is abandoned.
    default_workspace:
        Workspace used when a request asks for workspace results without
        naming a path.
    """

    def __init__(
        self,
        index: SymbolIndex,
        scanner: Optional[WorkspaceScanner] = None,
        cache: Optional[QueryCache] = None,
        graph: Optional[TermRelationshipGraph] = None,
        engine: Optional[SuggestionEngine] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        default_limit: int = DEFAULT_LIMIT,
        default_workspace: Optional[str] = None,
    ) -> None:
        self._index = index
        self._scanner = scanner or WorkspaceScanner()
        self._cache = cache or QueryCache()
        self._graph = graph or TermRelationshipGraph()
        self._engine = engine or SuggestionEngine(self._graph)
        self._hybrid = HybridSearch(index, self._scanner)
        self._timeout = timeout
        self._default_limit = default_limit
        self._default_workspace = default_workspace or None
        self._vocabulary_loaded = False

    @classmethod
    def from_config(cls, config: "Config") -> "SymbolSearchService":
        """Wire up a service from a :class:`~symbol_finder.config.Config`."""
        from ..index.sqlite_index import SQLiteSymbolIndex

        if config.QUERY_CACHE_BACKEND == "disk":
            backend = DiskCacheBackend(config.QUERY_CACHE_DIR)
        else:
            backend = MemoryCacheBackend()
        graph = TermRelationshipGraph()
        return cls(
            index=SQLiteSymbolIndex(config.INDEX_PATH, vocabulary_limit=config.VOCABULARY_LIMIT),
            scanner=WorkspaceScanner(ttl_seconds=config.WORKSPACE_CACHE_TTL_SECONDS),
            cache=QueryCache(backend, default_ttl=config.QUERY_CACHE_TTL_SECONDS),
            graph=graph,
            engine=SuggestionEngine(
                graph,
                max_suggestions=config.MAX_SUGGESTIONS,
                typo_min_score=config.TYPO_MIN_SCORE,
                typo_threshold=config.TYPO_THRESHOLD,
            ),
            timeout=config.SEARCH_TIMEOUT_SECONDS,
            default_limit=config.DEFAULT_LIMIT,
            default_workspace=config.WORKSPACE_PATH,
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def scanner(self) -> WorkspaceScanner:
        return self._scanner

    @property
    def cache(self) -> QueryCache:
        return self._cache

    @property
    def graph(self) -> TermRelationshipGraph:
        return self._graph

    # ------------------------------------------------------------------
    # Vocabulary
    # ------------------------------------------------------------------

    async def rebuild_vocabulary(self) -> int:
        """
        Reload the vocabulary from the index and rebuild the term graph.

        The build runs off the event loop and is swapped in atomically.  When
        the index cannot be read the previous graph is kept, and a graph
        that was never loaded is retried on the next search.

        Returns
        -------
        int
            Number of terms in the graph afterwards.
        """
        def _build() -> None:
            names = self._index.get_all_symbol_names()
            symbols = list(self._index.iter_symbols())
            self._graph.build(names, symbols)

        try:
            await asyncio.to_thread(_build)
        except Exception as exc:
            logger.warning("Could not load vocabulary from the symbol index: %s", exc)
        else:
            self._vocabulary_loaded = True
        return self._graph.size

    async def _ensure_vocabulary(self) -> bool:
        """Load the vocabulary if needed; False while it has never loaded."""
        if not self._vocabulary_loaded:
            await self.rebuild_vocabulary()
        return self._vocabulary_loaded

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _resolve_workspace(self, workspace_path: Optional[str],
                           include_workspace: bool) -> Optional[str]:
        if not include_workspace:
            return None
        path = workspace_path or self._default_workspace
        if not path:
            return None
        return validate_workspace_path(path)

    @staticmethod
    def _validate(query: str, type_: str, limit: int) -> tuple[str, str]:
        if not isinstance(query, str) or not query.strip():
            raise InvalidQueryError("Search query must not be empty")
        if limit < 1:
            raise InvalidQueryError(f"limit must be at least 1, got {limit}")
        type_ = (type_ or TYPE_ALL).lower()
        if type_ not in SEARCH_TYPES:
            raise InvalidQueryError(
                f"Unknown type {type_!r}; expected one of {', '.join(sorted(SEARCH_TYPES))}"
            )
        return query.strip(), type_

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        type: str = TYPE_ALL,
        limit: Optional[int] = None,
        workspace_path: Optional[str] = None,
        include_workspace: bool = False,
    ) -> SearchResponse:
        """
        Search for *query* and attach suggestions when the results are poor.

        Searches that include a workspace bypass the query cache: the cache
        key does not cover the workspace, whose contents change freely.

        Raises
        ------
        InvalidQueryError
            For a blank query, ``limit < 1``, an unknown type or an invalid
            workspace path.  Nothing is read before validation passes.
        """
        limit = self._default_limit if limit is None else limit
        query, type_ = self._validate(query, type, limit)
        root = self._resolve_workspace(workspace_path, include_workspace)
        kind = None if type_ == TYPE_ALL else type_

        key = QueryCache.generate_key(query, limit, kind)
        cacheable = root is None
        if cacheable:
            payload = await self._cache.get_fuzzy(key)
            if payload is not None:
                response = SearchResponse.from_dict(payload)
                response.from_cache = True
                return response

        t0 = time.perf_counter()
        timed_out = False
        try:
            results = await asyncio.wait_for(
                self._hybrid.search(
                    query,
                    types=[kind] if kind else None,
                    limit=limit,
                    workspace_path=root,
                    include_workspace=root is not None,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Search for %r timed out after %.1fs", query, self._timeout)
            results = []
            timed_out = True

        vocabulary_ready = await self._ensure_vocabulary()
        suggestions = await asyncio.to_thread(
            self._engine.suggest, query, len(results), limit
        )
        symbols = [r.symbol for r in results if r.source == "external"]
        response = SearchResponse(
            query=query,
            type=type_,
            limit=limit,
            results=results,
            suggestions=suggestions,
            related_searches=related_searches(query, symbols) if results else [],
            common_patterns=common_patterns(symbols),
            timed_out=timed_out,
        )

        # Only cache suggestions built on a loaded vocabulary
        if cacheable and not timed_out and vocabulary_ready:
            await self._cache.set(key, response.to_dict())

        elapsed = (time.perf_counter() - t0) * 1000
        logger.info("Search %r: %d results, %d suggestions in %.1fms",
                    query, len(results), len(suggestions), elapsed)
        return response

    async def suggest(self, query: str) -> list[SearchSuggestion]:
        """Suggestions for *query* as if it had matched nothing."""
        if not query or not query.strip():
            raise InvalidQueryError("Search query must not be empty")
        await self._ensure_vocabulary()
        return await asyncio.to_thread(self._engine.for_zero_results, query.strip())

    async def search_batch(self, requests: Sequence[BatchRequest]) -> BatchResponse:
        """
        Run up to ``MAX_BATCH_QUERIES`` independent searches concurrently.

        Each request is a :class:`BatchQuery`, a dict with the same keys, or
        a bare query string.  A failing query (an invalid one included) is
        reported in its own :class:`BatchItem` and does not affect the
        others.

        Raises
        ------
        InvalidQueryError
            When *requests* is empty or holds more than ``MAX_BATCH_QUERIES``.
        """
        queries = [_as_batch_query(r) for r in requests]
        if not queries:
            raise InvalidQueryError("Batch search needs at least one query")
        if len(queries) > MAX_BATCH_QUERIES:
            raise InvalidQueryError(
                f"Batch search accepts at most {MAX_BATCH_QUERIES} queries, got {len(queries)}"
            )

        t0 = time.perf_counter()
        outcomes = await asyncio.gather(
            *(
                self.search(q.query, type=q.type, limit=q.limit,
                            workspace_path=q.workspace_path,
                            include_workspace=q.include_workspace)
                for q in queries
            ),
            return_exceptions=True,
        )

        items = []
        for q, outcome in zip(queries, outcomes):
            if isinstance(outcome, Exception):
                logger.warning("Batch query %r failed: %s", q.query, outcome)
                items.append(BatchItem(query=q.query, error=str(outcome)))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                items.append(BatchItem(query=q.query, response=outcome))

        elapsed = (time.perf_counter() - t0) * 1000
        logger.info("Batch of %d queries: %d succeeded in %.1fms",
                    len(items), sum(1 for i in items if i.success), elapsed)
        return BatchResponse(items=items, elapsed_ms=elapsed)

    async def search_patterns(self, scenario: str,
                              workspace_path: Optional[str] = None) -> PatternSearchResult:
        root = validate_workspace_path(workspace_path) if workspace_path else None
        return await self._hybrid.search_patterns(scenario, root)

    @staticmethod
    def render(response: SearchResponse) -> str:
        return render_response(response)

    @staticmethod
    def render_batch(batch: BatchResponse) -> str:
        return render_batch(batch)
