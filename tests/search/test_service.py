"""
Unit tests for symbol_finder.search.service

End-to-end behaviour of SymbolSearchService: validation, caching,
timeouts and suggestions.
"""

from __future__ import annotations

import asyncio
import os
import threading
import time

import pytest

from symbol_finder.config import Config
from symbol_finder.errors import InvalidQueryError
from symbol_finder.index.base import SymbolIndex
from symbol_finder.index.models import Symbol, SymbolKind
from symbol_finder.query_cache import QueryCache
from symbol_finder.search.hybrid import ExternalResult
from symbol_finder.search.service import (
    BatchQuery,
    SearchResponse,
    SymbolSearchService,
    render_batch,
    render_response,
)
from symbol_finder.search.suggestions import SearchSuggestion, SuggestionKind
from symbol_finder.workspace.scanner import WorkspaceScanner


class _MemoryIndex(SymbolIndex):

    def __init__(self, names=(), delay=0.0, fail_vocabulary=False):
        self.symbols = [
            Symbol(name=n, kind=SymbolKind.CLASS, model="App", file_path=f"/ext/{n}.xml")
            for n in names
        ]
        self.delay = delay
        self.fail_vocabulary = fail_vocabulary
        self.calls = 0

    def search_symbols(self, query, limit=20, types=None):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        q = query.replace("*", "").lower()
        hits = [s for s in self.symbols
                if q in s.name.lower() and (not types or s.kind in types)]
        return hits[:limit]

    def get_symbol_by_name(self, name, kind):
        return None

    def get_all_symbol_names(self):
        if self.fail_vocabulary:
            raise RuntimeError("index offline")
        return [s.name for s in self.symbols]

    def analyze_code_patterns(self, scenario):
        return {"scenario": scenario, "total_matches": 0}


class _FlakyVocabularyIndex(_MemoryIndex):
    """Vocabulary reads fail a fixed number of times, then succeed."""

    def __init__(self, names=(), failures=1):
        super().__init__(names)
        self.failures = failures

    def get_all_symbol_names(self):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("index offline")
        return super().get_all_symbol_names()


_NAMES = [
    "DimensionAttribute",
    "DimensionHelper",
    "DimensionService",
    "DimensionProvider",
    "CustTable",
]


def _service(index=None, **kwargs) -> SymbolSearchService:
    return SymbolSearchService(
        index if index is not None else _MemoryIndex(_NAMES),
        scanner=WorkspaceScanner(schedule_eviction=False),
        **kwargs,
    )


def _write(root, folder, name):
    d = os.path.join(str(root), folder)
    os.makedirs(d, exist_ok=True)
    with open(os.path.join(d, f"{name}.xml"), "w", encoding="utf-8") as fh:
        fh.write("<AxClass/>")


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

class TestSearch:

    def test_typo_gets_did_you_mean(self):
        response = asyncio.run(_service().search("DimnesionAttribute"))
        assert response.results == []
        top = response.suggestions[0]
        assert top.kind == SuggestionKind.TYPO
        assert top.query == "DimensionAttribute"
        assert top.confidence > 0.85

    def test_bare_root_gets_narrower_suggestions(self):
        response = asyncio.run(_service().search("Dimension"))
        assert len(response.results) == 4
        queries = [s.query for s in response.suggestions]
        assert queries[:3] == ["DimensionHelper", "DimensionService", "DimensionProvider"]
        assert all(s.kind == SuggestionKind.NARROWER for s in response.suggestions)

    def test_specific_match_has_no_suggestions(self):
        response = asyncio.run(_service().search("CustTable"))
        assert [r.name for r in response.results] == ["CustTable"]
        assert response.suggestions == []

    def test_type_filter(self):
        response = asyncio.run(_service().search("CustTable", type="table"))
        assert response.results == []
        assert response.type == "table"

    def test_default_limit(self):
        response = asyncio.run(_service(default_limit=2).search("Dimension"))
        assert response.limit == 2
        assert len(response.results) == 2

    def test_workspace_results_included(self, tmp_path):
        _write(tmp_path, "AxClass", "CustTable")
        response = asyncio.run(_service().search(
            "CustTable", workspace_path=str(tmp_path), include_workspace=True,
        ))
        assert [r.source for r in response.results] == ["workspace"]
        assert response.workspace_count == 1

    def test_default_workspace(self, tmp_path):
        _write(tmp_path, "AxClass", "CustTable")
        service = _service(default_workspace=str(tmp_path))
        response = asyncio.run(service.search("CustTable", include_workspace=True))
        assert response.workspace_count == 1


class TestValidation:

    @pytest.mark.parametrize("kwargs", [
        {"query": ""},
        {"query": "   "},
        {"query": "Cust", "limit": 0},
        {"query": "Cust", "type": "widget"},
    ])
    def test_rejected_before_io(self, kwargs):
        index = _MemoryIndex(_NAMES)
        with pytest.raises(InvalidQueryError):
            asyncio.run(_service(index).search(**kwargs))
        assert index.calls == 0

    def test_traversal_in_workspace_path(self, tmp_path):
        index = _MemoryIndex(_NAMES)
        with pytest.raises(InvalidQueryError):
            asyncio.run(_service(index).search(
                "Cust", workspace_path=str(tmp_path) + "/../etc", include_workspace=True,
            ))
        assert index.calls == 0

    def test_missing_workspace_path(self, tmp_path):
        with pytest.raises(InvalidQueryError):
            asyncio.run(_service().search(
                "Cust", workspace_path=str(tmp_path / "nope"), include_workspace=True,
            ))


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------

class TestCaching:

    def test_second_search_served_from_cache(self):
        index = _MemoryIndex(_NAMES)
        service = _service(index)

        async def _run():
            first = await service.search("CustTable")
            second = await service.search("CustTable")
            return first, second

        first, second = asyncio.run(_run())
        assert not first.from_cache
        assert second.from_cache
        assert [r.name for r in second.results] == ["CustTable"]
        assert index.calls == 1

    def test_different_type_or_limit_not_shared(self):
        index = _MemoryIndex(_NAMES)
        service = _service(index)

        async def _run():
            await service.search("CustTable")
            await service.search("CustTable", type="class")
            await service.search("CustTable", limit=5)

        asyncio.run(_run())
        assert index.calls == 3

    def test_expired_entry_searches_again(self):
        now = [1000.0]
        index = _MemoryIndex(_NAMES)
        service = _service(index, cache=QueryCache(default_ttl=60, clock=lambda: now[0]))

        async def _run():
            await service.search("CustTable")
            now[0] += 61
            return await service.search("CustTable")

        response = asyncio.run(_run())
        assert not response.from_cache
        assert index.calls == 2

    def test_workspace_searches_bypass_cache(self, tmp_path):
        index = _MemoryIndex(_NAMES)
        service = _service(index)

        async def _run():
            for _ in range(2):
                await service.search("CustTable", workspace_path=str(tmp_path),
                                     include_workspace=True)

        asyncio.run(_run())
        assert index.calls == 2
        assert service.cache.size == 0

    def test_suggestions_are_cached_with_results(self):
        service = _service()

        async def _run():
            await service.search("DimnesionAttribute")
            return await service.search("DimnesionAttribute")

        response = asyncio.run(_run())
        assert response.from_cache
        assert response.suggestions[0].query == "DimensionAttribute"


class TestTimeout:

    def test_timeout_counts_as_zero_results(self):
        index = _MemoryIndex(_NAMES, delay=0.5)
        service = _service(index, timeout=0.05)
        response = asyncio.run(service.search("DimnesionAttribute"))
        assert response.timed_out
        assert response.results == []
        assert response.suggestions[0].query == "DimensionAttribute"

    def test_timed_out_response_not_cached(self):
        index = _MemoryIndex(_NAMES, delay=0.5)
        service = _service(index, timeout=0.05)
        asyncio.run(service.search("CustTable"))
        assert service.cache.size == 0


# ---------------------------------------------------------------------------
# Vocabulary / suggest / patterns
# ---------------------------------------------------------------------------

class TestVocabulary:

    def test_rebuild_vocabulary(self):
        service = _service()
        assert asyncio.run(service.rebuild_vocabulary()) == len(_NAMES)
        assert service.graph.contains("CustTable")

    def test_index_failure_keeps_previous_graph(self):
        index = _MemoryIndex(_NAMES)
        service = _service(index)
        asyncio.run(service.rebuild_vocabulary())
        index.fail_vocabulary = True
        assert asyncio.run(service.rebuild_vocabulary()) == len(_NAMES)

    def test_suggest(self):
        suggestions = asyncio.run(_service().suggest("DimensionHelpr"))
        assert suggestions[0].query == "DimensionHelper"

    def test_suggest_blank(self):
        with pytest.raises(InvalidQueryError):
            asyncio.run(_service().suggest(""))

    def test_search_patterns(self, tmp_path):
        _write(tmp_path, "AxClass", "PostingHelper")
        result = asyncio.run(_service().search_patterns("Posting", str(tmp_path)))
        assert result.external_patterns["scenario"] == "Posting"
        assert [f.name for f in result.workspace_matches] == ["PostingHelper"]


class TestFromConfig:

    def test_disk_cache_survives_new_service(self, tmp_path, monkeypatch):
        for key in list(os.environ):
            if key.startswith("SYMFIND_"):
                monkeypatch.delenv(key)
        config = Config({
            "index_path": str(tmp_path / "index.db"),
            "query_cache_backend": "disk",
            "query_cache_dir": str(tmp_path / "cache"),
        })

        asyncio.run(SymbolSearchService.from_config(config).search("Anything"))
        response = asyncio.run(SymbolSearchService.from_config(config).search("Anything"))
        assert response.from_cache


# ---------------------------------------------------------------------------
# Response / rendering
# ---------------------------------------------------------------------------

def _response(**kwargs) -> SearchResponse:
    sym = Symbol(name="CustTable", kind=SymbolKind.TABLE, model="App", file_path="/x.xml")
    defaults = dict(
        query="CustTable",
        results=[ExternalResult(sym, 100)],
        suggestions=[SearchSuggestion(SuggestionKind.BROADER, "Cust", "Try broader search", 0.7)],
    )
    defaults.update(kwargs)
    return SearchResponse(**defaults)


class TestSearchResponse:

    def test_dict_round_trip(self):
        response = _response()
        assert SearchResponse.from_dict(response.to_dict()) == response

    def test_render_results(self):
        text = render_response(_response())
        assert text.startswith("Found 1 matches (0 workspace, 1 external):")
        assert "[EXTERNAL] [TABLE] CustTable" in text
        assert '**"Cust"**' in text

    def test_render_no_results(self):
        text = render_response(_response(results=[]))
        assert text.startswith('No symbols found matching "CustTable"')

    def test_render_timed_out(self):
        text = render_response(_response(results=[], timed_out=True))
        assert "timed out" in text


# ---------------------------------------------------------------------------
# Vocabulary recovery
# ---------------------------------------------------------------------------

class TestVocabularyRecovery:

    def test_failed_load_is_retried_on_next_search(self):
        index = _FlakyVocabularyIndex(_NAMES, failures=1)
        service = _service(index)

        async def _run():
            first = await service.search("DimnesionAttribute")
            second = await service.search("DimnesionAttribute")
            return first, second

        first, second = asyncio.run(_run())
        assert first.suggestions[0].kind != SuggestionKind.TYPO
        assert not second.from_cache
        assert second.suggestions[0].query == "DimensionAttribute"
        assert service.graph.size == len(_NAMES)

    def test_response_without_vocabulary_not_cached(self):
        index = _FlakyVocabularyIndex(_NAMES, failures=1)
        service = _service(index)
        asyncio.run(service.search("DimnesionAttribute"))
        assert service.cache.size == 0

    def test_loaded_once_is_not_reloaded(self):
        index = _FlakyVocabularyIndex(_NAMES, failures=0)
        service = _service(index)

        async def _run():
            await service.search("CustTable")
            index.failures = 1
            return await service.search("DimensionHelpr")

        response = asyncio.run(_run())
        assert index.failures == 1
        assert response.suggestions[0].query == "DimensionHelper"

    def test_suggestions_built_off_the_event_loop(self):
        service = _service()
        loop_threads = []

        real_suggest = service._engine.suggest

        def _suggest(*args):
            loop_threads.append(threading.current_thread() is threading.main_thread())
            return real_suggest(*args)

        service._engine.suggest = _suggest
        asyncio.run(service.search("DimnesionAttribute"))
        assert loop_threads == [False]


# ---------------------------------------------------------------------------
# Related searches / common patterns
# ---------------------------------------------------------------------------

class TestResultContext:

    def test_related_searches_for_single_match(self):
        response = asyncio.run(_service().search("CustTable"))
        assert [r.query for r in response.related_searches] == [
            "CustHelper", "CustTableService", "VendTable", "Cust",
        ]

    def test_common_patterns_for_role_names(self):
        response = asyncio.run(_service().search("Dimension"))
        texts = [p.pattern for p in response.common_patterns]
        assert any(t.startswith("Helper classes found") for t in texts)
        assert any(t.startswith("Service classes found") for t in texts)

    def test_empty_results_have_no_context(self):
        response = asyncio.run(_service().search("DimnesionAttribute"))
        assert response.related_searches == []
        assert response.common_patterns == []

    def test_context_survives_the_cache(self):
        service = _service()

        async def _run():
            await service.search("CustTable")
            return await service.search("CustTable")

        response = asyncio.run(_run())
        assert response.from_cache
        assert response.related_searches[0].query == "CustHelper"

    def test_rendered(self):
        text = render_response(asyncio.run(_service().search("Dimension")))
        assert "### Related searches" in text
        assert '- **"DimensionService"** - Service classes for business logic' in text
        assert "### Common patterns" in text


# ---------------------------------------------------------------------------
# Batch search
# ---------------------------------------------------------------------------

class _BarrierIndex(_MemoryIndex):
    """search_symbols only returns once *parties* calls are in flight together."""

    def __init__(self, names, parties):
        super().__init__(names)
        self.barrier = threading.Barrier(parties, timeout=5)

    def search_symbols(self, query, limit=20, types=None):
        self.barrier.wait()
        return super().search_symbols(query, limit, types)


class TestBatchSearch:

    def test_queries_run_concurrently(self):
        index = _BarrierIndex(_NAMES, parties=3)
        batch = asyncio.run(_service(index).search_batch(
            ["CustTable", "DimensionHelper", "DimensionService"]))
        assert batch.success_count == 3
        assert [len(i.response.results) for i in batch.items] == [1, 1, 1]

    def test_failures_are_reported_per_query(self):
        batch = asyncio.run(_service().search_batch([
            "CustTable",
            {"query": ""},
            BatchQuery(query="Dimension", type="widget"),
            {"query": "DimensionHelper", "limit": 1},
        ]))
        assert [i.success for i in batch.items] == [True, False, False, True]
        assert "must not be empty" in batch.items[1].error
        assert batch.items[1].response is None
        assert batch.items[3].response.limit == 1

    @pytest.mark.parametrize("count", [0, 11])
    def test_batch_size_bounds(self, count):
        with pytest.raises(InvalidQueryError):
            asyncio.run(_service().search_batch(["CustTable"] * count))

    def test_ten_queries_accepted(self):
        batch = asyncio.run(_service().search_batch([f"Cust{i}" for i in range(10)]))
        assert len(batch.items) == 10

    def test_to_dict_and_render(self):
        batch = asyncio.run(_service().search_batch(["CustTable", ""]))
        data = batch.to_dict()
        assert data["success_count"] == 1
        assert data["items"][0]["response"]["query"] == "CustTable"
        assert data["items"][1]["success"] is False

        text = render_batch(batch)
        assert text.startswith("Batch search: 2 queries")
        assert '## Query 1: "CustTable"' in text
        assert "[EXTERNAL] [CLASS] CustTable" in text
        assert '## Query 2: ""\n\nError: Search query must not be empty' in text
