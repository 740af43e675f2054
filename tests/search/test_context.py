"""
Unit tests for symbol_finder.search.context
"""

from __future__ import annotations

from symbol_finder.index.models import Symbol, SymbolKind
from symbol_finder.search.context import (
    CommonPattern,
    RelatedSearch,
    common_patterns,
    format_common_patterns,
    format_related_searches,
    related_searches,
)


def _sym(name, kind=SymbolKind.CLASS, **kwargs) -> Symbol:
    return Symbol(name=name, kind=kind, model="App", file_path=f"/ext/{name}.xml", **kwargs)


def _queries(related):
    return [r.query for r in related]


class TestRelatedSearches:

    def test_base_class_of_first_class(self):
        related = related_searches("LedgerPosting", [
            _sym("LedgerPostingController", extends_class="SysOperationServiceController"),
            _sym("LedgerPostingHelper", extends_class="RunBase"),
        ])
        assert related[0] == RelatedSearch(
            "SysOperationServiceController", "Base class of LedgerPostingController")

    def test_object_is_not_a_base_class(self):
        related = related_searches("Ledger", [_sym("LedgerHelper", extends_class="Object")])
        assert "Object" not in _queries(related)

    def test_line_table_for_tables(self):
        related = related_searches("SalesTable", [_sym("SalesTable", SymbolKind.TABLE)])
        assert RelatedSearch("SalesTableLine", "Related line table") in related

    def test_no_line_table_when_query_has_line(self):
        related = related_searches("SalesLine", [_sym("SalesLine", SymbolKind.TABLE)])
        assert "SalesLineLine" not in _queries(related)

    def test_domain_counterparts(self):
        related = related_searches("SalesTable", [_sym("SalesTable", SymbolKind.TABLE)])
        assert RelatedSearch("PurchTable", "Purch equivalent") in related
        related = related_searches("custinvoice", [_sym("CustInvoiceJour", SymbolKind.TABLE)])
        assert "Vendinvoice" in _queries(related)

    def test_broad_result_set_narrows_to_helpers(self):
        symbols = [_sym(f"Inventory{i}", SymbolKind.METHOD) for i in range(16)]
        related = related_searches("Inventory", symbols)
        assert _queries(related) == ["InventoryHelper"]

    def test_small_result_set_offers_leading_word(self):
        related = related_searches("InventTransOrigin", [_sym("InventTransOrigin", SymbolKind.TABLE)])
        assert RelatedSearch("Invent", "Broader search term") in related

    def test_query_itself_and_repeats_dropped(self):
        related = related_searches("CustHelper", [_sym("CustHelper")])
        queries = [q.lower() for q in _queries(related)]
        assert "custhelper" not in queries
        assert len(queries) == len(set(queries))

    def test_capped(self):
        symbols = [_sym("CustTable", extends_class="Common"), _sym("CustTable", SymbolKind.TABLE)]
        assert len(related_searches("CustTable", symbols, max_results=2)) == 2

    def test_no_symbols(self):
        assert related_searches("Cust", []) == [RelatedSearch("Vend", "Vend equivalent")]


class TestCommonPatterns:

    def test_empty(self):
        assert common_patterns([]) == []

    def test_shared_base_class(self):
        patterns = common_patterns([
            _sym("A", extends_class="RunBase"),
            _sym("B", extends_class="RunBase"),
            _sym("C", extends_class="SysOperation"),
        ])
        assert patterns[0] == CommonPattern("2 classes extend RunBase", 2)

    def test_single_use_base_class_ignored(self):
        assert common_patterns([_sym("A", extends_class="RunBase")]) == []

    def test_role_names(self):
        patterns = common_patterns([_sym("CustHelper"), _sym("SalesController")])
        texts = [p.pattern for p in patterns]
        assert texts == [
            "Helper classes found - typically contain reusable utility methods",
            "Controller classes found - typically handle UI/form logic",
        ]


class TestFormatting:

    def test_related(self):
        text = format_related_searches([RelatedSearch("VendTable", "Vend equivalent")])
        assert text == '\n### Related searches\n- **"VendTable"** - Vend equivalent'

    def test_patterns(self):
        text = format_common_patterns([CommonPattern("2 classes extend RunBase", 2),
                                       CommonPattern("Helper classes found")])
        assert "- 2 classes extend RunBase (found 2x)" in text
        assert text.endswith("- Helper classes found")

    def test_empty_sections(self):
        assert format_related_searches([]) == ""
        assert format_common_patterns([]) == ""

    def test_dict_round_trip(self):
        r = RelatedSearch("VendTable", "Vend equivalent")
        p = CommonPattern("2 classes extend RunBase", 2)
        assert RelatedSearch.from_dict(r.to_dict()) == r
        assert CommonPattern.from_dict(p.to_dict()) == p
