"""
Search layer: fuzzy matching, the term relationship graph, hybrid search
over index and workspace, query suggestions and result context.
"""

from .context import CommonPattern, RelatedSearch, common_patterns, related_searches
from .fuzzy import (
    FuzzyMatch,
    find_fuzzy_matches,
    generate_broader_searches,
    generate_narrower_searches,
    is_probable_typo,
    levenshtein_distance,
    relevance_score,
    similarity_score,
)
from .hybrid import ExternalResult, HybridSearch, PatternSearchResult, WorkspaceResult
from .service import (
    BatchItem,
    BatchQuery,
    BatchResponse,
    SearchResponse,
    SymbolSearchService,
)
from .suggestions import SearchSuggestion, SuggestionEngine, format_suggestions
from .term_graph import TermRelationshipGraph

__all__ = [
    "CommonPattern", "RelatedSearch", "common_patterns", "related_searches",
    "FuzzyMatch", "find_fuzzy_matches", "generate_broader_searches",
    "generate_narrower_searches", "is_probable_typo", "levenshtein_distance",
    "relevance_score", "similarity_score",
    "ExternalResult", "HybridSearch", "PatternSearchResult", "WorkspaceResult",
    "BatchItem", "BatchQuery", "BatchResponse", "SearchResponse", "SymbolSearchService",
    "SearchSuggestion", "SuggestionEngine", "format_suggestions",
    "TermRelationshipGraph",
]
