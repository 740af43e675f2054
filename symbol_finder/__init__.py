"""
symbol_finder — hybrid symbol search with query suggestions.

Public API for library usage::

    from symbol_finder import Config, SymbolSearchService

    service = SymbolSearchService.from_config(Config.load())
    response = asyncio.run(service.search("CustTable"))
"""

__version__ = "0.1.0"

from .config import Config
from .errors import InvalidQueryError, SymbolFinderError
from .search.service import SearchResponse, SymbolSearchService

__all__ = [
    "Config", "InvalidQueryError", "SymbolFinderError",
    "SearchResponse", "SymbolSearchService",
]
