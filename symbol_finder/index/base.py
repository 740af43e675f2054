from abc import ABC, abstractmethod
from typing import Iterable, Optional, Sequence

from .models import Symbol


class SymbolIndex(ABC):
    """
    Read interface of the persistent symbol catalog.

    Implementations are synchronous; the search layer moves calls off the
    event loop.  Any exception raised here is treated as "source
    unavailable" by the search layer.
    """

    @abstractmethod
    def search_symbols(
        self, query: str, limit: int = 20, types: Optional[Sequence[str]] = None
    ) -> list[Symbol]:
        """Symbols whose name matches *query* (substring, or prefix with ``*``)."""

    @abstractmethod
    def get_symbol_by_name(self, name: str, kind: str) -> Optional[Symbol]:
        """Exact (case-insensitive) lookup, or None."""

    @abstractmethod
    def get_all_symbol_names(self) -> list[str]:
        """Vocabulary snapshot used to build the term relationship graph."""

    @abstractmethod
    def analyze_code_patterns(self, scenario: str) -> dict:
        """Aggregate common methods, dependencies and role patterns for *scenario*."""

    def iter_symbols(self) -> Iterable[Symbol]:
        """Symbols carrying usage data, for co-usage relationships.  Optional."""
        return ()
