"""
Persistent symbol catalog: record types, the read interface used by the
search layer, and a SQLite reference implementation.
"""

from .base import SymbolIndex
from .models import Symbol, SymbolKind
from .sqlite_index import SQLiteSymbolIndex, iter_symbol_records

__all__ = ["Symbol", "SymbolKind", "SymbolIndex", "SQLiteSymbolIndex", "iter_symbol_records"]
