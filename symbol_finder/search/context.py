"""
Follow-up context for non-empty result sets: related searches worth trying
next and patterns shared by the matched symbols.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from typing import Optional, Sequence

from ..index.models import Symbol, SymbolKind
from .term_graph import leading_word

MAX_RELATED_SEARCHES = 5

# Result counts that make a query look too broad / too narrow
BROAD_RESULT_COUNT = 15
NARROW_RESULT_COUNT = 3

# (term in query, counterpart term in the same domain)
_COUNTERPARTS = [
    ("cust", "Vend"),
    ("sales", "Purch"),
]

_ROLE_PATTERNS = [
    ("Helper", "Helper classes found - typically contain reusable utility methods"),
    ("Service", "Service classes found - typically contain business logic"),
    ("Controller", "Controller classes found - typically handle UI/form logic"),
]


@dataclass(frozen=True)
class RelatedSearch:
    query: str
    reason: str

    def to_dict(self) -> dict:
        return {"query": self.query, "reason": self.reason}

    @classmethod
    def from_dict(cls, data: dict) -> "RelatedSearch":
        return cls(query=data["query"], reason=data.get("reason", ""))


@dataclass(frozen=True)
class CommonPattern:
    pattern: str
    frequency: Optional[int] = None

    def to_dict(self) -> dict:
        return {"pattern": self.pattern, "frequency": self.frequency}

    @classmethod
    def from_dict(cls, data: dict) -> "CommonPattern":
        return cls(pattern=data["pattern"], frequency=data.get("frequency"))


def _base_class(sym: Symbol) -> Optional[str]:
    if sym.extends_class and sym.extends_class != "Object":
        return sym.extends_class
    return None


def related_searches(
    query: str,
    symbols: Sequence[Symbol],
    max_results: int = MAX_RELATED_SEARCHES,
) -> list[RelatedSearch]:
    """
    Queries a user is likely to run after *query* matched *symbols*.

    Derived from the first matched class (its base class, helper and
    service companions), matched tables (line tables), domain counterparts
    (``Cust`` -> ``Vend``, ``Sales`` -> ``Purch``) and the size of the
    result set.  *query* itself and repeated queries are dropped.
    """
    q = query.lower()
    found: list[RelatedSearch] = []

    classes = [s for s in symbols if s.kind == SymbolKind.CLASS]
    if classes:
        first = classes[0]
        base = _base_class(first)
        if base:
            found.append(RelatedSearch(base, f"Base class of {first.name}"))
        if "helper" not in q and "Table" in first.name:
            found.append(RelatedSearch(first.name.replace("Table", "Helper"),
                                       "Helper class for common operations"))
        if "service" not in q:
            found.append(RelatedSearch(f"{query}Service", "Service classes for business logic"))

    if "line" not in q and any(s.kind == SymbolKind.TABLE for s in symbols):
        found.append(RelatedSearch(f"{query}Line", "Related line table"))

    for term, counterpart in _COUNTERPARTS:
        if term in q and counterpart.lower() not in q:
            found.append(RelatedSearch(
                re.sub(term, counterpart, query, flags=re.IGNORECASE),
                f"{counterpart} equivalent",
            ))

    if len(symbols) > BROAD_RESULT_COUNT and "helper" not in q:
        found.append(RelatedSearch(f"{query}Helper", "Narrow down to helper classes"))
    if len(symbols) < NARROW_RESULT_COUNT:
        broader = leading_word(query)
        if broader.lower() != q:
            found.append(RelatedSearch(broader, "Broader search term"))

    seen = {q}
    unique: list[RelatedSearch] = []
    for r in found:
        if r.query.lower() in seen:
            continue
        seen.add(r.query.lower())
        unique.append(r)
    return unique[:max_results]


def common_patterns(symbols: Sequence[Symbol]) -> list[CommonPattern]:
    """
    Patterns shared by *symbols*: the most common base class (when more
    than one symbol extends it) and the role names present.
    """
    if not symbols:
        return []
    patterns: list[CommonPattern] = []

    bases = Counter(b for b in (_base_class(s) for s in symbols) if b)
    if bases:
        base, count = bases.most_common(1)[0]
        if count > 1:
            patterns.append(CommonPattern(f"{count} classes extend {base}", count))

    for role, text in _ROLE_PATTERNS:
        if any(role in s.name for s in symbols):
            patterns.append(CommonPattern(text))
    return patterns


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def format_related_searches(related: list[RelatedSearch]) -> str:
    if not related:
        return ""
    lines = ["\n### Related searches"]
    lines += [f'- **"{r.query}"** - {r.reason}' for r in related]
    return "\n".join(lines)


def format_common_patterns(patterns: list[CommonPattern]) -> str:
    if not patterns:
        return ""
    lines = ["\n### Common patterns"]
    for p in patterns:
        freq = f" (found {p.frequency}x)" if p.frequency else ""
        lines.append(f"- {p.pattern}{freq}")
    return "\n".join(lines)
