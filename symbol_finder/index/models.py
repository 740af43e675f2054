"""
Record shapes for entries of the persistent symbol catalog.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


class SymbolKind:
    CLASS = "class"
    TABLE = "table"
    METHOD = "method"
    FIELD = "field"
    ENUM = "enum"
    EDT = "edt"

    ALL: frozenset[str] = frozenset({CLASS, TABLE, METHOD, FIELD, ENUM, EDT})


def _split_list(value: Any) -> tuple[str, ...]:
    """Accept a list or a comma-separated string; return a clean tuple."""
    if not value:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return tuple(str(i).strip() for i in items if str(i).strip())


@dataclass(frozen=True)
class Symbol:
    """
    One indexed code entity.

    Identity is ``(name, kind)`` inside a ``model`` (plus ``parent_name`` for
    methods and fields).  Names compare case-insensitively.
    """
    name: str
    kind: str                          # see SymbolKind
    model: str
    file_path: str
    parent_name: Optional[str] = None
    signature: Optional[str] = None
    description: Optional[str] = None
    tags: tuple[str, ...] = ()
    source_snippet: Optional[str] = None
    complexity: Optional[int] = None   # 0-100
    used_types: tuple[str, ...] = field(default_factory=tuple)
    method_calls: tuple[str, ...] = field(default_factory=tuple)
    extends_class: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        return f"{self.parent_name}.{self.name}" if self.parent_name else self.name

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "kind": self.kind,
            "model": self.model,
            "file_path": self.file_path,
            "parent_name": self.parent_name,
            "signature": self.signature,
            "description": self.description,
            "tags": list(self.tags),
            "source_snippet": self.source_snippet,
            "complexity": self.complexity,
            "used_types": list(self.used_types),
            "method_calls": list(self.method_calls),
            "extends_class": self.extends_class,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Symbol":
        """
        Build a Symbol from a plain dict.

        ``type`` is accepted as an alias of ``kind``.  Raises ``ValueError``
        for a missing name or an unknown kind.
        """
        name = str(data.get("name") or "").strip()
        kind = str(data.get("kind") or data.get("type") or "").lower()
        if not name:
            raise ValueError("symbol record has no name")
        if kind not in SymbolKind.ALL:
            raise ValueError(f"symbol {name!r} has unknown kind {kind!r}")
        complexity = data.get("complexity")
        return cls(
            name=name,
            kind=kind,
            model=str(data.get("model") or ""),
            file_path=str(data.get("file_path") or ""),
            parent_name=data.get("parent_name") or None,
            signature=data.get("signature") or None,
            description=data.get("description") or None,
            tags=_split_list(data.get("tags")),
            source_snippet=data.get("source_snippet") or None,
            complexity=int(complexity) if complexity is not None else None,
            used_types=_split_list(data.get("used_types")),
            method_calls=_split_list(data.get("method_calls")),
            extends_class=data.get("extends_class") or None,
        )
