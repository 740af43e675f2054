"""
NetworkX-based term relationship graph over the known symbol vocabulary.

Every known name becomes a TERM node linked to a ROOT family node (the name
with its role suffix stripped) and a PREFIX family node (its leading
CamelCase word).  Terms sharing a family are related.  Optional co-usage
edges between terms record how often one symbol uses another.

Suggestions drawn from this graph only ever name terms that exist.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

import networkx as nx

from ..index.models import Symbol
from .fuzzy import extract_root_term

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Node / Edge type constants
# ---------------------------------------------------------------------------

class NodeType:
    TERM = "TERM"
    ROOT = "ROOT"
    PREFIX = "PREFIX"


class EdgeType:
    SHARES_ROOT = "SHARES_ROOT"
    SHARES_PREFIX = "SHARES_PREFIX"
    CO_USED = "CO_USED"


# Shorter leading words ("A", "DP") would relate unrelated terms
MIN_PREFIX_LENGTH = 3

_LEADING_WORD = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z0-9]+|[A-Z]+")


def _term_id(key: str) -> str:
    return f"TERM:{key}"


def _root_id(key: str) -> str:
    return f"ROOT:{key}"


def _prefix_id(key: str) -> str:
    return f"PREFIX:{key}"


def leading_word(name: str) -> str:
    """First CamelCase word of *name* (``CustTable`` -> ``Cust``)."""
    m = _LEADING_WORD.match(name)
    return m.group(0) if m else name


@dataclass(frozen=True)
class _Snapshot:
    graph: nx.Graph = field(default_factory=nx.Graph)
    vocabulary: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# TermRelationshipGraph
# ---------------------------------------------------------------------------

class TermRelationshipGraph:
    """
    Relationship index over a vocabulary snapshot.

    :meth:`build` is the only mutation: it constructs a complete new
    snapshot and swaps it in with a single assignment, so readers see
    either the old graph or the new one, never a half-built one.
    """

    def __init__(self) -> None:
        self._snapshot = _Snapshot()

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def build(self, vocabulary: Iterable[str],
              symbols: Optional[Iterable[Symbol]] = None) -> None:
        """
        Replace the graph with one built from *vocabulary*.

        Parameters
        ----------
        vocabulary:
            All currently known names.  Names are compared ignoring case;
            the first spelling seen is the one reported back.
        symbols:
            Optional symbols whose ``used_types``, ``method_calls``,
            ``parent_name`` and ``extends_class`` add weighted co-usage
            edges.  References to unknown names are ignored.
        """
        t0 = time.perf_counter()
        g = nx.Graph()
        ordered: list[str] = []

        for name in vocabulary:
            name = name.strip()
            key = name.lower()
            if not key or g.has_node(_term_id(key)):
                continue
            tid = _term_id(key)
            g.add_node(tid, node_type=NodeType.TERM, name=name, order=len(ordered))
            ordered.append(name)

            root_key = extract_root_term(name).lower()
            rid = _root_id(root_key)
            if not g.has_node(rid):
                g.add_node(rid, node_type=NodeType.ROOT, name=root_key)
            g.add_edge(tid, rid, type=EdgeType.SHARES_ROOT)

            prefix_key = leading_word(name).lower()
            if len(prefix_key) >= MIN_PREFIX_LENGTH:
                pid = _prefix_id(prefix_key)
                if not g.has_node(pid):
                    g.add_node(pid, node_type=NodeType.PREFIX, name=prefix_key)
                g.add_edge(tid, pid, type=EdgeType.SHARES_PREFIX)

        if symbols is not None:
            self._add_usage_edges(g, symbols)

        self._snapshot = _Snapshot(graph=g, vocabulary=tuple(ordered))
        elapsed = (time.perf_counter() - t0) * 1000
        logger.info("Built term graph: %d terms, %d edges in %.1fms",
                    len(ordered), g.number_of_edges(), elapsed)

    @staticmethod
    def _add_usage_edges(g: nx.Graph, symbols: Iterable[Symbol]) -> None:
        for sym in symbols:
            base = _term_id(sym.name.lower())
            if not g.has_node(base):
                continue
            related = list(sym.used_types) + list(sym.method_calls)
            related += [n for n in (sym.parent_name, sym.extends_class) if n]
            for other in related:
                oid = _term_id(other.strip().lower())
                if oid == base or not g.has_node(oid):
                    continue
                if g.has_edge(base, oid):
                    g[base][oid]["weight"] += 1
                else:
                    g.add_edge(base, oid, type=EdgeType.CO_USED, weight=1)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def vocabulary(self) -> tuple[str, ...]:
        """The known terms, in the order they were first seen."""
        return self._snapshot.vocabulary

    @property
    def size(self) -> int:
        return len(self._snapshot.vocabulary)

    def contains(self, term: str) -> bool:
        return self._snapshot.graph.has_node(_term_id(term.lower()))

    def _family(self, g: nx.Graph, family_id: str) -> list[str]:
        if not g.has_node(family_id):
            return []
        members = [g.nodes[n] for n in g.neighbors(family_id)]
        return [m["name"] for m in sorted(members, key=lambda a: a["order"])]

    def related_to(self, term: str, limit: Optional[int] = None) -> list[str]:
        """
        Known terms structurally related to *term*.

        Terms with the same root come first, then terms with the same
        leading word, each group in vocabulary order.  *term* itself is
        never included.  *term* does not need to be known.
        """
        g = self._snapshot.graph
        key = term.lower()
        candidates = self._family(g, _root_id(extract_root_term(term).lower()))
        prefix_key = leading_word(term).lower()
        if len(prefix_key) >= MIN_PREFIX_LENGTH:
            candidates += self._family(g, _prefix_id(prefix_key))

        seen = {key}
        related: list[str] = []
        for name in candidates:
            if name.lower() in seen:
                continue
            seen.add(name.lower())
            related.append(name)
            if limit is not None and len(related) >= limit:
                break
        return related

    def is_known_root(self, term: str) -> bool:
        """
        True if *term* has no role suffix and other known terms reduce to it.

        ``Dimension`` is a known root when ``DimensionHelper`` is known.
        """
        if extract_root_term(term) != term:
            return False
        g = self._snapshot.graph
        key = term.lower()
        return any(name.lower() != key for name in self._family(g, _root_id(key)))

    def related_by_usage(self, term: str, limit: int = 5) -> list[tuple[str, int]]:
        """Terms most often used together with *term*, as ``(name, weight)`` pairs."""
        g = self._snapshot.graph
        tid = _term_id(term.lower())
        if not g.has_node(tid):
            return []
        pairs = [
            (g.nodes[n]["name"], g[tid][n]["weight"], g.nodes[n]["order"])
            for n in g.neighbors(tid)
            if g[tid][n].get("type") == EdgeType.CO_USED
        ]
        pairs.sort(key=lambda p: (-p[1], p[2]))
        return [(name, weight) for name, weight, _ in pairs[:limit]]

    def popularity(self, term: str) -> int:
        """Total co-usage weight of *term*; 0 for unknown terms."""
        g = self._snapshot.graph
        tid = _term_id(term.lower())
        if not g.has_node(tid):
            return 0
        return sum(
            attrs["weight"]
            for _, _, attrs in g.edges(tid, data=True)
            if attrs.get("type") == EdgeType.CO_USED
        )

    def stats(self) -> dict:
        g = self._snapshot.graph
        by_node: dict[str, int] = {}
        for _, attrs in g.nodes(data=True):
            nt = attrs.get("node_type", "unknown")
            by_node[nt] = by_node.get(nt, 0) + 1
        return {
            "term_count": len(self._snapshot.vocabulary),
            "node_count": g.number_of_nodes(),
            "edge_count": g.number_of_edges(),
            "by_node_type": by_node,
        }
