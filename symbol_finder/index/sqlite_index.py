"""
SQLite-backed symbol catalog.

Reference implementation of :class:`~symbol_finder.index.base.SymbolIndex`.
Name matching is substring based (``*`` turns a query into a prefix/glob
pattern); results are ordered exact → prefix → shorter names first.  No
full-text ranking is performed.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sqlite3
from collections import Counter
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional, Sequence

from .base import SymbolIndex
from .models import Symbol, SymbolKind

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS symbols (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT    NOT NULL,
    kind            TEXT    NOT NULL,
    parent_key      TEXT    NOT NULL DEFAULT '',
    parent_name     TEXT    DEFAULT NULL,
    model           TEXT    NOT NULL DEFAULT '',
    file_path       TEXT    NOT NULL DEFAULT '',
    signature       TEXT    DEFAULT NULL,
    description     TEXT    DEFAULT NULL,
    tags            TEXT    DEFAULT NULL,
    source_snippet  TEXT    DEFAULT NULL,
    complexity      INTEGER DEFAULT NULL,
    used_types      TEXT    DEFAULT NULL,
    method_calls    TEXT    DEFAULT NULL,
    extends_class   TEXT    DEFAULT NULL,
    UNIQUE (name, kind, parent_key, model)
);

CREATE INDEX IF NOT EXISTS idx_symbols_name   ON symbols(name COLLATE NOCASE);
CREATE INDEX IF NOT EXISTS idx_symbols_kind   ON symbols(kind, name);
CREATE INDEX IF NOT EXISTS idx_symbols_parent ON symbols(parent_name, kind)
    WHERE parent_name IS NOT NULL;
"""

_PATTERN_STOPWORDS = frozenset({"with", "which", "will", "that", "this", "from", "have"})

# (suffixes, pattern label) checked in order
_ROLE_PATTERNS: list[tuple[tuple[str, ...], str]] = [
    (("Helper",), "Helper"),
    (("Service",), "Service"),
    (("Controller",), "Controller"),
    (("Handler",), "Handler"),
    (("Repository", "Repo"), "Repository"),
    (("Manager",), "Manager"),
    (("Factory",), "Factory"),
    (("Builder",), "Builder"),
    (("Processor",), "Processor"),
    (("Validator",), "Validator"),
]

DEFAULT_VOCABULARY_LIMIT = 5000
DEFAULT_ANALYSIS_LIMIT = 2000


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _join(values: Sequence[str]) -> Optional[str]:
    return ",".join(values) if values else None


def _role_pattern(name: str) -> str:
    for suffixes, label in _ROLE_PATTERNS:
        if any(name.endswith(s) for s in suffixes):
            return label
    return "Unknown"


class SQLiteSymbolIndex(SymbolIndex):
    """
    Symbol catalog stored in a single SQLite file.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Will be created if absent.
    vocabulary_limit:
        Maximum number of distinct names returned by
        :meth:`get_all_symbol_names`.
    """

    def __init__(self, db_path: str,
                 vocabulary_limit: int = DEFAULT_VOCABULARY_LIMIT) -> None:
        self._db_path = db_path
        self._vocabulary_limit = vocabulary_limit
        os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
        self._init_db()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _connect(self):
        """Yield a connected SQLite connection with WAL mode for concurrency."""
        conn = sqlite3.connect(self._db_path, timeout=10)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(_SCHEMA)

    @staticmethod
    def _row_to_symbol(row: sqlite3.Row) -> Symbol:
        return Symbol.from_dict(dict(row))

    # ------------------------------------------------------------------
    # Writes (used by loaders and tests; the search core never writes)
    # ------------------------------------------------------------------

    def upsert_symbols(self, symbols: Iterable[Symbol]) -> int:
        """
        Insert or replace *symbols*.

        Returns
        -------
        int
            Number of records written.
        """
        rows = [
            (
                s.name, s.kind, s.parent_name or "", s.parent_name, s.model,
                s.file_path, s.signature, s.description, _join(s.tags),
                s.source_snippet, s.complexity, _join(s.used_types),
                _join(s.method_calls), s.extends_class,
            )
            for s in symbols
        ]
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO symbols (
                    name, kind, parent_key, parent_name, model, file_path,
                    signature, description, tags, source_snippet, complexity,
                    used_types, method_calls, extends_class
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(name, kind, parent_key, model) DO UPDATE SET
                    parent_name    = excluded.parent_name,
                    file_path      = excluded.file_path,
                    signature      = excluded.signature,
                    description    = excluded.description,
                    tags           = excluded.tags,
                    source_snippet = excluded.source_snippet,
                    complexity     = excluded.complexity,
                    used_types     = excluded.used_types,
                    method_calls   = excluded.method_calls,
                    extends_class  = excluded.extends_class
                """,
                rows,
            )
        logger.debug("Upserted %d symbols into %s", len(rows), self._db_path)
        return len(rows)

    def symbol_count(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) AS n FROM symbols").fetchone()["n"]

    # ------------------------------------------------------------------
    # SymbolIndex API
    # ------------------------------------------------------------------

    def search_symbols(
        self, query: str, limit: int = 20, types: Optional[Sequence[str]] = None
    ) -> list[Symbol]:
        """
        Return up to *limit* symbols whose name contains *query*.

        A ``*`` in the query is a glob wildcard and anchors the match at the
        start of the name (``Dim*`` is a prefix search).
        """
        term = query.strip()
        if "*" in term:
            pattern = _escape_like(term).replace("*", "%")
        else:
            pattern = f"%{_escape_like(term)}%"
        bare = term.replace("*", "")
        params: list = [pattern]

        sql = "SELECT * FROM symbols WHERE name LIKE ? ESCAPE '\\'"
        if types:
            sql += f" AND kind IN ({','.join('?' for _ in types)})"
            params.extend(types)
        sql += """
            ORDER BY
                CASE
                    WHEN lower(name) = lower(?) THEN 0
                    WHEN name LIKE ? ESCAPE '\\' THEN 1
                    ELSE 2
                END,
                length(name),
                name
            LIMIT ?
        """
        params.extend([bare, f"{_escape_like(bare)}%", limit])

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_symbol(r) for r in rows]

    def get_symbol_by_name(self, name: str, kind: str) -> Optional[Symbol]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM symbols WHERE name = ? COLLATE NOCASE AND kind = ? "
                "ORDER BY id LIMIT 1",
                (name, kind),
            ).fetchone()
        return self._row_to_symbol(row) if row is not None else None

    def get_all_symbol_names(self) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT DISTINCT name FROM symbols ORDER BY name LIMIT ?",
                (self._vocabulary_limit,),
            ).fetchall()
        return [r["name"] for r in rows]

    def iter_symbols(self, limit: int = DEFAULT_ANALYSIS_LIMIT) -> Iterator[Symbol]:
        """Symbols with usage or ownership data, for relationship analysis."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM symbols
                WHERE used_types IS NOT NULL
                   OR method_calls IS NOT NULL
                   OR parent_name IS NOT NULL
                   OR extends_class IS NOT NULL
                ORDER BY id
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        for r in rows:
            yield self._row_to_symbol(r)

    def analyze_code_patterns(self, scenario: str, limit: int = 20) -> dict:
        """
        Summarise the classes that match *scenario*.

        The scenario is split into keywords (longer than three characters,
        minus common filler words); a class matches when any keyword occurs
        in its name, tags or description.

        Returns
        -------
        dict
            ``scenario``, ``total_matches``, ``common_methods`` and
            ``common_dependencies`` (``{"name", "frequency"}`` lists),
            ``example_classes`` and ``patterns``
            (``{"pattern_type", "count", "examples"}``).
        """
        keywords = [
            w for w in re.split(r"\s+", scenario.lower())
            if len(w) > 3 and w not in _PATTERN_STOPWORDS
        ]
        terms = keywords or [scenario.strip().lower()]

        clause = " OR ".join(
            "(name LIKE ? ESCAPE '\\' OR tags LIKE ? ESCAPE '\\' "
            "OR description LIKE ? ESCAPE '\\')"
            for _ in terms
        )
        params: list = []
        for t in terms:
            like = f"%{_escape_like(t)}%"
            params.extend([like, like, like])
        params.append(limit)

        with self._connect() as conn:
            classes = conn.execute(
                f"SELECT * FROM symbols WHERE kind = ? AND ({clause}) ORDER BY name LIMIT ?",
                [SymbolKind.CLASS, *params],
            ).fetchall()
            class_names = [c["name"] for c in classes]
            method_rows = []
            if class_names:
                method_rows = conn.execute(
                    f"SELECT name FROM symbols WHERE kind = ? AND parent_name IN "
                    f"({','.join('?' for _ in class_names)})",
                    [SymbolKind.METHOD, *class_names],
                ).fetchall()

        method_freq = Counter(r["name"] for r in method_rows)
        dependency_freq: Counter = Counter()
        patterns: dict[str, dict] = {}
        for cls in classes:
            for dep in (cls["used_types"] or "").split(","):
                dep = dep.strip()
                if dep:
                    dependency_freq[dep] += 1
            label = _role_pattern(cls["name"])
            entry = patterns.setdefault(label, {"pattern_type": label, "count": 0, "examples": []})
            entry["count"] += 1
            if len(entry["examples"]) < 5:
                entry["examples"].append(cls["name"])

        return {
            "scenario": scenario,
            "total_matches": len(classes),
            "common_methods": [
                {"name": n, "frequency": c} for n, c in method_freq.most_common(20)
            ],
            "common_dependencies": [
                {"name": n, "frequency": c} for n, c in dependency_freq.most_common(15)
            ],
            "example_classes": class_names[:10],
            "patterns": list(patterns.values()),
        }


# ---------------------------------------------------------------------------
# Loading symbol records from files
# ---------------------------------------------------------------------------

def iter_symbol_records(path: str) -> Iterator[Symbol]:
    """
    Yield :class:`Symbol` records from a JSON or JSON-lines file.

    ``.jsonl`` files hold one record per line.  Other files hold either a
    list of records or ``{"symbols": [...]}``.  Raises ``ValueError`` on a
    malformed record, naming the file and position.
    """
    with open(path, "r", encoding="utf-8") as fh:
        if path.endswith(".jsonl"):
            records = (
                (lineno, json.loads(line))
                for lineno, line in enumerate(fh, start=1)
                if line.strip()
            )
            for lineno, data in records:
                try:
                    yield Symbol.from_dict(data)
                except (ValueError, TypeError, AttributeError) as exc:
                    raise ValueError(f"{path}:{lineno}: {exc}") from exc
            return

        payload = json.load(fh)
    if isinstance(payload, dict):
        payload = payload.get("symbols", [])
    if not isinstance(payload, list):
        raise ValueError(f"{path}: expected a list of symbol records")
    for i, data in enumerate(payload):
        try:
            yield Symbol.from_dict(data)
        except (ValueError, TypeError, AttributeError) as exc:
            raise ValueError(f"{path}[{i}]: {exc}") from exc
