"""
Fuzzy string matching for typo detection, query broadening/narrowing and
relevance scoring.

Edit distances come from rapidfuzz's Levenshtein implementation.  Every
function in this module is pure: results depend only on the arguments.
All comparisons are case-insensitive.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from rapidfuzz import process as rfprocess
from rapidfuzz.distance import Levenshtein

# ---------------------------------------------------------------------------
# Role-suffix vocabulary
# ---------------------------------------------------------------------------

# Ordered: the first matching suffix is the one stripped.
ROLE_SUFFIXES: tuple[str, ...] = (
    "Helper", "Service", "Manager", "Controller", "Handler",
    "Builder", "Factory", "Provider", "Processor", "Engine",
    "Table", "Contract", "DP", "Form", "Query",
)

# Relevance tiers used to rank search candidates
RELEVANCE_EXACT = 100
RELEVANCE_PREFIX = 80
RELEVANCE_SUBSTRING = 50
RELEVANCE_FUZZY = 30
RELEVANCE_OTHER = 10

FUZZY_RELEVANCE_MAX_DISTANCE = 3


@dataclass(frozen=True)
class FuzzyMatch:
    """A candidate term close to the query."""
    term: str
    score: float     # 0-1, 1.0 only for an exact case-insensitive match
    distance: int


# ---------------------------------------------------------------------------
# Edit distance / similarity
# ---------------------------------------------------------------------------

def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance between *a* and *b*, ignoring case.  Every edit costs 1."""
    return Levenshtein.distance(a, b, processor=str.lower)


def similarity_score(a: str, b: str) -> float:
    """Return ``1 - distance / longest length`` clamped to ``[0, 1]``."""
    score = Levenshtein.normalized_similarity(a, b, processor=str.lower)
    return min(1.0, max(0.0, score))


def find_fuzzy_matches(
    query: str,
    candidates: Iterable[str],
    min_score: float = 0.7,
    max_results: int = 5,
) -> list[FuzzyMatch]:
    """
    Find candidates similar to *query*.

    Parameters
    ----------
    query:
        The (possibly misspelled) search term.
    candidates:
        Known terms to compare against.  A candidate equal to *query*
        (ignoring case) is never returned.
    min_score:
        Minimum :func:`similarity_score` to keep a candidate.
    max_results:
        Maximum number of matches returned.

    Returns
    -------
    list[FuzzyMatch]
        Best first.  Equal scores keep the candidates' original order.
    """
    if max_results <= 0:
        return []
    choices = list(candidates)
    q = query.lower()
    hits = rfprocess.extract(
        query,
        choices,
        scorer=Levenshtein.normalized_similarity,
        processor=str.lower,
        score_cutoff=min_score,
        limit=None,
    )
    # extract() does not promise an order among equal scores
    hits = sorted(
        (h for h in hits if choices[h[2]].lower() != q),
        key=lambda h: (-h[1], h[2]),
    )
    return [
        FuzzyMatch(
            term=choice,
            score=min(1.0, max(0.0, score)),
            distance=levenshtein_distance(query, choice),
        )
        for choice, score, _ in hits[:max_results]
    ]


def is_probable_typo(a: str, b: str, threshold: float = 0.85) -> bool:
    """True when *a* and *b* are similar enough to call one a typo of the other."""
    return similarity_score(a, b) >= threshold


# ---------------------------------------------------------------------------
# Root terms, broader and narrower queries
# ---------------------------------------------------------------------------

def _strip_suffix(name: str, suffix: str) -> str | None:
    """
    Return *name* without *suffix*, or None when it does not end with it.

    Mixed-case names must match the suffix exactly so that ``Platform`` is
    not read as ``Plat`` + ``Form``.  Single-case names (``custtable``,
    ``CUSTTABLE``) carry no word boundaries and match case-insensitively.
    """
    if len(name) <= len(suffix):
        return None
    if name.endswith(suffix):
        return name[: -len(suffix)]
    if (name.islower() or name.isupper()) and name.lower().endswith(suffix.lower()):
        return name[: -len(suffix)]
    return None


def extract_root_term(name: str) -> str:
    """Strip the first matching role suffix from *name*; return it unchanged otherwise."""
    for suffix in ROLE_SUFFIXES:
        root = _strip_suffix(name, suffix)
        if root is not None:
            return root
    return name


def has_role_suffix(name: str) -> bool:
    return extract_root_term(name) != name


def generate_broader_searches(query: str) -> list[str]:
    """
    Queries that should match more than *query* does.

    The root term comes first (when a suffix was stripped), followed by a
    wildcard form of the query.
    """
    suggestions: list[str] = []
    root = extract_root_term(query)
    if root != query:
        suggestions.append(root)
    if not query.endswith("*"):
        suggestions.append(f"{query}*")

    seen: set[str] = set()
    deduped: list[str] = []
    for s in suggestions:
        if s not in seen:
            seen.add(s)
            deduped.append(s)
    return deduped


def generate_narrower_searches(query: str) -> list[str]:
    """``query + suffix`` for every role suffix, or ``[]`` if *query* already has one."""
    if has_role_suffix(query):
        return []
    return [f"{query}{suffix}" for suffix in ROLE_SUFFIXES]


# ---------------------------------------------------------------------------
# Relevance
# ---------------------------------------------------------------------------

def relevance_score(query: str, name: str) -> int:
    """
    Rank *name* against *query*.

    exact (100) > prefix (80) > substring (50) > edit distance <= 3 (30)
    > anything else (10).  Deterministic; depends on nothing but the inputs.
    """
    q = query.lower()
    n = name.lower()
    if n == q:
        return RELEVANCE_EXACT
    if n.startswith(q):
        return RELEVANCE_PREFIX
    if q in n:
        return RELEVANCE_SUBSTRING
    if levenshtein_distance(q, n) <= FUZZY_RELEVANCE_MAX_DISTANCE:
        return RELEVANCE_FUZZY
    return RELEVANCE_OTHER
