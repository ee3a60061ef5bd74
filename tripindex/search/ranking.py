# tripindex/search/ranking.py
from __future__ import annotations

import logging
import re
import sqlite3
from dataclasses import asdict, dataclass, field
from typing import Any

from rapidfuzz import fuzz, process

from tripindex.config import SearchConfig, load_settings
from tripindex.db import loads_list
from tripindex.exceptions import InvalidQueryError
from tripindex.search.normalize import tokenize
from tripindex.search.phonetic import phonetic_index, phonetic_keys

log = logging.getLogger(__name__)

REASON_SLUG_EXACT = "slug_exact"
REASON_TRIP_ID_EXACT = "trip_id_exact"
REASON_PRIMARY_EMAIL_EXACT = "primary_email_exact"
REASON_TRAVELER_EMAIL_MATCH = "traveler_email_match"
REASON_TOKEN_MATCH = "token_match"
REASON_PHONETIC_MATCH = "phonetic_match"
REASON_PARTIAL_MATCH = "partial_match"

# Highest tier first. Also the order reasons are reported in.
TIER_ORDER = (
    REASON_SLUG_EXACT,
    REASON_TRIP_ID_EXACT,
    REASON_PRIMARY_EMAIL_EXACT,
    REASON_TRAVELER_EMAIL_MATCH,
    REASON_TOKEN_MATCH,
    REASON_PHONETIC_MATCH,
    REASON_PARTIAL_MATCH,
)

MIN_PARTIAL_LENGTH = 3

_WS_RE = re.compile(r"\s+")
_EMAIL_RE = re.compile(r"[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}")

_SURFACE_SELECT = """
    SELECT
      trip_id,
      trip_name,
      trip_slug,
      status,
      start_date,
      end_date,
      destinations,
      primary_client_name,
      primary_client_email,
      traveler_names,
      traveler_emails,
      normalized_trip_name,
      normalized_destinations,
      normalized_travelers,
      normalized_emails,
      search_tokens,
      phonetic_tokens,
      traveler_count
    FROM trip_search_surface
    ORDER BY trip_id
"""


@dataclass(frozen=True)
class TripSearchParams:
    """
    Parameters for a trip search.

    limit:
      None or <= 0 falls back to the configured default; values above the
      configured maximum are capped.
    """

    query: str
    limit: int | None = None


@dataclass
class MatchResult:
    trip_id: int
    trip_name: str
    trip_slug: str | None
    score: int
    match_reasons: list[str] = field(default_factory=list)
    matched_tokens: list[str] = field(default_factory=list)
    traveler_names: list[str] = field(default_factory=list)
    traveler_emails: list[str] = field(default_factory=list)
    traveler_count: int = 0
    overlap_count: int = 0
    status: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    destinations: str | None = None
    primary_client_name: str | None = None
    primary_client_email: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class _QueryPlan:
    slug_candidate: str
    tokens: tuple[str, ...]
    keys: tuple[tuple[str, ...], ...]
    emails: tuple[str, ...]
    trip_ids: tuple[int, ...]
    weights: dict[str, int]


def tier_weights(max_query_tokens: int) -> dict[str, int]:
    """
    Score added per hit, by match reason.

    No tier fires more than max_query_tokens times for one row (emails are
    capped like tokens; slug and trip id fire at most once). With base
    max_query_tokens + 1, one hit in a tier outweighs every combination of
    hits in the tiers below it.
    """
    base = max(1, int(max_query_tokens)) + 1
    return {reason: base**power for power, reason in enumerate(reversed(TIER_ORDER))}


def slug_candidate(query: str) -> str:
    """
    "European Adventure 2025" -> "european-adventure-2025"
    """
    return _WS_RE.sub("-", query.strip().lower())


def extract_emails(query: str) -> list[str]:
    """
    Email addresses in a query, lowercased, first occurrence order.
    """
    out: list[str] = []
    for email in _EMAIL_RE.findall(query.lower()):
        _add_unique(out, email)
    return out


def _plan_query(query: str, max_tokens: int) -> _QueryPlan:
    tokens = tuple(tokenize(query)[:max_tokens])
    return _QueryPlan(
        slug_candidate=slug_candidate(query),
        tokens=tokens,
        keys=tuple(tuple(phonetic_keys(t)) for t in tokens),
        emails=tuple(extract_emails(query)[:max_tokens]),
        trip_ids=tuple(int(t) for t in tokens if t.isdigit() and int(t) > 0),
        weights=tier_weights(max_tokens),
    )


def resolve_limit(limit: int | None, cfg: SearchConfig) -> int:
    if limit is None or limit <= 0:
        return cfg.default_limit
    return min(int(limit), cfg.max_limit)


def _add_unique(items: list[str], value: str) -> None:
    if value not in items:
        items.append(value)


def _partial_hit(
    token: str,
    row_tokens: list[str],
    haystacks: list[str],
    threshold: int,
) -> str | None:
    """
    Return the row token a query token partially matches, or None.

    Substring containment in a normalized field is tried first, then a
    rapidfuzz ratio against the row's tokens.
    """
    if len(token) < MIN_PARTIAL_LENGTH:
        return None
    if any(token in h for h in haystacks):
        for rt in row_tokens:
            if token in rt:
                return rt
        return token
    best = process.extractOne(token, row_tokens, scorer=fuzz.ratio, score_cutoff=threshold)
    if best:
        return best[0]
    return None


def score_row(row: dict[str, Any], plan: _QueryPlan, cfg: SearchConfig) -> MatchResult:
    """
    Score one surface row against a planned query.

    Identity signals (slug, trip id, emails) are checked first. Each query
    token then lands in at most one tier: verbatim token, else phonetic
    key, else partial.
    """
    weights = plan.weights
    trip_id = int(row["trip_id"])
    traveler_emails = loads_list(row.get("traveler_emails"))
    row_tokens = (row.get("search_tokens") or "").split()
    row_token_set = set(row_tokens)
    row_keys = set((row.get("phonetic_tokens") or "").split())
    haystacks = [
        h
        for h in (
            row.get("normalized_trip_name") or "",
            row.get("normalized_destinations") or "",
            row.get("normalized_travelers") or "",
            row.get("normalized_emails") or "",
        )
        if h
    ]

    score = 0
    overlap = 0
    reasons: list[str] = []
    matched: list[str] = []
    key_index: dict[str, list[str]] | None = None

    slug = (row.get("trip_slug") or "").strip().lower()
    if slug and plan.slug_candidate == slug:
        score += weights[REASON_SLUG_EXACT]
        reasons.append(REASON_SLUG_EXACT)

    if trip_id in plan.trip_ids:
        score += weights[REASON_TRIP_ID_EXACT]
        reasons.append(REASON_TRIP_ID_EXACT)
        _add_unique(matched, str(trip_id))

    primary_email = (row.get("primary_client_email") or "").strip().lower()
    traveler_email_set = {e.strip().lower() for e in traveler_emails}
    for email in plan.emails:
        if primary_email and email == primary_email:
            score += weights[REASON_PRIMARY_EMAIL_EXACT]
            _add_unique(reasons, REASON_PRIMARY_EMAIL_EXACT)
            _add_unique(matched, email)
        elif email in traveler_email_set:
            score += weights[REASON_TRAVELER_EMAIL_MATCH]
            _add_unique(reasons, REASON_TRAVELER_EMAIL_MATCH)
            _add_unique(matched, email)

    for token, keys in zip(plan.tokens, plan.keys, strict=True):
        if token in row_token_set:
            score += weights[REASON_TOKEN_MATCH]
            overlap += 1
            _add_unique(reasons, REASON_TOKEN_MATCH)
            _add_unique(matched, token)
            continue

        hit_keys = [k for k in keys if k in row_keys]
        if hit_keys:
            score += weights[REASON_PHONETIC_MATCH]
            _add_unique(reasons, REASON_PHONETIC_MATCH)
            if key_index is None:
                key_index = phonetic_index(row_tokens)
            for k in hit_keys:
                for source in key_index.get(k, []):
                    _add_unique(matched, source)
            continue

        partial = _partial_hit(token, row_tokens, haystacks, cfg.partial_ratio_threshold)
        if partial is not None:
            score += weights[REASON_PARTIAL_MATCH]
            _add_unique(reasons, REASON_PARTIAL_MATCH)
            _add_unique(matched, partial)

    # Keep reasons in precedence order regardless of which token fired first.
    reasons.sort(key=TIER_ORDER.index)

    return MatchResult(
        trip_id=trip_id,
        trip_name=row.get("trip_name") or "",
        trip_slug=row.get("trip_slug"),
        score=score,
        match_reasons=reasons,
        matched_tokens=matched,
        traveler_names=loads_list(row.get("traveler_names")),
        traveler_emails=traveler_emails,
        traveler_count=int(row.get("traveler_count") or 0),
        overlap_count=overlap,
        status=row.get("status"),
        start_date=row.get("start_date"),
        end_date=row.get("end_date"),
        destinations=row.get("destinations"),
        primary_client_name=row.get("primary_client_name"),
        primary_client_email=row.get("primary_client_email"),
    )


def search_trips(
    conn: sqlite3.Connection,
    query: str,
    limit: int | None = None,
    *,
    config: SearchConfig | None = None,
) -> list[MatchResult]:
    """
    Rank stored search-surface rows against a free-text query.

    Ordering is by score, then token overlap, then trip id (all
    deterministic). Rows scoring below the configured floor are dropped.
    An empty or whitespace-only query returns [].
    """
    if not isinstance(query, str):
        raise InvalidQueryError(f"query must be a string; got {type(query).__name__}")
    if not query.strip():
        return []

    cfg = config or load_settings().search
    plan = _plan_query(query, cfg.max_query_tokens)
    if not plan.tokens and not plan.slug_candidate:
        return []

    cur = conn.execute(_SURFACE_SELECT)
    cols = [d[0] for d in cur.description]

    results: list[MatchResult] = []
    for raw in cur.fetchall():
        row = dict(zip(cols, tuple(raw), strict=True))
        match = score_row(row, plan, cfg)
        if match.score >= cfg.min_score:
            results.append(match)

    results.sort(key=lambda m: (-m.score, -m.overlap_count, m.trip_id))
    top = results[: resolve_limit(limit, cfg)]
    log.debug("Trip search %r: %d candidates, %d returned", query, len(results), len(top))
    return top
