# tripindex/search/normalize.py
from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass

from unidecode import unidecode

# Tokens shorter than this are dropped unless they are all digits
# (trip ids, "No Email 2" style labels).
MIN_TOKEN_LENGTH = 2

_APOSTROPHES_RE = re.compile(r"['`‘’ʼ]")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


# ---------------------------------------------------------------------------
# Small utils
# ---------------------------------------------------------------------------


def _to_nfkc(s: str) -> str:
    return unicodedata.normalize("NFKC", s)


def _collapse_ws(s: str) -> str:
    return " ".join(str(s).strip().split())


def transliterate(s: str) -> str:
    """
    Transliterate to ASCII ("Zürich" -> "Zurich", "Kraków" -> "Krakow").
    """
    return unidecode(s)


# ---------------------------------------------------------------------------
# Normalization + tokenization
# ---------------------------------------------------------------------------


def normalize_text(value: object) -> str:
    """
    Canonical comparable form of a free-text field.

    NFKC -> ASCII transliteration -> apostrophes removed -> lowercase ->
    every run of characters outside [a-z0-9] becomes one space -> trimmed.

    "O'Brien & Sons" -> "obrien sons"
    "european-adventure-2025" -> "european adventure 2025"
    None / "" -> ""
    """
    if value is None:
        return ""
    text = transliterate(_to_nfkc(str(value)))
    text = _APOSTROPHES_RE.sub("", text).lower()
    return _collapse_ws(_NON_ALNUM_RE.sub(" ", text))


def is_searchable_token(token: str) -> bool:
    return len(token) >= MIN_TOKEN_LENGTH or token.isdigit()


def tokenize(value: object) -> list[str]:
    """
    Split a value into searchable tokens, first-seen order, no duplicates.

    The same function is used at index time and at query time.
    """
    out: list[str] = []
    seen: set[str] = set()
    for tok in normalize_text(value).split():
        if tok in seen or not is_searchable_token(tok):
            continue
        seen.add(tok)
        out.append(tok)
    return out


def build_token_set(fields: Iterable[object], trip_id: int | None = None) -> set[str]:
    """
    Union of tokens across all fields, plus the trip id itself so that
    exact-id queries hit.
    """
    tokens: set[str] = set()
    for field_value in fields:
        tokens.update(tokenize(field_value))
    if trip_id is not None:
        tokens.add(str(trip_id))
    return tokens


@dataclass(frozen=True)
class NormalizedFields:
    trip_name: str
    destinations: str
    travelers: str
    emails: str
    tokens: frozenset[str]


def normalize_fields(
    *,
    trip_id: int,
    trip_name: str | None,
    trip_slug: str | None = None,
    destinations: str | None = None,
    traveler_names: Iterable[str] = (),
    traveler_emails: Iterable[str] = (),
    extra: Iterable[str | None] = (),
) -> NormalizedFields:
    """
    Normalize the searchable text of a trip and derive its token set.

    Traveler names and emails are each joined with a single space before
    normalization, so the normalized strings keep roster order.
    """
    names = list(traveler_names)
    emails = list(traveler_emails)
    norm_travelers = normalize_text(" ".join(names))
    norm_emails = normalize_text(" ".join(emails))
    tokens = build_token_set(
        [trip_name, trip_slug, destinations, *names, *emails, *extra],
        trip_id=trip_id,
    )
    return NormalizedFields(
        trip_name=normalize_text(trip_name),
        destinations=normalize_text(destinations),
        travelers=norm_travelers,
        emails=norm_emails,
        tokens=frozenset(tokens),
    )
