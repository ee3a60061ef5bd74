# tripindex/search/phonetic.py
"""
Rule-based phonetic keys for typo-tolerant trip search.

Each token yields up to two keys:

  * a vowel-folded key: consonant rewrites applied, doubled letters
    collapsed, every run of vowels replaced by a single "a". Tolerates
    vowel swaps and doubled consonants ("Chisholm" / "Chisolm" / "Chissom").

  * a consonant skeleton: first letter plus the remaining consonants.
    Tolerates dropped vowels ("Stoneleigh" / "Stonleigh"). Only emitted
    when at least 3 characters long, since shorter skeletons collide
    too easily.

Tokens that are not purely alphabetic, or shorter than 3 letters, have no
keys. Matching is a bonus signal; absence of keys is never an error.
"""
from __future__ import annotations

import re
from collections.abc import Iterable

MIN_PHONETIC_LENGTH = 3
MIN_SKELETON_LENGTH = 3

_ALPHA_RE = re.compile(r"[a-z]+")
_DOUBLES_RE = re.compile(r"(.)\1+")
_VOWEL_RUN_RE = re.compile(r"[aeiou]+")
_VOWEL_RE = re.compile(r"[aeiou]")

# Applied in order; later rules see the output of earlier ones.
_RULES: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern), repl)
    for pattern, repl in (
        (r"^kn", "n"),
        (r"^wr", "r"),
        (r"^ps", "s"),
        (r"ph", "f"),
        (r"^gh", "g"),
        (r"gh", ""),
        (r"tch", "ch"),
        (r"sch", "sk"),
        (r"ch", "k"),
        (r"ck", "k"),
        (r"c(?=[eiy])", "s"),
        (r"c", "k"),
        (r"q", "k"),
        (r"x", "ks"),
        (r"z", "s"),
        (r"dg", "j"),
        (r"mb$", "m"),
        (r"lm", "m"),
        (r"(?<!^)h", ""),
        (r"(?<!^)y", "i"),
    )
)


def _rewrite(token: str) -> str:
    out = token
    for pattern, repl in _RULES:
        out = pattern.sub(repl, out)
    return _DOUBLES_RE.sub(r"\1", out)


def phonetic_keys(token: str | None) -> list[str]:
    """
    Return the phonetic keys for one normalized token.

    >>> phonetic_keys("chisholm")
    ['kasam', 'ksm']
    >>> phonetic_keys("stonleigh")
    ['stanla', 'stnl']
    >>> phonetic_keys("2025")
    []
    """
    if not token:
        return []
    tok = token.lower()
    if len(tok) < MIN_PHONETIC_LENGTH or not _ALPHA_RE.fullmatch(tok):
        return []

    base = _rewrite(tok)
    if not base:
        return []

    folded = _VOWEL_RUN_RE.sub("a", base)
    skeleton = _DOUBLES_RE.sub(r"\1", base[0] + _VOWEL_RE.sub("", base[1:]))

    keys = [folded]
    if len(skeleton) >= MIN_SKELETON_LENGTH and skeleton != folded:
        keys.append(skeleton)
    return keys


def phonetic_key_set(tokens: Iterable[str]) -> set[str]:
    keys: set[str] = set()
    for tok in tokens:
        keys.update(phonetic_keys(tok))
    return keys


def phonetic_index(tokens: Iterable[str]) -> dict[str, list[str]]:
    """
    Map each phonetic key to the (sorted) source tokens that produce it.

    Used at query time to report which correctly spelled row token a
    misspelled query token matched.
    """
    index: dict[str, set[str]] = {}
    for tok in tokens:
        for key in phonetic_keys(tok):
            index.setdefault(key, set()).add(tok)
    return {key: sorted(toks) for key, toks in index.items()}
