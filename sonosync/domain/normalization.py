from __future__ import annotations

import re
import unicodedata
from typing import Iterable


_FEAT_PATTERN = re.compile(r"\b(feat\.?|ft\.)\b", re.IGNORECASE)
_PARENS_CHARS_PATTERN = re.compile(r"[\(\)\[\]\{\}]")
_PARENS_CONTENT_PATTERN = re.compile(r"\s*[\(\[\{][^\)\]\}]*[\)\]\}]\s*")
_NON_WORD_SPACE_PATTERN = re.compile(r"[^\w\s]", re.UNICODE)
_MULTISPACE_PATTERN = re.compile(r"\s+")
_TAIL_TOKENS = {
    "vol", "pt", "remaster", "remastered", "live", "edit", "topic",
}


def _strip_diacritics(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text)
    return "".join(c for c in normalized if not unicodedata.combining(c))


def normalize_string(value: str) -> str:
    value = value or ""
    value = _strip_diacritics(value)
    value = value.lower()
    value = value.replace("&", " and ")
    value = _FEAT_PATTERN.sub(" ", value)
    # Drop parenthetical/bracketed content entirely
    while True:
        new_value = _PARENS_CONTENT_PATTERN.sub(" ", value)
        if new_value == value:
            break
        value = new_value
    value = _PARENS_CHARS_PATTERN.sub(" ", value)
    value = _NON_WORD_SPACE_PATTERN.sub(" ", value)
    value = value.replace("_", " ")
    return _MULTISPACE_PATTERN.sub(" ", value).strip()


def titles_equal_ignoring_case(left: str, right: str) -> bool:
    """Case-insensitive equality; every other character must be identical."""
    return (left or "").lower() == (right or "").lower()


def artist_tokens(artists: Iterable[str]) -> set[str]:
    """Normalize artist names into a set of significant tokens.

    Numeric-only tokens and tail/service tokens like 'vol', 'live' or the
    YouTube 'Topic' channel suffix are dropped.
    """
    tokens: set[str] = set()
    for artist in artists or []:
        for tok in normalize_string(artist).split():
            if not tok or tok.isdigit() or tok in _TAIL_TOKENS:
                continue
            if tok == "the":
                continue
            tokens.add(tok)
    return tokens


def artists_overlap(source: Iterable[str], candidate: Iterable[str]) -> bool:
    source_tokens = artist_tokens(source)
    candidate_tokens = artist_tokens(candidate)
    if not source_tokens:
        return bool(candidate_tokens)
    return bool(source_tokens & candidate_tokens)
