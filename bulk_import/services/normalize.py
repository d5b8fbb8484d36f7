from __future__ import annotations

import re
import unicodedata

"""Normalization helpers shared by mapping, preview and commit.

The same functions are applied to stored snapshots and incoming values so that
comparisons are symmetric:
- free text (headers, names): case-fold + strip accents/punctuation
- tax ids / phones: digits only
- emails: trimmed + lowercased
"""

__all__ = [
    "normalize_text",
    "digits_only",
    "normalize_email",
    "organization_key",
    "to_title_case",
    "split_and_deduplicate_phones",
    "parse_number",
]

_PUNCT_RE = re.compile(r"[^\w\s]|_")
_SPACES_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D")
_PHONE_SPLIT_RE = re.compile(r"[,;/|\n]|\s{2,}|\se\s")

# 小文字のまま残す前置詞 (先頭語は除く)
_LOWER_WORDS = {"da", "de", "do", "das", "dos", "e"}

MIN_PHONE_DIGITS = 8


def normalize_text(value: str | None) -> str:
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    no_punct = _PUNCT_RE.sub(" ", stripped.casefold())
    return _SPACES_RE.sub(" ", no_punct).strip()


def digits_only(value: str | None) -> str:
    if not value:
        return ""
    return _NON_DIGIT_RE.sub("", value)


def normalize_email(value: str | None) -> str:
    if not value:
        return ""
    return value.strip().lower()


def organization_key(tax_id: str | None, name: str | None) -> str:
    """Run-scoped cache key for an organization: digit-only tax id, else name.

    Returns "" when the row carries neither.
    """
    tax = digits_only(tax_id)
    if tax:
        return f"cnpj:{tax}"
    norm_name = normalize_text(name)
    if norm_name:
        return f"name:{norm_name}"
    return ""


def to_title_case(value: str | None) -> str:
    """Title-case a person name typed in a single case ("ANA SILVA", "ana silva").

    Mixed-case input is assumed intentional ("McDonald", "da Silva") and kept.
    """
    if not value:
        return ""
    text = _SPACES_RE.sub(" ", value).strip()
    if text != text.lower() and text != text.upper():
        return text
    words = []
    for i, word in enumerate(text.lower().split(" ")):
        if i > 0 and word in _LOWER_WORDS:
            words.append(word)
        else:
            words.append(word[:1].upper() + word[1:])
    return " ".join(words)


def split_and_deduplicate_phones(value: str | None) -> list[str]:
    """Split a cell holding several phone numbers, dropping repeats.

    Two entries are the same phone when their digits match. Fragments with fewer
    than MIN_PHONE_DIGITS digits are discarded.
    """
    if not value:
        return []
    seen: set[str] = set()
    phones: list[str] = []
    for part in _PHONE_SPLIT_RE.split(value):
        candidate = part.strip()
        digits = digits_only(candidate)
        if len(digits) < MIN_PHONE_DIGITS or digits in seen:
            continue
        seen.add(digits)
        phones.append(candidate)
    return phones


def parse_number(value: str | None) -> int | None:
    """Parse an integer out of a loosely formatted cell ("1.250", "25 veículos")."""
    digits = digits_only(value)
    if not digits:
        return None
    return int(digits)
