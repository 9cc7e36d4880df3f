"""Canonical keys for free-text geographic names.

Names arrive as typed by citizens and agents ("Aba North", "aba-north",
" ABA  NORTH "). They all collapse to one key, which doubles as the URL slug.
"""

import re

SEPARATOR = "-"

_SEPARATOR_RUN = re.compile(r"[\s\-]+")
_WORD_START = re.compile(r"\b\w")


def normalize(raw: str | None) -> str:
    """
    Canonicalize a location name.

    Trims, lower-cases, collapses runs of whitespace and hyphens into a single
    separator and strips separators from both ends. Idempotent.

    Examples:
        "Aba North" -> "aba-north"
        "lagos " -> "lagos"
        "Ward - 1" -> "ward-1"

    Returns "" for None or blank input; callers treat that as a malformed row.
    """
    if not raw:
        return ""
    collapsed = _SEPARATOR_RUN.sub(SEPARATOR, raw.strip().lower())
    return collapsed.strip(SEPARATOR)


def title_case(key: str | None) -> str:
    """
    Human-readable label for a canonical key, e.g. "aba-north" -> "Aba North".

    Used when no original free text is available (slug-only requests). This
    does not invert `normalize` for names with punctuation or odd casing.
    """
    if not key:
        return ""
    spaced = key.replace(SEPARATOR, " ")
    return _WORD_START.sub(lambda m: m.group(0).upper(), spaced)


def names_match(first: str | None, second: str | None) -> bool:
    """Compare two location names regardless of slug/title-case formatting."""
    first_key = normalize(first)
    return bool(first_key) and first_key == normalize(second)
