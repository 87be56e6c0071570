"""Join-key normalization shared by every data source.

Base codes are typed by hand across several sheets ("LRJ 01", "lrj-01",
"LRJ_01") and older sheets still carry the pre-migration "LAJ" prefix.
All joins go through :func:`normalize_base`; raw codes are never compared.
"""

import re
import unicodedata

import pandas as pd


# Old code scheme -> current prefix
LEGACY_PREFIXES = {
    "LAJ": "LRJ",
}

_SEPARATORS = re.compile(r"[\s_|\-]")


def cell_text(value) -> str:
    """Cell value as text; None and NaN become an empty string."""
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value)


def normalize_base(code) -> str:
    """Canonical base code: uppercase, no separators, current prefix.

    Examples:
        "lrj 01"  -> "LRJ01"
        "LAJ-07"  -> "LRJ07"
        None      -> ""
    """
    s = _SEPARATORS.sub("", cell_text(code).upper())
    for legacy, current in LEGACY_PREFIXES.items():
        if s.startswith(legacy):
            s = current + s[len(legacy):]
            break
    return s


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def normalize_period(label) -> str:
    """Canonical month label: no accents, casefolded ("Março" -> "marco")."""
    return strip_accents(cell_text(label)).casefold().strip()


def normalize_name(name) -> str:
    """Casefolded person name for substring search."""
    return " ".join(cell_text(name).casefold().split())
