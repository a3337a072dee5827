"""
Name normalization for forest and area labels.

Source sites spell the same forest with different casing, punctuation and
spacing ("Belanglo State Forest", "BELANGLO  STATE FOREST (Pine)"). These
helpers turn a label into a comparison key or a clean display string.
"""

import re

_WHITESPACE = re.compile(r"\s+")
_PARENTHETICAL = re.compile(r"\([^)]*\)")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_label(raw: str) -> str:
    """Collapse whitespace and trim, keeping case and punctuation for display."""
    return _WHITESPACE.sub(" ", raw or "").strip()


def normalize_for_match(raw: str) -> str:
    """Normalize a forest name into a comparison key.

    Lower-cases, spells out ampersands, drops parenthetical asides and
    replaces every run of non-alphanumerics with a single space.

    Examples:
        "Belanglo State Forest (Pine)" -> "belanglo state forest"
        "Bago & Maragle"               -> "bago and maragle"

    Args:
        raw: Free-text name

    Returns:
        Normalized key; empty string if nothing alphanumeric remains
    """
    value = (raw or "").lower().replace("&", " and ")
    value = _PARENTHETICAL.sub(" ", value)
    value = _NON_ALNUM.sub(" ", value)
    return _WHITESPACE.sub(" ", value).strip()


def build_forest_status_key(name: str) -> str:
    """Key used to group the same forest listed under several fire-ban areas."""
    return normalize_label(name).lower()


def slugify(value: str) -> str:
    slug = _NON_ALNUM.sub("-", (value or "").lower()).strip("-")
    return slug or "unknown"


def normalize_cache_key(value: str) -> str:
    """Lower-case, trim and collapse whitespace for cache key construction."""
    return _WHITESPACE.sub(" ", (value or "").strip().lower())
