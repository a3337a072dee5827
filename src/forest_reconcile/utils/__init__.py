"""Utility helpers."""

from forest_reconcile.utils.text_normalize import (
    build_forest_status_key,
    normalize_for_match,
    normalize_label,
    slugify,
)

__all__ = [
    "build_forest_status_key",
    "normalize_for_match",
    "normalize_label",
    "slugify",
]
