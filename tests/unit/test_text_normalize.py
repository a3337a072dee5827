"""
Unit tests for name normalization helpers.
"""

import pytest

from forest_reconcile.utils.text_normalize import (
    build_forest_status_key,
    normalize_cache_key,
    normalize_for_match,
    normalize_label,
    slugify,
)


def test_normalize_label_collapses_whitespace():
    """Test labels keep case but lose extra whitespace."""
    assert normalize_label("  Belanglo   State\tForest \n") == "Belanglo State Forest"
    assert normalize_label("") == ""
    assert normalize_label(None) == ""


@pytest.mark.parametrize("raw,expected", [
    ("Belanglo State Forest", "belanglo state forest"),
    ("BELANGLO  STATE FOREST (Pine)", "belanglo state forest"),
    ("Bago & Maragle", "bago and maragle"),
    ("Mount Boss S.F.", "mount boss s f"),
    ("  --  ", ""),
])
def test_normalize_for_match(raw, expected):
    """Test comparison keys ignore case, punctuation and parentheticals."""
    assert normalize_for_match(raw) == expected


def test_normalize_for_match_is_idempotent():
    """Test normalizing twice changes nothing."""
    once = normalize_for_match("Orara East (Coffs) State-Forest")
    assert normalize_for_match(once) == once


def test_build_forest_status_key():
    """Test status keys group the same forest across areas."""
    assert build_forest_status_key("Belanglo  State Forest") == build_forest_status_key(
        "belanglo state forest"
    )


def test_slugify():
    """Test record ids are URL-safe."""
    assert slugify("Belanglo State Forest") == "belanglo-state-forest"
    assert slugify("Bago & Maragle (Pine)") == "bago-maragle-pine"
    assert slugify("!!!") == "unknown"


def test_normalize_cache_key():
    """Test cache keys are lower-cased and whitespace-collapsed."""
    assert normalize_cache_key("  Belanglo   STATE Forest, NSW ") == "belanglo state forest, nsw"
