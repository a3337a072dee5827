"""
Unit tests for the most-restrictive ban summary.
"""

from forest_reconcile.merge.ban_status import build_most_restrictive_ban_by_forest
from forest_reconcile.models import BanStatus, FireBanArea


def area(name, status, forests, status_text=None):
    return FireBanArea(
        area_name=name,
        area_url=f"https://example.org/{name.lower().replace(' ', '-')}",
        status=status,
        status_text=status_text,
        forests=forests,
    )


def test_most_restrictive_status_wins():
    """Test a forest listed under two areas takes the stricter status."""
    bans = build_most_restrictive_ban_by_forest([
        area("Southern Highlands", BanStatus.NOT_BANNED, ["Belanglo State Forest"]),
        area("Illawarra", BanStatus.BANNED, ["BELANGLO  State Forest"], status_text="Total Fire Ban"),
    ])

    assert len(bans) == 1
    summary = bans["belanglo state forest"]
    assert summary.forest_name == "Belanglo State Forest"
    assert summary.status == BanStatus.BANNED
    assert summary.status_text == "Total Fire Ban"
    assert summary.area_names == ["Southern Highlands", "Illawarra"]
    assert summary.primary_area == "Southern Highlands"


def test_unknown_never_overrides():
    bans = build_most_restrictive_ban_by_forest([
        area("A", BanStatus.NOT_BANNED, ["Bago State Forest"]),
        area("B", BanStatus.UNKNOWN, ["Bago State Forest"]),
    ])
    assert bans["bago state forest"].status == BanStatus.NOT_BANNED
    assert bans["bago state forest"].status_text == "No Solid Fuel Fire Ban"


def test_blank_names_and_duplicate_areas_are_ignored():
    bans = build_most_restrictive_ban_by_forest([
        area("A", BanStatus.BANNED, ["  ", "Bago State Forest", "Bago State Forest"]),
    ])
    assert list(bans) == ["bago state forest"]
    assert bans["bago state forest"].area_names == ["A"]


def test_camel_case_input_aliases():
    parsed = FireBanArea.model_validate({
        "areaName": "Southern Highlands",
        "areaUrl": "https://example.org/sh",
        "status": "BANNED",
        "forestNames": ["Belanglo State Forest"],
    })
    assert parsed.forests == ["Belanglo State Forest"]
    assert parsed.area_url == "https://example.org/sh"
