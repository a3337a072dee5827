"""
Unit tests for facility and closure assignment.
"""

from datetime import datetime, timezone

import pytest

from forest_reconcile.matching.assignments import (
    build_closure_assignments,
    build_facility_assignments,
    match_hint_to_forest,
)
from forest_reconcile.matching.models import MatchType
from forest_reconcile.merge.closures import build_closure_status
from forest_reconcile.models import ClosureNotice, ClosureStatus, FacilityDirectory

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def directory():
    """Facility directory with a duplicated Belanglo entry."""
    return FacilityDirectory.model_validate({
        "filters": [
            {"key": "toilets", "label": "Toilets"},
            {"key": "camping", "label": "Camping"},
        ],
        "forests": [
            {"forestName": "Belanglo State Forest", "facilities": {"toilets": True, "camping": False}},
            {"forestName": "Belanglo State Forest (Pine)", "facilities": {"camping": True}},
            {"forestName": "Orara East State Forest", "facilities": {"toilets": False, "camping": True}},
        ],
    })


def test_facility_assignments(directory):
    names = ["Belanglo State Forest", "Orara East", "Wang Wauk State Forest"]
    assignments = build_facility_assignments(names, directory)

    belanglo = assignments.by_forest_name["Belanglo State Forest"]
    assert belanglo.match.match_type == MatchType.EXACT
    assert belanglo.facilities == {"toilets": True, "camping": True}

    orara = assignments.by_forest_name["Orara East"]
    assert orara.match.match_type == MatchType.FUZZY
    assert orara.match.matched_name == "Orara East State Forest"
    assert orara.facilities == {"toilets": False, "camping": True}

    wang_wauk = assignments.by_forest_name["Wang Wauk State Forest"]
    assert wang_wauk.match.match_type == MatchType.UNMATCHED
    # Unknown, not absent
    assert wang_wauk.facilities == {"toilets": None, "camping": None}

    assert [m.reference for m in assignments.diagnostics.fuzzy_matches] == ["Orara East"]
    assert assignments.diagnostics.unmatched_directory_forests == []


def test_facility_assignments_report_unclaimed_entries(directory):
    assignments = build_facility_assignments(["Belanglo State Forest"], directory)
    assert assignments.diagnostics.unmatched_directory_forests == ["Orara East State Forest"]


def test_facility_assignments_with_empty_directory():
    """Test an empty directory leaves every forest unmatched with unknown facilities."""
    directory = FacilityDirectory.model_validate({"filters": [{"key": "toilets"}], "forests": []})
    assignments = build_facility_assignments(["Belanglo State Forest"], directory)

    match = assignments.by_forest_name["Belanglo State Forest"]
    assert match.match.match_type == MatchType.UNMATCHED
    assert match.facilities == {"toilets": None}


def make_notice(notice_id, hint, **kwargs):
    return ClosureNotice(id=notice_id, title=f"Notice {notice_id}", forest_name_hint=hint, **kwargs)


def test_closure_assignments():
    forests = ["Belanglo State Forest", "Wang Wauk State Forest", "Orara East State Forest"]
    notices = [
        make_notice("n1", "Belanglo State Forest", status=ClosureStatus.CLOSED),
        make_notice("n2", "belanglo state forest"),
        make_notice("n3", "Wang Wauk"),
        make_notice("n4", "Somewhere Else Entirely"),
        make_notice("n5", None),
        make_notice("n6", "Belanglo State Forest", until_at=datetime(2025, 1, 1, tzinfo=timezone.utc)),
    ]

    assignments = build_closure_assignments(notices, forests, now=NOW)

    assert sorted(n.id for n in assignments.by_forest_name["Belanglo State Forest"]) == ["n1", "n2"]
    assert [n.id for n in assignments.by_forest_name["Wang Wauk State Forest"]] == ["n3"]
    assert assignments.by_forest_name["Orara East State Forest"] == []

    assert assignments.diagnostics.unmatched_notice_ids == ["n4", "n5"]
    fuzzy = assignments.diagnostics.fuzzy_matches
    assert len(fuzzy) == 1
    assert fuzzy[0].notice_id == "n3"
    assert fuzzy[0].matched_forest_name == "Wang Wauk State Forest"


def test_closure_assignments_skip_future_notices():
    notice = make_notice("n1", "Belanglo State Forest", listed_at=datetime(2025, 2, 1))
    assignments = build_closure_assignments([notice], ["Belanglo State Forest"], now=NOW)

    assert assignments.by_forest_name["Belanglo State Forest"] == []
    assert assignments.diagnostics.unmatched_notice_ids == []


def test_closure_threshold_is_stricter_than_facility_threshold():
    """Test a pairing accepted for facilities can be rejected for closures."""
    assignments = build_closure_assignments(
        [make_notice("n1", "Belangalo")],
        ["Belanglo State Forest"],
        now=NOW,
        threshold=0.99,
    )
    assert assignments.diagnostics.unmatched_notice_ids == ["n1"]


def test_closure_assignments_collect_differently_phrased_hints():
    """Test a forest keeps every notice even when the hints are worded differently."""
    notices = [
        make_notice("n1", "Belanglo State Forest"),
        make_notice("n2", "Belanglo", status=ClosureStatus.CLOSED),
        make_notice("n3", "Wingello State Forest", status=ClosureStatus.CLOSED),
    ]

    assignments = build_closure_assignments(notices, ["Belanglo State Forest"], now=NOW)

    attached = assignments.by_forest_name["Belanglo State Forest"]
    assert sorted(n.id for n in attached) == ["n1", "n2"]
    assert build_closure_status(attached) == ClosureStatus.CLOSED
    assert assignments.diagnostics.unmatched_notice_ids == ["n3"]
    assert [m.notice_id for m in assignments.diagnostics.fuzzy_matches] == ["n2"]
    assert assignments.diagnostics.fuzzy_matches[0].score == 0.98


def test_match_hint_to_forest():
    forests = ["Belanglo State Forest", "Orara East State Forest"]

    assert match_hint_to_forest("BELANGLO STATE FOREST", forests) == ("Belanglo State Forest", 1.0)
    assert match_hint_to_forest("Belanglo", forests) == ("Belanglo State Forest", 0.98)
    assert match_hint_to_forest("Orara West State Forest", forests) == (None, 0.0)
    assert match_hint_to_forest("Belanglo", []) == (None, 0.0)
