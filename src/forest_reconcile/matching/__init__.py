"""Cross-source forest name matching."""

from forest_reconcile.matching.assignments import (
    CLOSURE_MATCH_THRESHOLD,
    FACILITY_MATCH_THRESHOLD,
    ClosureAssignments,
    FacilityAssignments,
    FacilityMatch,
    build_closure_assignments,
    build_facility_assignments,
)
from forest_reconcile.matching.entity_resolver import EntityResolver
from forest_reconcile.matching.models import (
    MatchDiagnostics,
    MatchResult,
    MatchType,
    ResolutionResult,
)
from forest_reconcile.matching.similarity import (
    find_best_match,
    has_directional_conflict,
    score,
)

__all__ = [
    "CLOSURE_MATCH_THRESHOLD",
    "FACILITY_MATCH_THRESHOLD",
    "ClosureAssignments",
    "EntityResolver",
    "FacilityAssignments",
    "FacilityMatch",
    "MatchDiagnostics",
    "MatchResult",
    "MatchType",
    "ResolutionResult",
    "build_closure_assignments",
    "build_facility_assignments",
    "find_best_match",
    "has_directional_conflict",
    "score",
]
