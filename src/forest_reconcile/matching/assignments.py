"""
Facility and closure assignment.

Both sources are matched against the fire-ban forest names with the shared
EntityResolver, each with its own confidence threshold.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from forest_reconcile.matching.entity_resolver import EntityResolver, sorted_names
from forest_reconcile.matching.models import (
    ClosureFuzzyMatch,
    ClosureMatchDiagnostics,
    FacilityMatchDiagnostics,
    MatchResult,
    MatchType,
)
from forest_reconcile.matching.similarity import find_best_match, has_directional_conflict
from forest_reconcile.models import ClosureNotice, FacilityDirectory
from forest_reconcile.utils.text_normalize import normalize_for_match, normalize_label

logger = logging.getLogger(__name__)

FACILITY_MATCH_THRESHOLD = 0.62
CLOSURE_MATCH_THRESHOLD = 0.68

FacilityValues = Dict[str, Optional[bool]]


@dataclass
class FacilityMatch:
    """Facility values for one fire-ban forest and how they were found."""
    match: MatchResult
    facilities: FacilityValues


@dataclass
class FacilityAssignments:
    by_forest_name: Dict[str, FacilityMatch] = field(default_factory=dict)
    diagnostics: FacilityMatchDiagnostics = field(default_factory=FacilityMatchDiagnostics)


@dataclass
class ClosureAssignments:
    by_forest_name: Dict[str, List[ClosureNotice]] = field(default_factory=dict)
    diagnostics: ClosureMatchDiagnostics = field(default_factory=ClosureMatchDiagnostics)


def build_unknown_facilities(directory: FacilityDirectory) -> FacilityValues:
    """Every facility key mapped to None (unknown, not absent)."""
    return {definition.key: None for definition in directory.filters}


def merge_matched_facilities(
    directory: FacilityDirectory,
    by_forest_name: Dict[str, Dict[str, bool]],
    source_names: Sequence[str],
) -> FacilityValues:
    """A facility is present if any merged directory entry lists it."""
    return {
        definition.key: any(
            bool(by_forest_name.get(name, {}).get(definition.key)) for name in source_names
        )
        for definition in directory.filters
    }


def build_facility_assignments(
    fire_ban_names: Iterable[str],
    directory: FacilityDirectory,
    threshold: float = FACILITY_MATCH_THRESHOLD,
) -> FacilityAssignments:
    """Match fire-ban forests to facility directory entries.

    Args:
        fire_ban_names: Canonical forest names
        directory: Scraped facility directory
        threshold: Minimum fuzzy score

    Returns:
        FacilityAssignments keyed by fire-ban forest name
    """
    names = list(dict.fromkeys(fire_ban_names))
    unknown = build_unknown_facilities(directory)

    if not directory.filters or not directory.forests:
        logger.warning("Facility directory is empty; all facilities unknown")
        return FacilityAssignments(
            by_forest_name={
                name: FacilityMatch(match=MatchResult.unmatched(), facilities=dict(unknown))
                for name in names
            },
            diagnostics=FacilityMatchDiagnostics(
                unmatched_directory_forests=sorted_names(
                    dict.fromkeys(entry.forest_name for entry in directory.forests)
                ),
            ),
        )

    facilities_by_name = directory.facilities_by_forest_name()
    resolution = EntityResolver(threshold).resolve(names, facilities_by_name.keys())

    assignments = FacilityAssignments(
        diagnostics=FacilityMatchDiagnostics(
            unmatched_directory_forests=resolution.diagnostics.unmatched_candidates,
            fuzzy_matches=resolution.diagnostics.fuzzy_matches,
        )
    )
    for name, match in resolution.assignments.items():
        if match.match_type == MatchType.UNMATCHED:
            facilities = dict(unknown)
        else:
            facilities = merge_matched_facilities(directory, facilities_by_name, match.matched_names)
        assignments.by_forest_name[name] = FacilityMatch(match=match, facilities=facilities)

    unmatched = sum(
        1 for item in assignments.by_forest_name.values()
        if item.match.match_type == MatchType.UNMATCHED
    )
    logger.info(
        "Facility matching: %d forests, %d fuzzy, %d unmatched, %d directory entries unclaimed",
        len(names), len(resolution.diagnostics.fuzzy_matches), unmatched,
        len(resolution.diagnostics.unmatched_candidates),
    )
    return assignments


def match_hint_to_forest(
    hint: str,
    forest_names: Sequence[str],
    threshold: float = CLOSURE_MATCH_THRESHOLD,
) -> Tuple[Optional[str], float]:
    """Best forest for one closure hint, ignoring which forests are already claimed.

    Returns:
        (forest name, score), or (None, 0.0) when nothing clears the threshold
    """
    normalized = normalize_for_match(hint)
    exact = sorted_names(name for name in forest_names if normalize_for_match(name) == normalized)
    if normalized and exact:
        return exact[0], 1.0

    best = find_best_match(hint, sorted_names(forest_names))
    if best is None or best.score < threshold or has_directional_conflict(hint, best.candidate):
        return None, 0.0
    return best.candidate, best.score


def build_closure_assignments(
    notices: Iterable[ClosureNotice],
    forest_names: Iterable[str],
    now: Optional[datetime] = None,
    threshold: float = CLOSURE_MATCH_THRESHOLD,
) -> ClosureAssignments:
    """Attach active closure notices to fire-ban forests.

    Notices are grouped by their forest-name hint; each distinct hint is a
    resolver candidate, so every notice sharing a matched hint lands on the
    same forest. Hints left unclaimed by the resolver are matched again on
    their own, so one forest can collect differently phrased hints.
    Inactive notices are dropped before matching.

    Args:
        notices: Closure notices
        forest_names: Canonical forest names
        now: Reference time for the active check (defaults to current UTC)
        threshold: Minimum fuzzy score

    Returns:
        ClosureAssignments with a (possibly empty) notice list per forest
    """
    now = now or datetime.now(timezone.utc)
    names = list(dict.fromkeys(forest_names))

    notices_by_hint: Dict[str, List[ClosureNotice]] = {}
    unmatched_ids: List[str] = []
    active = skipped = 0
    for notice in notices:
        if not notice.is_active(now):
            skipped += 1
            continue
        active += 1
        hint = normalize_label(notice.forest_name_hint or "")
        if not hint:
            unmatched_ids.append(notice.id)
            continue
        notices_by_hint.setdefault(hint, []).append(notice)

    resolution = EntityResolver(threshold).resolve(names, notices_by_hint.keys())

    by_forest_name: Dict[str, List[ClosureNotice]] = {name: [] for name in names}
    fuzzy_matches: List[ClosureFuzzyMatch] = []
    for name, match in resolution.assignments.items():
        for hint in match.matched_names:
            for notice in notices_by_hint[hint]:
                by_forest_name[name].append(notice)
                if match.match_type == MatchType.FUZZY:
                    fuzzy_matches.append(ClosureFuzzyMatch(
                        notice_id=notice.id,
                        notice_title=notice.title,
                        matched_forest_name=name,
                        score=match.score,
                    ))

    # A forest may carry several differently phrased hints; the resolver
    # pairs one hint group per forest, so leftovers are matched here.
    for hint in resolution.diagnostics.unmatched_candidates:
        name, hint_score = match_hint_to_forest(hint, names, threshold)
        if name is None:
            unmatched_ids.extend(notice.id for notice in notices_by_hint[hint])
            continue
        for notice in notices_by_hint[hint]:
            by_forest_name[name].append(notice)
            if hint_score < 1:
                fuzzy_matches.append(ClosureFuzzyMatch(
                    notice_id=notice.id,
                    notice_title=notice.title,
                    matched_forest_name=name,
                    score=hint_score,
                ))

    logger.info(
        "Closure matching: %d active notices, %d skipped inactive, %d fuzzy, %d unmatched",
        active, skipped, len(fuzzy_matches), len(unmatched_ids),
    )

    return ClosureAssignments(
        by_forest_name=by_forest_name,
        diagnostics=ClosureMatchDiagnostics(
            unmatched_notice_ids=sorted(unmatched_ids),
            fuzzy_matches=sorted(fuzzy_matches, key=lambda m: (m.notice_id, m.matched_forest_name)),
        ),
    )
