"""
Entity resolution between a reference name list and a candidate list.

Reference names come from the system of record (the fire-ban source) and are
never rewritten. Candidates come from a secondary source and are consumed at
most once: exact normalized matches claim candidates first, then remaining
references are fuzzy-matched against whatever is still unclaimed.
"""

import logging
from collections import Counter, defaultdict
from typing import Dict, Iterable, List

from forest_reconcile.matching.models import (
    FuzzyMatch,
    MatchDiagnostics,
    MatchResult,
    MatchType,
    ResolutionResult,
)
from forest_reconcile.matching.similarity import find_best_match, has_directional_conflict
from forest_reconcile.utils.text_normalize import normalize_for_match

logger = logging.getLogger(__name__)


def sorted_names(names: Iterable[str]) -> List[str]:
    """Case-insensitive sort with a case-sensitive tiebreak for stable output."""
    return sorted(names, key=lambda name: (name.casefold(), name))


class EntityResolver:
    """Pairs reference names with candidate names above a confidence threshold."""

    def __init__(self, threshold: float):
        """Initialize resolver.

        Args:
            threshold: Minimum similarity score for a fuzzy match (0-1)
        """
        if not 0 <= threshold <= 1:
            raise ValueError(f"Threshold must be between 0 and 1, got {threshold}")
        self.threshold = threshold

    def resolve(
        self,
        reference_names: Iterable[str],
        candidate_names: Iterable[str],
    ) -> ResolutionResult:
        """Assign candidates to reference names.

        Args:
            reference_names: Canonical names (duplicates collapsed)
            candidate_names: Names from the secondary source (duplicates collapsed)

        Returns:
            ResolutionResult with one MatchResult per unique reference name,
            in first-seen order, and sorted diagnostics
        """
        references = list(dict.fromkeys(reference_names))
        available = set(candidate_names)

        candidates_by_normalized: Dict[str, List[str]] = defaultdict(list)
        for candidate in available:
            candidates_by_normalized[normalize_for_match(candidate)].append(candidate)
        references_per_normalized = Counter(normalize_for_match(name) for name in references)

        assignments: Dict[str, MatchResult] = {}
        unresolved: List[str] = []

        for reference in sorted_names(references):
            normalized = normalize_for_match(reference)
            exact = sorted_names(
                candidate
                for candidate in candidates_by_normalized.get(normalized, [])
                if candidate in available
            ) if normalized else []

            if len(exact) == 1:
                matched = exact
            elif len(exact) > 1 and references_per_normalized[normalized] == 1:
                # Duplicate spellings of one forest; merge them all
                matched = exact
            else:
                unresolved.append(reference)
                continue

            assignments[reference] = MatchResult(
                match_type=MatchType.EXACT,
                matched_name=matched[0],
                score=1.0,
                matched_names=matched,
            )
            available.difference_update(matched)

        fuzzy_matches: List[FuzzyMatch] = []
        for reference in unresolved:
            best = find_best_match(reference, sorted_names(available))
            if (
                best is None
                or best.score < self.threshold
                or has_directional_conflict(reference, best.candidate)
            ):
                assignments[reference] = MatchResult.unmatched(best.score if best else None)
                continue

            assignments[reference] = MatchResult(
                match_type=MatchType.FUZZY,
                matched_name=best.candidate,
                score=best.score,
                matched_names=[best.candidate],
            )
            available.discard(best.candidate)
            fuzzy_matches.append(
                FuzzyMatch(reference=reference, candidate=best.candidate, score=best.score)
            )

        logger.debug(
            "Resolved %d references: %d fuzzy, %d candidates unclaimed",
            len(references), len(fuzzy_matches), len(available),
        )

        return ResolutionResult(
            assignments={name: assignments[name] for name in references},
            diagnostics=MatchDiagnostics(
                unmatched_candidates=sorted_names(available),
                fuzzy_matches=sorted(fuzzy_matches, key=lambda m: (m.reference.casefold(), m.reference)),
            ),
        )
