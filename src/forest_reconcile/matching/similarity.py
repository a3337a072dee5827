"""
Name similarity scoring for cross-source forest matching.

Combines character-bigram overlap, core-token overlap and edit distance into
a single confidence in [0, 1]. Generic words that every forest shares
("state", "forest", "nsw") are stripped before the token comparison so they
cannot inflate a score.
"""

from collections import Counter
from dataclasses import dataclass
import re
from typing import Iterable, List, Optional

from rapidfuzz.distance import Levenshtein

from forest_reconcile.utils.text_normalize import normalize_for_match

STOP_WORDS = frozenset({
    "state",
    "forest",
    "forests",
    "nsw",
    "new",
    "south",
    "wales",
    "region",
    "area",
    "native",
    "around",
})

DICE_WEIGHT = 0.45
JACCARD_WEIGHT = 0.20
EDIT_WEIGHT = 0.35
CONTAINMENT_BONUS = 0.07
SINGLE_TOKEN_BONUS = 0.18
SINGLE_TOKEN_EDIT_FLOOR = 0.8
CORE_EQUAL_SCORE = 0.98
MAX_FUZZY_SCORE = 0.99

_OPPOSITE_DIRECTIONS = (("east", "west"), ("north", "south"))


@dataclass(frozen=True)
class ScoredCandidate:
    """Best candidate found for a target name."""
    candidate: str
    score: float


def _core_tokens(normalized: str) -> List[str]:
    return [token for token in normalized.split(" ") if token and token not in STOP_WORDS]


def _bigrams(value: str) -> List[str]:
    if len(value) < 2:
        return [value] if value else []
    return [value[i:i + 2] for i in range(len(value) - 1)]


def _dice(left: str, right: str) -> float:
    left_bigrams = Counter(_bigrams(left))
    right_bigrams = Counter(_bigrams(right))
    total = sum(left_bigrams.values()) + sum(right_bigrams.values())
    if total == 0:
        return 0.0
    overlap = sum((left_bigrams & right_bigrams).values())
    return 2.0 * overlap / total


def _jaccard(left: Iterable[str], right: Iterable[str]) -> float:
    left_set, right_set = set(left), set(right)
    union = left_set | right_set
    if not union:
        return 0.0
    return len(left_set & right_set) / len(union)


def edit_similarity(left: str, right: str) -> float:
    """1 - distance / longer length; identical (including empty) strings give 1."""
    longest = max(len(left), len(right))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(left, right) / longest


def score(a: str, b: str) -> float:
    """Confidence that two forest names denote the same forest.

    Args:
        a: First name (raw)
        b: Second name (raw)

    Returns:
        Score in [0, 1]. Exactly 1 only for identical normalized names;
        names equal after stop-word removal score 0.98; every other pair
        is capped at 0.99.
    """
    if a == b:
        return 1.0

    left = normalize_for_match(a)
    right = normalize_for_match(b)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0

    left_tokens = _core_tokens(left)
    right_tokens = _core_tokens(right)
    left_core = " ".join(left_tokens)
    right_core = " ".join(right_tokens)

    if left_core and left_core == right_core:
        return CORE_EQUAL_SCORE

    left_comparable = left_core or left
    right_comparable = right_core or right

    edit = edit_similarity(left_comparable, right_comparable)
    value = (
        DICE_WEIGHT * _dice(left_comparable, right_comparable)
        + JACCARD_WEIGHT * _jaccard(left_tokens, right_tokens)
        + EDIT_WEIGHT * edit
    )

    if left_core and right_core and (left_core in right_core or right_core in left_core):
        value += CONTAINMENT_BONUS

    if len(left_tokens) == 1 and len(right_tokens) == 1 and edit >= SINGLE_TOKEN_EDIT_FLOOR:
        value += SINGLE_TOKEN_BONUS

    return min(MAX_FUZZY_SCORE, value)


def find_best_match(target: str, candidates: Iterable[str]) -> Optional[ScoredCandidate]:
    """Return the highest-scoring candidate, or None when there are none.

    Ties keep the earliest candidate, so callers should pass a sorted pool
    when they need a deterministic choice.
    """
    best: Optional[ScoredCandidate] = None
    for candidate in candidates:
        candidate_score = score(target, candidate)
        if best is None or candidate_score > best.score:
            best = ScoredCandidate(candidate=candidate, score=candidate_score)
    return best


def has_directional_conflict(left_name: str, right_name: str) -> bool:
    """True when the names carry opposite compass qualifiers (east/west, north/south)."""
    left = normalize_for_match(left_name)
    right = normalize_for_match(right_name)
    for first, second in _OPPOSITE_DIRECTIONS:
        first_word = re.compile(rf"\b{first}\b")
        second_word = re.compile(rf"\b{second}\b")
        if first_word.search(left) and second_word.search(right):
            return True
        if second_word.search(left) and first_word.search(right):
            return True
    return False
