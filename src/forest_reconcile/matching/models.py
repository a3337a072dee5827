"""
Pydantic models for cross-source match results and diagnostics.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class MatchType(str, Enum):
    """How a reference name was paired with a candidate."""
    EXACT = "EXACT"
    FUZZY = "FUZZY"
    UNMATCHED = "UNMATCHED"


class MatchResult(BaseModel):
    """Outcome of matching one reference name.

    An UNMATCHED result may still carry the best rejected score so
    operators can see how close the nearest candidate came.
    """

    match_type: MatchType
    matched_name: Optional[str] = None
    score: Optional[float] = Field(None, ge=0, le=1)
    # Every candidate merged into this match (duplicate variants); first is matched_name
    matched_names: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_invariants(self) -> "MatchResult":
        if self.match_type == MatchType.EXACT and self.score != 1:
            raise ValueError("EXACT matches must have score 1")
        if self.match_type == MatchType.UNMATCHED:
            if self.matched_name is not None or self.matched_names:
                raise ValueError("UNMATCHED results cannot carry a matched name")
        elif self.matched_name is None:
            raise ValueError(f"{self.match_type.value} results require a matched name")
        return self

    @classmethod
    def unmatched(cls, best_score: Optional[float] = None) -> "MatchResult":
        return cls(match_type=MatchType.UNMATCHED, score=best_score)


class FuzzyMatch(BaseModel):
    """An accepted fuzzy pairing, kept for auditing."""
    reference: str
    candidate: str
    score: float


class MatchDiagnostics(BaseModel):
    """Unclaimed candidates and accepted fuzzy pairs for one resolver run."""
    unmatched_candidates: List[str] = Field(default_factory=list)
    fuzzy_matches: List[FuzzyMatch] = Field(default_factory=list)


class ResolutionResult(BaseModel):
    """Assignments keyed by reference name, plus diagnostics."""
    assignments: Dict[str, MatchResult] = Field(default_factory=dict)
    diagnostics: MatchDiagnostics = Field(default_factory=MatchDiagnostics)


class FacilityMatchDiagnostics(BaseModel):
    unmatched_directory_forests: List[str] = Field(default_factory=list)
    fuzzy_matches: List[FuzzyMatch] = Field(default_factory=list)


class ClosureFuzzyMatch(BaseModel):
    notice_id: str
    notice_title: str
    matched_forest_name: str
    score: float


class ClosureMatchDiagnostics(BaseModel):
    """Closure notices that found no forest, and notices matched fuzzily."""
    unmatched_notice_ids: List[str] = Field(default_factory=list)
    fuzzy_matches: List[ClosureFuzzyMatch] = Field(default_factory=list)
