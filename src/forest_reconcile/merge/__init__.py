"""Merging per-source results into canonical forest records."""

from forest_reconcile.merge.ban_status import (
    BAN_STATUS_PRIORITY,
    ForestBanSummary,
    build_most_restrictive_ban_by_forest,
)
from forest_reconcile.merge.closures import (
    ClosureImpactSummary,
    build_closure_impact_summary,
    build_closure_status,
    infer_structured_impact_by_rules,
    merge_impact_level,
)
from forest_reconcile.merge.forest_merger import CanonicalForestRecord, ForestRecordMerger

__all__ = [
    "BAN_STATUS_PRIORITY",
    "CanonicalForestRecord",
    "ClosureImpactSummary",
    "ForestBanSummary",
    "ForestRecordMerger",
    "build_closure_impact_summary",
    "build_closure_status",
    "build_most_restrictive_ban_by_forest",
    "infer_structured_impact_by_rules",
    "merge_impact_level",
]
