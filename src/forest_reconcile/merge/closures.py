"""
Closure status and per-activity impact for a forest.

Notices carry a structured impact from the classifier when one was
produced; otherwise keyword rules below stand in.
"""

import re
from typing import Iterable, List

from pydantic import BaseModel

from forest_reconcile.models import (
    ClosureNotice,
    ClosureStatus,
    ImpactConfidence,
    ImpactLevel,
    ImpactSource,
    StructuredImpact,
)
from forest_reconcile.utils.text_normalize import normalize_label

MAX_DETAIL_TEXT_CHARS = 5000

IMPACT_LEVEL_ORDER = {
    ImpactLevel.NONE: 0,
    ImpactLevel.ADVISORY: 1,
    ImpactLevel.RESTRICTED: 2,
    ImpactLevel.CLOSED: 3,
    # Placeholder; never overrides a concrete level
    ImpactLevel.UNKNOWN: -1,
}


class ClosureImpactSummary(BaseModel):
    camping_impact: ImpactLevel = ImpactLevel.NONE
    access_2wd_impact: ImpactLevel = ImpactLevel.NONE
    access_4wd_impact: ImpactLevel = ImpactLevel.NONE


def merge_impact_level(left: ImpactLevel, right: ImpactLevel) -> ImpactLevel:
    """Return the more severe level; UNKNOWN loses to everything."""
    return right if IMPACT_LEVEL_ORDER[right] > IMPACT_LEVEL_ORDER[left] else left


def build_closure_status(notices: Iterable[ClosureNotice]) -> ClosureStatus:
    """CLOSED > PARTIAL > NOTICE > NONE across a forest's notices."""
    statuses = [notice.status for notice in notices]
    if ClosureStatus.CLOSED in statuses:
        return ClosureStatus.CLOSED
    if ClosureStatus.PARTIAL in statuses:
        return ClosureStatus.PARTIAL
    if statuses:
        return ClosureStatus.NOTICE
    return ClosureStatus.NONE


def effective_impact(notice: ClosureNotice) -> StructuredImpact:
    return notice.structured_impact or infer_structured_impact_by_rules(notice)


def build_closure_impact_summary(notices: Iterable[ClosureNotice]) -> ClosureImpactSummary:
    summary = ClosureImpactSummary()
    for notice in notices:
        impact = effective_impact(notice)
        summary.camping_impact = merge_impact_level(summary.camping_impact, impact.camping_impact)
        summary.access_2wd_impact = merge_impact_level(summary.access_2wd_impact, impact.access_2wd_impact)
        summary.access_4wd_impact = merge_impact_level(summary.access_4wd_impact, impact.access_4wd_impact)
    return summary


_PARTIAL = re.compile(
    r"\b(partial|partly|partially|sections?\s+of|exclusive use on part|limited camping)\b"
)
_REMAINS_OPEN = re.compile(r"\bremain open\b")
_CAMPING_OPEN = re.compile(r"\bcamp(?:ing|ground)?(?:\s+areas?)?.{0,50}\b(open|reopen|remain open)\b")
_CAMPING_CLOSED = re.compile(
    r"\bcamp(?:ing|ground)?(?:\s+areas?)?.{0,55}\b(closed|closure|not permissible|no access)\b"
)
_CAMPING_RESTRICTED = re.compile(
    r"\bcamp(?:ing|ground)?(?:\s+areas?)?.{0,55}\b(limited|restricted|busy|close proximity)\b"
)
_ACCESS_OPEN = re.compile(r"\b(access|road|roads|track|tracks|trail|trails).{0,50}\b(open|reopen|accessible)\b")
_ACCESS_CLOSED = re.compile(
    r"\b(road|roads|track|tracks|trail|trails|vehicle access|access)\b.{0,55}"
    r"\b(closed|closure|blocked|no access|avoid)\b"
)
_2WD_RESTRICTED = re.compile(r"\b(2wd|two[-\s]?wheel)\b.{0,45}\b(closed|closure|restricted|limited|no access)\b")
_4WD_RESTRICTED = re.compile(r"\b(4wd|four[-\s]?wheel)\b.{0,45}\b(closed|closure|restricted|limited|no access)\b")
_ADVISORY = re.compile(r"\b(plan ahead|extremely busy|consider alternative|increased truck traffic)\b")


def _notice_text(notice: ClosureNotice) -> str:
    detail = normalize_label(notice.detail_text or "")[:MAX_DETAIL_TEXT_CHARS]
    return normalize_label(f"{notice.title or ''} {detail}").lower()


def infer_structured_impact_by_rules(notice: ClosureNotice) -> StructuredImpact:
    """Keyword-based impact for notices the classifier did not assess.

    Args:
        notice: Closure notice (title, detail text and status are used)

    Returns:
        StructuredImpact with source RULES and a rationale listing the rules that fired
    """
    text = _notice_text(notice)
    reasons: List[str] = []

    partial = bool(_PARTIAL.search(text))
    remains_open = bool(_REMAINS_OPEN.search(text))

    camping = ImpactLevel.NONE
    access_2wd = ImpactLevel.NONE
    access_4wd = ImpactLevel.NONE
    confidence = ImpactConfidence.LOW

    def at_least_medium(current: ImpactConfidence) -> ImpactConfidence:
        return ImpactConfidence.MEDIUM if current == ImpactConfidence.LOW else current

    if notice.status == ClosureStatus.CLOSED and not partial and not remains_open:
        camping = access_2wd = access_4wd = ImpactLevel.CLOSED
        confidence = ImpactConfidence.HIGH
        reasons.append("Notice is marked closed with no partial/open exception wording.")
    else:
        if not _CAMPING_OPEN.search(text):
            if _CAMPING_CLOSED.search(text):
                camping = ImpactLevel.CLOSED
                confidence = ImpactConfidence.MEDIUM
                reasons.append("Camping closure language detected.")
            elif _CAMPING_RESTRICTED.search(text):
                camping = ImpactLevel.RESTRICTED
                confidence = ImpactConfidence.MEDIUM
                reasons.append("Camping restriction language detected.")

        if _ACCESS_CLOSED.search(text) and not _ACCESS_OPEN.search(text):
            access_2wd = merge_impact_level(access_2wd, ImpactLevel.RESTRICTED)
            access_4wd = merge_impact_level(access_4wd, ImpactLevel.RESTRICTED)
            confidence = at_least_medium(confidence)
            reasons.append("Road/access closure language detected.")

        if _2WD_RESTRICTED.search(text):
            access_2wd = merge_impact_level(access_2wd, ImpactLevel.RESTRICTED)
            confidence = at_least_medium(confidence)
            reasons.append("2WD restriction language detected.")

        if _4WD_RESTRICTED.search(text):
            access_4wd = merge_impact_level(access_4wd, ImpactLevel.RESTRICTED)
            confidence = at_least_medium(confidence)
            reasons.append("4WD restriction language detected.")

        if (
            notice.status == ClosureStatus.PARTIAL
            and access_2wd == ImpactLevel.NONE
            and access_4wd == ImpactLevel.NONE
        ):
            access_2wd = access_4wd = ImpactLevel.RESTRICTED
            confidence = at_least_medium(confidence)
            reasons.append("Partial closure status implies at least some access restrictions.")

        if _ADVISORY.search(text):
            if camping == ImpactLevel.NONE:
                camping = ImpactLevel.ADVISORY
            confidence = at_least_medium(confidence)
            reasons.append("Advisory travel/crowding language detected.")

    return StructuredImpact(
        source=ImpactSource.RULES,
        confidence=confidence,
        camping_impact=camping,
        access_2wd_impact=access_2wd,
        access_4wd_impact=access_4wd,
        rationale=" ".join(reasons) if reasons else "No specific impact language detected.",
    )
