"""
Most-restrictive fire-ban status per forest.

A forest can be listed under several fire-ban areas. The strictest status
wins: BANNED > NOT_BANNED > UNKNOWN.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from forest_reconcile.models import BanStatus, FireBanArea
from forest_reconcile.utils.text_normalize import build_forest_status_key, normalize_label

BAN_STATUS_PRIORITY = {
    BanStatus.UNKNOWN: 0,
    BanStatus.NOT_BANNED: 1,
    BanStatus.BANNED: 2,
}

DEFAULT_STATUS_TEXT = {
    BanStatus.BANNED: "Solid Fuel Fire Ban",
    BanStatus.NOT_BANNED: "No Solid Fuel Fire Ban",
    BanStatus.UNKNOWN: "Unknown",
}


@dataclass
class ForestBanSummary:
    """Ban status for one forest across every area that lists it."""
    forest_name: str
    status: BanStatus
    status_text: str
    area_names: List[str] = field(default_factory=list)
    area_urls: Dict[str, str] = field(default_factory=dict)

    @property
    def primary_area(self) -> Optional[str]:
        return self.area_names[0] if self.area_names else None


def status_text_for(area: FireBanArea) -> str:
    text = normalize_label(area.status_text or "")
    return text or DEFAULT_STATUS_TEXT[area.status]


def build_most_restrictive_ban_by_forest(areas: Iterable[FireBanArea]) -> Dict[str, ForestBanSummary]:
    """Collapse area listings into one ban summary per forest.

    Args:
        areas: Fire-ban areas in source order

    Returns:
        Summaries keyed by forest status key, in first-seen order. The
        forest name is the first spelling seen.
    """
    summaries: Dict[str, ForestBanSummary] = {}

    for area in areas:
        area_name = normalize_label(area.area_name)
        for raw_name in area.forests:
            forest_name = normalize_label(raw_name)
            if not forest_name:
                continue
            key = build_forest_status_key(forest_name)
            summary = summaries.get(key)

            if summary is None:
                summaries[key] = ForestBanSummary(
                    forest_name=forest_name,
                    status=area.status,
                    status_text=status_text_for(area),
                    area_names=[area_name],
                    area_urls={area_name: area.area_url},
                )
                continue

            if area_name.lower() not in {name.lower() for name in summary.area_names}:
                summary.area_names.append(area_name)
                summary.area_urls[area_name] = area.area_url

            if BAN_STATUS_PRIORITY[area.status] > BAN_STATUS_PRIORITY[summary.status]:
                summary.status = area.status
                summary.status_text = status_text_for(area)

    return summaries
