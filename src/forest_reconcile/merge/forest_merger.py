"""
Forest record merger.

Builds one CanonicalForestRecord per forest from the ban summary, facility
match, closure notices and geocode response. Pure: the same inputs always
produce the same records in the same order.
"""

from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from forest_reconcile.geocoding.diagnostics import GeocodeDiagnostics, build_geocode_diagnostics
from forest_reconcile.geocoding.models import GeocodeProviderName, GeocodeResponse
from forest_reconcile.matching.assignments import ClosureAssignments, FacilityAssignments
from forest_reconcile.matching.models import MatchResult
from forest_reconcile.merge.ban_status import ForestBanSummary
from forest_reconcile.merge.closures import (
    ClosureImpactSummary,
    build_closure_impact_summary,
    build_closure_status,
)
from forest_reconcile.models import BanStatus, ClosureStatus
from forest_reconcile.utils.text_normalize import slugify


class CanonicalForestRecord(BaseModel):
    """Everything known about one forest after reconciliation."""

    id: str
    name: str
    area_names: List[str] = Field(default_factory=list)
    forest_url: Optional[str] = None

    ban_status: BanStatus
    ban_status_text: str

    # None = unknown (unmatched directory entry), never "absent"
    facilities: Dict[str, Optional[bool]] = Field(default_factory=dict)
    facility_match: MatchResult

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    geocode_name: Optional[str] = None
    geocode_confidence: Optional[float] = None
    geocode_provider: Optional[GeocodeProviderName] = None
    geocode_approximate: bool = False
    geocode_diagnostics: Optional[GeocodeDiagnostics] = None

    closure_status: ClosureStatus = ClosureStatus.NONE
    closure_impact: ClosureImpactSummary = Field(default_factory=ClosureImpactSummary)
    closure_notice_ids: List[str] = Field(default_factory=list)


class ForestRecordMerger:
    """Combines per-source results into canonical forest records."""

    def merge_one(
        self,
        ban: ForestBanSummary,
        facilities: FacilityAssignments,
        closures: ClosureAssignments,
        geocode: Optional[GeocodeResponse],
        area_geocode: Optional[GeocodeResponse] = None,
        forest_url: Optional[str] = None,
    ) -> CanonicalForestRecord:
        name = ban.forest_name
        facility = facilities.by_forest_name.get(name)
        notices = closures.by_forest_name.get(name, [])
        geocode = geocode or GeocodeResponse()

        diagnostics = None
        if not geocode.resolved or geocode.approximate:
            diagnostics = build_geocode_diagnostics(geocode, area_geocode)

        return CanonicalForestRecord(
            id=slugify(name),
            name=name,
            area_names=list(ban.area_names),
            forest_url=forest_url,
            ban_status=ban.status,
            ban_status_text=ban.status_text,
            facilities=dict(facility.facilities) if facility else {},
            facility_match=facility.match if facility else MatchResult.unmatched(),
            latitude=geocode.latitude,
            longitude=geocode.longitude,
            geocode_name=geocode.display_name,
            geocode_confidence=geocode.confidence,
            geocode_provider=geocode.provider,
            geocode_approximate=geocode.approximate,
            geocode_diagnostics=diagnostics,
            closure_status=build_closure_status(notices),
            closure_impact=build_closure_impact_summary(notices),
            closure_notice_ids=sorted(notice.id for notice in notices),
        )

    def merge(
        self,
        bans: Mapping[str, ForestBanSummary],
        facilities: FacilityAssignments,
        closures: ClosureAssignments,
        geocodes: Mapping[str, GeocodeResponse],
        area_geocodes: Optional[Mapping[str, GeocodeResponse]] = None,
        forest_urls: Optional[Mapping[str, str]] = None,
    ) -> List[CanonicalForestRecord]:
        """Build records for every forest in the ban summary.

        Args:
            bans: Ban summaries (one per forest)
            facilities: Facility assignments keyed by forest name
            closures: Closure assignments keyed by forest name
            geocodes: Geocode responses keyed by forest name
            area_geocodes: Area centroid responses keyed by area name
            forest_urls: Directory URLs keyed by forest name

        Returns:
            Records sorted by forest name
        """
        area_geocodes = area_geocodes or {}
        forest_urls = forest_urls or {}

        records = []
        for ban in bans.values():
            area_geocode = area_geocodes.get(ban.primary_area) if ban.primary_area else None
            records.append(self.merge_one(
                ban,
                facilities,
                closures,
                geocodes.get(ban.forest_name),
                area_geocode=area_geocode,
                forest_url=forest_urls.get(ban.forest_name),
            ))
        return sorted(records, key=lambda record: (record.name.casefold(), record.name))
