"""
Reconciliation pipeline.

Runs one batch: ban summary, facility and closure matching, area centroid
geocoding (sequential), forest geocoding (bounded thread pool), then the
merge into canonical forest records.
"""

import csv
import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from tqdm import tqdm

from forest_reconcile.cache.geocode_cache import GeocodeCache
from forest_reconcile.cache.kv_store import SQLiteKeyValueStore
from forest_reconcile.config_manager import MatchingConfig, ReconcileConfig
from forest_reconcile.exceptions import EmptyInputError
from forest_reconcile.geocoding.models import GeocodeResponse
from forest_reconcile.geocoding.providers import build_providers
from forest_reconcile.geocoding.resolver import CascadingGeocodeResolver
from forest_reconcile.geocoding.run_context import RunContext
from forest_reconcile.matching.assignments import (
    ClosureAssignments,
    FacilityAssignments,
    build_closure_assignments,
    build_facility_assignments,
)
from forest_reconcile.matching.models import MatchType
from forest_reconcile.merge.ban_status import ForestBanSummary, build_most_restrictive_ban_by_forest
from forest_reconcile.merge.forest_merger import CanonicalForestRecord, ForestRecordMerger
from forest_reconcile.models import ReconciliationInput
from forest_reconcile.utils.text_normalize import normalize_label

logger = logging.getLogger(__name__)


@dataclass
class ReconcileStatistics:
    """Counts for one reconciliation run."""
    total_forests: int = 0
    facility_exact: int = 0
    facility_fuzzy: int = 0
    facility_unmatched: int = 0
    closure_notices_matched: int = 0
    closure_notices_unmatched: int = 0
    geocoded: int = 0
    geocoded_from_cache: int = 0
    approximate: int = 0
    unresolved: int = 0
    lookups_used: int = 0
    lookup_budget: int = 0
    enrichment_queued: int = 0
    enrichment_upgraded: int = 0
    total_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_forests": self.total_forests,
            "facility_exact": self.facility_exact,
            "facility_fuzzy": self.facility_fuzzy,
            "facility_unmatched": self.facility_unmatched,
            "closure_notices_matched": self.closure_notices_matched,
            "closure_notices_unmatched": self.closure_notices_unmatched,
            "geocoded": self.geocoded,
            "geocoded_from_cache": self.geocoded_from_cache,
            "approximate": self.approximate,
            "unresolved": self.unresolved,
            "lookups_used": self.lookups_used,
            "lookup_budget": self.lookup_budget,
            "enrichment_queued": self.enrichment_queued,
            "enrichment_upgraded": self.enrichment_upgraded,
            "total_time_ms": self.total_time_ms,
        }


@dataclass
class ReconcileResult:
    """Snapshot produced by one run."""
    fetched_at: str
    forests: List[CanonicalForestRecord]
    facility_assignments: FacilityAssignments
    closure_assignments: ClosureAssignments
    geocodes: Dict[str, GeocodeResponse] = field(default_factory=dict)
    area_geocodes: Dict[str, GeocodeResponse] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    statistics: ReconcileStatistics = field(default_factory=ReconcileStatistics)

    def geocode_failures(self) -> List[Dict[str, Any]]:
        """Unresolved forests with their reason and full attempt trail."""
        failures = []
        for record in self.forests:
            if record.latitude is not None and record.longitude is not None:
                continue
            response = self.geocodes.get(record.name) or GeocodeResponse()
            failures.append({
                "forest_name": record.name,
                "area_names": record.area_names,
                "reason": record.geocode_diagnostics.reason if record.geocode_diagnostics else response.reason,
                "attempts": [attempt.model_dump(mode="json") for attempt in response.attempts],
            })
        return failures

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "fetched_at": self.fetched_at,
            "forests": [record.model_dump(mode="json") for record in self.forests],
            "facility_match_diagnostics": self.facility_assignments.diagnostics.model_dump(mode="json"),
            "closure_match_diagnostics": self.closure_assignments.diagnostics.model_dump(mode="json"),
            "geocode_failures": self.geocode_failures(),
            "warnings": list(self.warnings),
            "statistics": self.statistics.to_dict(),
        }


class ReconciliationPipeline:
    """Orchestrates one reconciliation run."""

    def __init__(
        self,
        resolver: CascadingGeocodeResolver,
        matching: Optional[MatchingConfig] = None,
        forest_workers: int = 4,
        show_progress: bool = False,
        merger: Optional[ForestRecordMerger] = None,
    ):
        """Initialize pipeline.

        Args:
            resolver: Geocode resolver (cache + providers)
            matching: Matching thresholds
            forest_workers: Threads used for forest geocoding
            show_progress: Show a tqdm progress bar for forest geocoding
            merger: Record merger
        """
        self.resolver = resolver
        self.matching = matching or MatchingConfig()
        self.forest_workers = max(1, forest_workers)
        self.show_progress = show_progress
        self.merger = merger or ForestRecordMerger()

    @classmethod
    def from_config(
        cls,
        config: ReconcileConfig,
        session: Optional[requests.Session] = None,
        show_progress: bool = False,
    ) -> "ReconciliationPipeline":
        """Build the cache, providers and resolver described by a configuration."""
        cache = GeocodeCache(SQLiteKeyValueStore(config.cache_db_path))
        resolver = CascadingGeocodeResolver(
            cache=cache,
            providers=build_providers(config.geocoding, session=session),
            max_new_lookups_per_run=config.geocoding.max_new_lookups_per_run,
            region_suffix=config.geocoding.region_suffix,
            background_enrichment=config.geocoding.background_enrichment,
        )
        return cls(
            resolver=resolver,
            matching=config.matching,
            forest_workers=config.geocoding.forest_workers,
            show_progress=show_progress,
        )

    def run(
        self,
        inputs: ReconciliationInput,
        now: Optional[datetime] = None,
        max_new_lookups: Optional[int] = None,
    ) -> ReconcileResult:
        """Reconcile one scraped snapshot.

        Args:
            inputs: Fire-ban areas, facility directory and closure notices
            now: Reference time for closure activity (defaults to current UTC)
            max_new_lookups: Override the resolver's per-run lookup budget

        Returns:
            ReconcileResult with canonical records and diagnostics

        Raises:
            EmptyInputError: If there are no fire-ban areas or forest names
        """
        started = time.time()
        now = now or datetime.now(timezone.utc)

        if not inputs.areas:
            raise EmptyInputError("Fire-ban input has no areas; refusing to publish an empty snapshot")
        bans = build_most_restrictive_ban_by_forest(inputs.areas)
        if not bans:
            raise EmptyInputError("Fire-ban areas list no forests; refusing to publish an empty snapshot")

        forest_names = [ban.forest_name for ban in bans.values()]
        logger.info(f"Reconciling {len(forest_names)} forests from {len(inputs.areas)} areas")

        facilities = build_facility_assignments(
            forest_names, inputs.directory, threshold=self.matching.facility_threshold
        )
        closures = build_closure_assignments(
            inputs.closures, forest_names, now=now, threshold=self.matching.closure_threshold
        )

        context = self.resolver.new_run_context(max_new_lookups)
        try:
            area_geocodes = self._geocode_areas(inputs, context)
            geocodes = self._geocode_forests(bans, facilities, context)
        finally:
            # Let queued upgrades land in the cache before the run ends
            context.close()

        forest_urls = {
            entry.forest_name: entry.forest_url
            for entry in inputs.directory.forests
            if entry.forest_url
        }
        matched_urls = {}
        for name, facility in facilities.by_forest_name.items():
            if facility.match.matched_name and facility.match.matched_name in forest_urls:
                matched_urls[name] = forest_urls[facility.match.matched_name]

        records = self.merger.merge(
            bans, facilities, closures, geocodes,
            area_geocodes=area_geocodes,
            forest_urls=matched_urls,
        )

        warnings = list(context.warnings)
        for response in list(area_geocodes.values()) + list(geocodes.values()):
            for warning in response.warnings:
                if warning not in warnings:
                    warnings.append(warning)

        result = ReconcileResult(
            fetched_at=now.isoformat(),
            forests=records,
            facility_assignments=facilities,
            closure_assignments=closures,
            geocodes=geocodes,
            area_geocodes=area_geocodes,
            warnings=warnings,
        )
        result.statistics = self._build_statistics(result, context, started)
        logger.info(
            f"Reconciliation complete: {result.statistics.geocoded}/{len(records)} geocoded, "
            f"{result.statistics.unresolved} unresolved, "
            f"{result.statistics.lookups_used}/{result.statistics.lookup_budget} lookups used"
        )
        return result

    def _geocode_areas(self, inputs: ReconciliationInput, context: RunContext) -> Dict[str, GeocodeResponse]:
        """Resolve every area centroid before any forest touches the budget."""
        area_geocodes: Dict[str, GeocodeResponse] = {}
        for area in inputs.areas:
            name = normalize_label(area.area_name)
            if not name or name in area_geocodes:
                continue
            area_geocodes[name] = self.resolver.geocode_area(name, area.area_url, context)
        return area_geocodes

    def _geocode_forests(
        self,
        bans: Dict[str, ForestBanSummary],
        facilities: FacilityAssignments,
        context: RunContext,
    ) -> Dict[str, GeocodeResponse]:
        geocodes: Dict[str, GeocodeResponse] = {}

        with ThreadPoolExecutor(max_workers=self.forest_workers, thread_name_prefix="geocode") as executor:
            futures = {}
            for ban in bans.values():
                facility = facilities.by_forest_name.get(ban.forest_name)
                directory_hint = facility.match.matched_name if facility else None
                futures[executor.submit(
                    self.resolver.geocode_forest,
                    ban.forest_name,
                    ban.primary_area,
                    directory_hint,
                    context,
                )] = ban.forest_name

            completed = as_completed(futures)
            if self.show_progress:
                completed = tqdm(completed, total=len(futures), desc="Geocoding forests", unit="forest")
            for future in completed:
                geocodes[futures[future]] = future.result()

        return geocodes

    @staticmethod
    def _build_statistics(result: ReconcileResult, context: RunContext, started: float) -> ReconcileStatistics:
        stats = ReconcileStatistics(total_forests=len(result.forests))

        for facility in result.facility_assignments.by_forest_name.values():
            if facility.match.match_type == MatchType.EXACT:
                stats.facility_exact += 1
            elif facility.match.match_type == MatchType.FUZZY:
                stats.facility_fuzzy += 1
            else:
                stats.facility_unmatched += 1

        stats.closure_notices_matched = sum(
            len(notices) for notices in result.closure_assignments.by_forest_name.values()
        )
        stats.closure_notices_unmatched = len(result.closure_assignments.diagnostics.unmatched_notice_ids)

        for response in result.geocodes.values():
            if not response.resolved:
                stats.unresolved += 1
            elif response.approximate:
                stats.approximate += 1
            else:
                stats.geocoded += 1
                if response.cache_only:
                    stats.geocoded_from_cache += 1

        stats.lookups_used = context.budget.used
        stats.lookup_budget = context.budget.max_lookups
        if context.enrichment is not None:
            stats.enrichment_queued = context.enrichment.queued
            stats.enrichment_upgraded = context.enrichment.upgraded
        stats.total_time_ms = int((time.time() - started) * 1000)
        return stats

    def print_summary(self, result: ReconcileResult) -> None:
        """Print a human-readable run summary."""
        stats = result.statistics
        total = stats.total_forests or 1
        print(f"\n{'='*80}")
        print("Reconciliation Complete")
        print(f"{'='*80}")
        print(f"Forests: {stats.total_forests}")
        print(f"Facilities: {stats.facility_exact} exact, {stats.facility_fuzzy} fuzzy, "
              f"{stats.facility_unmatched} unmatched")
        print(f"Closure notices: {stats.closure_notices_matched} matched, "
              f"{stats.closure_notices_unmatched} unmatched")
        print(f"Geocoded: {stats.geocoded} ({stats.geocoded/total*100:.1f}%), "
              f"{stats.geocoded_from_cache} from cache")
        print(f"Area centroid approximations: {stats.approximate}")
        print(f"Unresolved: {stats.unresolved}")
        print(f"Lookups used: {stats.lookups_used}/{stats.lookup_budget}")
        if stats.enrichment_queued:
            print(f"Background upgrades: {stats.enrichment_upgraded}/{stats.enrichment_queued}")
        print(f"Total Time: {stats.total_time_ms}ms")
        if result.warnings:
            print("\nWarnings:")
            for warning in result.warnings:
                print(f"  ⚠️  {warning}")
        print(f"{'='*80}\n")

    @staticmethod
    def write_snapshot(result: ReconcileResult, output_path: Path) -> Path:
        """Write the snapshot JSON.

        Args:
            result: Run result
            output_path: Destination file

        Returns:
            The written path
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            json.dump(result.to_dict(), f, indent=2)
        logger.info(f"Wrote snapshot with {len(result.forests)} forests to {output_path}")
        return output_path

    @staticmethod
    def export_geocode_failures(result: ReconcileResult, output_path: Path) -> int:
        """Export forests without exact coordinates to a review CSV.

        Unresolved forests come first, then area-centroid approximations.

        Args:
            result: Run result
            output_path: Path to output CSV file

        Returns:
            Number of rows written
        """
        rows = [
            record for record in result.forests
            if record.latitude is None or record.geocode_approximate
        ]
        rows.sort(key=lambda r: (r.geocode_approximate, r.name.casefold()))

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=[
                "forest_name", "area_names", "status", "reason",
                "latitude", "longitude", "geocode_name", "debug",
            ])
            writer.writeheader()

            for record in rows:
                diagnostics = record.geocode_diagnostics
                writer.writerow({
                    "forest_name": record.name,
                    "area_names": "; ".join(record.area_names),
                    "status": "APPROXIMATE" if record.geocode_approximate else "UNRESOLVED",
                    "reason": diagnostics.reason if diagnostics else "",
                    "latitude": record.latitude,
                    "longitude": record.longitude,
                    "geocode_name": record.geocode_name,
                    "debug": " || ".join(diagnostics.debug) if diagnostics else "",
                })

        logger.info(f"Exported {len(rows)} geocode review rows to {output_path}")
        return len(rows)
