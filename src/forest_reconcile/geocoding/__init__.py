"""Cached, budgeted geocoding of forests and fire-ban areas."""

from forest_reconcile.geocoding.diagnostics import (
    GeocodeDiagnostics,
    build_geocode_diagnostics,
    select_failure_reason,
    should_use_area_fallback,
)
from forest_reconcile.geocoding.enrichment_queue import EnrichmentJob, EnrichmentQueue
from forest_reconcile.geocoding.models import (
    GeocodeAttempt,
    GeocodeHit,
    GeocodeOutcome,
    GeocodeProviderName,
    GeocodeResponse,
)
from forest_reconcile.geocoding.resolver import CascadingGeocodeResolver
from forest_reconcile.geocoding.run_context import LookupBudget, RunContext

__all__ = [
    "CascadingGeocodeResolver",
    "EnrichmentJob",
    "EnrichmentQueue",
    "GeocodeAttempt",
    "GeocodeDiagnostics",
    "GeocodeHit",
    "GeocodeOutcome",
    "GeocodeProviderName",
    "GeocodeResponse",
    "LookupBudget",
    "RunContext",
    "build_geocode_diagnostics",
    "select_failure_reason",
    "should_use_area_fallback",
]
