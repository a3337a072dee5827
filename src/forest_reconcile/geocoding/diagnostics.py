"""
Operator-facing geocode diagnostics derived from attempt trails.
"""

from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel, Field

from forest_reconcile.geocoding.models import (
    NO_DATA_OUTCOMES,
    TRANSIENT_OR_QUOTA_OUTCOMES,
    GeocodeAttempt,
    GeocodeOutcome,
    GeocodeProviderName,
    GeocodeResponse,
)

PROVIDER_LABELS = {
    GeocodeProviderName.OSM_NOMINATIM: "Nominatim",
    GeocodeProviderName.GOOGLE_GEOCODING: "Google Geocoding",
}

NO_ATTEMPTS_MESSAGE = "No geocoding attempt diagnostics were captured in this snapshot."


class GeocodeDiagnostics(BaseModel):
    """Why a forest has no coordinates, plus one line per attempt."""
    reason: str
    debug: List[str] = Field(default_factory=list)


def select_failure_reason(attempts: Sequence[GeocodeAttempt]) -> str:
    """Pick the most actionable explanation for a failed lookup."""
    outcomes = {attempt.outcome for attempt in attempts}

    if GeocodeOutcome.LIMIT_REACHED in outcomes:
        return "Geocoding lookup limit reached before coordinates were resolved."

    not_configured = [
        attempt for attempt in attempts
        if attempt.outcome == GeocodeOutcome.PROVIDER_NOT_CONFIGURED
    ]
    if not_configured:
        provider = PROVIDER_LABELS.get(not_configured[0].provider, not_configured[0].provider.value)
        detail = not_configured[0].error_message or "it is not configured"
        return f"{provider} is unavailable because {detail}."

    if outcomes & {GeocodeOutcome.HTTP_ERROR, GeocodeOutcome.REQUEST_FAILED}:
        return "Geocoding request failed before coordinates were resolved."

    if outcomes & NO_DATA_OUTCOMES:
        return "No usable geocoding results were returned for this forest."

    return "Coordinates were unavailable after forest and area geocoding."


def describe_attempt(prefix: str, attempt: GeocodeAttempt) -> str:
    """One-line summary, e.g. "Forest lookup: EMPTY_RESULT | provider=OSM_NOMINATIM | query=..."."""
    details = [
        f"{prefix}: {attempt.outcome.value}",
        f"provider={attempt.provider.value}",
        f"query={attempt.query}",
    ]
    if attempt.http_status is not None:
        details.append(f"http={attempt.http_status}")
    if attempt.result_count is not None:
        details.append(f"results={attempt.result_count}")
    if attempt.error_message:
        details.append(f"error={attempt.error_message}")
    return " | ".join(details)


def build_geocode_diagnostics(
    forest_lookup: GeocodeResponse,
    area_lookup: Optional[GeocodeResponse] = None,
) -> GeocodeDiagnostics:
    forest_attempts = list(forest_lookup.attempts)
    area_attempts = list(area_lookup.attempts) if area_lookup else []

    debug = [describe_attempt("Forest lookup", attempt) for attempt in forest_attempts]
    debug += [describe_attempt("Area fallback", attempt) for attempt in area_attempts]
    if not debug:
        debug.append(NO_ATTEMPTS_MESSAGE)

    return GeocodeDiagnostics(
        reason=select_failure_reason(forest_attempts + area_attempts),
        debug=debug,
    )


def should_use_area_fallback(attempts: Iterable[GeocodeAttempt]) -> bool:
    """Area centroids may stand in only when providers found nothing.

    Quota, transport and configuration failures say nothing about whether
    the forest exists, so they never justify an approximate location.
    """
    outcomes = {attempt.outcome for attempt in attempts}
    if not outcomes:
        return True
    return bool(outcomes & NO_DATA_OUTCOMES) and not (outcomes & TRANSIENT_OR_QUOTA_OUTCOMES)
