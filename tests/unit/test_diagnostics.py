"""
Unit tests for geocode failure diagnostics.
"""

from forest_reconcile.geocoding.diagnostics import (
    NO_ATTEMPTS_MESSAGE,
    build_geocode_diagnostics,
    describe_attempt,
    select_failure_reason,
    should_use_area_fallback,
)
from forest_reconcile.geocoding.models import (
    GeocodeAttempt,
    GeocodeOutcome,
    GeocodeProviderName,
    GeocodeResponse,
)


def attempt(outcome, provider=GeocodeProviderName.OSM_NOMINATIM, **kwargs):
    return GeocodeAttempt(
        provider=provider,
        query="Belanglo State Forest, New South Wales, Australia",
        cache_key="query:belanglo state forest, new south wales, australia",
        outcome=outcome,
        **kwargs,
    )


def test_limit_reached_wins():
    reason = select_failure_reason([
        attempt(GeocodeOutcome.EMPTY_RESULT),
        attempt(GeocodeOutcome.LIMIT_REACHED),
    ])
    assert reason == "Geocoding lookup limit reached before coordinates were resolved."


def test_not_configured_names_provider():
    reason = select_failure_reason([
        attempt(GeocodeOutcome.EMPTY_RESULT),
        attempt(
            GeocodeOutcome.PROVIDER_NOT_CONFIGURED,
            provider=GeocodeProviderName.GOOGLE_GEOCODING,
            error_message="GOOGLE_MAPS_API_KEY is missing",
        ),
    ])
    assert reason == "Google Geocoding is unavailable because GOOGLE_MAPS_API_KEY is missing."


def test_request_failures_and_empty_results():
    assert "request failed" in select_failure_reason([attempt(GeocodeOutcome.HTTP_ERROR)])
    assert "No usable geocoding results" in select_failure_reason([attempt(GeocodeOutcome.EMPTY_RESULT)])
    assert "Coordinates were unavailable" in select_failure_reason([])


def test_describe_attempt():
    line = describe_attempt("Forest lookup", attempt(GeocodeOutcome.HTTP_ERROR, http_status=503))
    assert line.startswith("Forest lookup: HTTP_ERROR | provider=OSM_NOMINATIM | query=Belanglo")
    assert line.endswith("http=503")


def test_build_geocode_diagnostics_includes_area_attempts():
    forest = GeocodeResponse(attempts=[attempt(GeocodeOutcome.EMPTY_RESULT)])
    area = GeocodeResponse(attempts=[attempt(GeocodeOutcome.LIMIT_REACHED)])

    diagnostics = build_geocode_diagnostics(forest, area)

    assert len(diagnostics.debug) == 2
    assert diagnostics.debug[1].startswith("Area fallback: LIMIT_REACHED")
    assert "lookup limit" in diagnostics.reason


def test_build_geocode_diagnostics_without_attempts():
    diagnostics = build_geocode_diagnostics(GeocodeResponse())
    assert diagnostics.debug == [NO_ATTEMPTS_MESSAGE]


def test_area_fallback_guard():
    """Test fallback is allowed only when providers said there is nothing to find."""
    assert should_use_area_fallback([])
    assert should_use_area_fallback([
        attempt(GeocodeOutcome.CACHE_MISS),
        attempt(GeocodeOutcome.EMPTY_RESULT),
    ])
    assert not should_use_area_fallback([attempt(GeocodeOutcome.CACHE_MISS)])
    assert not should_use_area_fallback([
        attempt(GeocodeOutcome.EMPTY_RESULT),
        attempt(GeocodeOutcome.LIMIT_REACHED),
    ])
    assert not should_use_area_fallback([
        attempt(GeocodeOutcome.INVALID_COORDINATES),
        attempt(GeocodeOutcome.PROVIDER_NOT_CONFIGURED),
    ])
