"""
Unit tests for the Nominatim and Google provider adapters.
"""

import pytest
import requests

from conftest import FakeResponse, FakeSession
from forest_reconcile.config_manager import GeocodingConfig
from forest_reconcile.exceptions import ConfigurationError
from forest_reconcile.geocoding.models import GeocodeOutcome, GeocodeProviderName
from forest_reconcile.geocoding.providers import build_providers
from forest_reconcile.geocoding.providers.base import parse_coordinate, should_retry_status
from forest_reconcile.geocoding.providers.google import GoogleGeocodingProvider, derive_confidence
from forest_reconcile.geocoding.providers.nominatim import (
    PUBLIC_NOMINATIM_URL,
    NominatimProvider,
    is_local_url,
    parse_confidence,
)

BELANGLO_ROW = {
    "lat": "-34.5312",
    "lon": "150.2281",
    "display_name": "Belanglo State Forest, Wingecarribee Shire Council, New South Wales",
    "importance": 0.45,
}


def nominatim(session, **kwargs):
    sleeps = []
    options = {
        "base_url": "http://localhost:8080",
        "use_public_fallback": False,
        "request_delay_s": 0,
        "local_delay_s": 0,
        "local_429_retry_delay_s": 0,
        "retry_attempts": 1,
        "retry_base_delay_s": 0.5,
    }
    options.update(kwargs)
    provider = NominatimProvider(session=session, sleep=sleeps.append, **options)
    return provider, sleeps


def google(session, api_key="test-key"):
    return GoogleGeocodingProvider(
        api_key=api_key, session=session, retry_attempts=1, sleep=lambda seconds: None
    )


def google_payload(types, status="OK", address="Belanglo State Forest NSW 2577, Australia"):
    return {
        "status": status,
        "results": [{
            "formatted_address": address,
            "geometry": {"location": {"lat": -34.53, "lng": 150.23}},
            "types": types,
        }],
    }


def test_parse_coordinate():
    assert parse_coordinate("-33.1234567", 90) == -33.123457
    assert parse_coordinate("nan", 90) is None
    assert parse_coordinate("91", 90) is None
    assert parse_coordinate(None, 180) is None


def test_should_retry_status():
    assert should_retry_status(429)
    assert should_retry_status(503)
    assert not should_retry_status(404)


class TestNominatimProvider:
    """Test Nominatim adapter behaviour."""

    def test_success(self):
        session = FakeSession(FakeResponse(200, [BELANGLO_ROW]))
        provider, _ = nominatim(session)

        result = provider.attempt("Belanglo State Forest, NSW", "alias:a", "query:q")

        assert result.attempt.outcome == GeocodeOutcome.LOOKUP_SUCCESS
        assert result.attempt.provider == GeocodeProviderName.OSM_NOMINATIM
        assert result.hit.latitude == -34.5312
        assert result.hit.confidence == 0.45
        assert session.calls[0]["url"] == "http://localhost:8080/search"
        assert session.calls[0]["timeout"] == 15.0
        assert session.calls[0]["params"]["q"] == "Belanglo State Forest, NSW"
        assert "User-Agent" in session.calls[0]["headers"]

    def test_empty_result(self):
        provider, _ = nominatim(FakeSession(FakeResponse(200, [])))
        result = provider.attempt("Nowhere", None, "query:nowhere")

        assert result.hit is None
        assert result.attempt.outcome == GeocodeOutcome.EMPTY_RESULT
        assert result.attempt.result_count == 0

    def test_invalid_coordinates(self):
        row = dict(BELANGLO_ROW, lat="999")
        provider, _ = nominatim(FakeSession(FakeResponse(200, [row])))

        assert provider.attempt("q", None, "query:q").attempt.outcome == GeocodeOutcome.INVALID_COORDINATES

    def test_invalid_json(self):
        provider, _ = nominatim(FakeSession(FakeResponse(200, ValueError("bad json"))))
        attempt = provider.attempt("q", None, "query:q").attempt

        assert attempt.outcome == GeocodeOutcome.REQUEST_FAILED
        assert "Invalid JSON" in attempt.error_message

    def test_http_error(self):
        provider, _ = nominatim(FakeSession(FakeResponse(403, None)))
        attempt = provider.attempt("q", None, "query:q").attempt

        assert attempt.outcome == GeocodeOutcome.HTTP_ERROR
        assert attempt.http_status == 403

    def test_retries_with_exponential_backoff(self):
        """Test 5xx answers are retried with doubling delays."""
        session = FakeSession(
            FakeResponse(500, None),
            FakeResponse(503, None),
            FakeResponse(200, [BELANGLO_ROW]),
        )
        provider, sleeps = nominatim(session, retry_attempts=3)

        result = provider.attempt("q", None, "query:q")

        assert result.attempt.outcome == GeocodeOutcome.LOOKUP_SUCCESS
        assert len(session.calls) == 3
        assert sleeps == [0.5, 1.0]

    def test_transport_errors_exhaust_retries(self):
        session = FakeSession(
            requests.ConnectionError("connection refused"),
            requests.Timeout("read timed out"),
        )
        provider, _ = nominatim(session, retry_attempts=2)

        attempt = provider.attempt("q", None, "query:q").attempt

        assert attempt.outcome == GeocodeOutcome.REQUEST_FAILED
        assert attempt.error_message == "read timed out"

    def test_local_429_is_retried(self):
        session = FakeSession(
            FakeResponse(429, None),
            FakeResponse(429, None),
            FakeResponse(200, [BELANGLO_ROW]),
        )
        provider, _ = nominatim(session, local_429_retries=2)

        assert provider.attempt("q", None, "query:q").attempt.outcome == GeocodeOutcome.LOOKUP_SUCCESS
        assert len(session.calls) == 3

    def test_falls_back_to_public_instance(self):
        """Test an unreachable local instance falls through to the public one with a warning."""
        session = FakeSession(
            requests.ConnectionError("connection refused"),
            FakeResponse(200, [BELANGLO_ROW]),
        )
        provider, _ = nominatim(session, use_public_fallback=True)

        result = provider.attempt("q", None, "query:q")

        assert result.attempt.outcome == GeocodeOutcome.LOOKUP_SUCCESS
        assert session.calls[1]["url"] == f"{PUBLIC_NOMINATIM_URL}/search"
        assert result.warnings and "Local Nominatim" in result.warnings[0]

    def test_not_configured_without_urls(self):
        provider, _ = nominatim(FakeSession(), base_url=None)

        assert not provider.is_configured()
        assert provider.attempt("q", None, "query:q").attempt.outcome == GeocodeOutcome.PROVIDER_NOT_CONFIGURED

    def test_is_local_url(self):
        assert is_local_url("http://localhost:8080")
        assert is_local_url("http://127.0.0.1:8080/")
        assert not is_local_url(PUBLIC_NOMINATIM_URL)

    def test_non_numeric_importance(self):
        """Test a malformed importance still yields a hit, with zero confidence."""
        row = dict(BELANGLO_ROW, importance="high")
        result = nominatim(FakeSession(FakeResponse(200, [row])))[0].attempt("q", None, "query:q")

        assert result.attempt.outcome == GeocodeOutcome.LOOKUP_SUCCESS
        assert result.hit.confidence == 0.0

    def test_parse_confidence(self):
        assert parse_confidence(0.45) == 0.45
        assert parse_confidence("1.7") == 1.0
        assert parse_confidence(None) == 0.0
        assert parse_confidence("nan") == 0.0


class TestGoogleGeocodingProvider:
    """Test Google adapter behaviour."""

    def test_missing_key(self):
        session = FakeSession()
        provider = google(session, api_key="  ")

        attempt = provider.attempt("q", None, "query:q").attempt

        assert not provider.is_configured()
        assert attempt.outcome == GeocodeOutcome.PROVIDER_NOT_CONFIGURED
        assert attempt.error_message == "GOOGLE_MAPS_API_KEY is missing"
        assert session.calls == []

    def test_named_feature(self):
        session = FakeSession(FakeResponse(200, google_payload(["natural_feature", "establishment"])))
        result = google(session).attempt("Belanglo State Forest", None, "query:q")

        assert result.attempt.outcome == GeocodeOutcome.LOOKUP_SUCCESS
        assert result.hit.provider == GeocodeProviderName.GOOGLE_GEOCODING
        assert result.hit.confidence == 1.0
        assert session.calls[0]["params"]["key"] == "test-key"
        assert session.calls[0]["params"]["region"] == "au"

    def test_street_level_result_rejected(self):
        """Test a road named after the forest is not accepted."""
        session = FakeSession(FakeResponse(200, google_payload(["route"], address="Belanglo Rd, NSW")))
        result = google(session).attempt("Belanglo State Forest", None, "query:q")

        assert result.hit is None
        assert result.attempt.outcome == GeocodeOutcome.EMPTY_RESULT
        assert "Rejected street-level" in result.attempt.error_message

    def test_zero_results(self):
        session = FakeSession(FakeResponse(200, {"status": "ZERO_RESULTS", "results": []}))
        assert google(session).attempt("q", None, "query:q").attempt.outcome == GeocodeOutcome.EMPTY_RESULT

    def test_api_error_status(self):
        payload = {"status": "REQUEST_DENIED", "error_message": "The provided API key is invalid.", "results": []}
        session = FakeSession(FakeResponse(200, payload))

        attempt = google(session).attempt("q", None, "query:q").attempt

        assert attempt.outcome == GeocodeOutcome.HTTP_ERROR
        assert attempt.error_message.startswith("REQUEST_DENIED")

    @pytest.mark.parametrize("body", [["not", "a", "dict"], "OK", None])
    def test_non_object_body(self, body):
        session = FakeSession(FakeResponse(200, body))
        attempt = google(session).attempt("q", None, "query:q").attempt

        assert attempt.outcome == GeocodeOutcome.REQUEST_FAILED
        assert "Unexpected response body" in attempt.error_message

    def test_derive_confidence(self):
        assert derive_confidence(["park"]) == 1.0
        assert derive_confidence(["locality", "political"]) == 0.5
        assert derive_confidence(["political"]) == 0.3


def test_build_providers_follows_configured_order():
    config = GeocodingConfig(
        providers=["google", "nominatim"],
        provider_options={"google": {"api_key": "k"}, "nominatim": {"use_public_fallback": False}},
    )
    providers = build_providers(config, session=FakeSession())

    assert [p.name for p in providers] == [
        GeocodeProviderName.GOOGLE_GEOCODING,
        GeocodeProviderName.OSM_NOMINATIM,
    ]
    assert providers[0].is_configured()
    assert providers[1].base_urls == ["http://localhost:8080"]


def test_build_providers_rejects_unknown_names():
    with pytest.raises(ConfigurationError):
        build_providers(GeocodingConfig(providers=["bing"]))
