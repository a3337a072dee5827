"""
Google Geocoding API provider.

Precise but paid, and needs GOOGLE_MAPS_API_KEY. Street-level results are
rejected: a road named after a forest is not the forest.
"""

import logging
from typing import List, Optional

from forest_reconcile.geocoding.models import GeocodeHit, GeocodeOutcome, GeocodeProviderName
from forest_reconcile.geocoding.providers.base import GeocodeProvider, ProviderResult, parse_coordinate

logger = logging.getLogger(__name__)

GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

REJECTED_RESULT_TYPES = frozenset({
    "street_address",
    "route",
    "intersection",
    "premise",
    "subpremise",
    "floor",
    "room",
    "post_box",
    "parking",
    "bus_station",
    "train_station",
    "transit_station",
    "airport",
})

NAMED_FEATURE_TYPES = frozenset({
    "natural_feature",
    "park",
    "point_of_interest",
    "establishment",
    "campground",
})

BROAD_AREA_TYPES = frozenset({
    "locality",
    "sublocality",
    "administrative_area_level_1",
    "administrative_area_level_2",
    "administrative_area_level_3",
    "administrative_area_level_4",
    "postal_code",
    "colloquial_area",
    "neighborhood",
})

# API-level statuses that mean "nothing found" rather than a failed request
_EMPTY_STATUSES = {"ZERO_RESULTS"}


def derive_confidence(result_types: List[str]) -> float:
    """Google returns no confidence, so map result types to tiers."""
    types = set(result_types)
    if types & NAMED_FEATURE_TYPES:
        return 1.0
    if types & BROAD_AREA_TYPES:
        return 0.5
    return 0.3


class GoogleGeocodingProvider(GeocodeProvider):
    """Google Geocoding API lookups, restricted to Australia."""

    name = GeocodeProviderName.GOOGLE_GEOCODING
    precise = True

    def __init__(self, api_key: Optional[str] = None, url: str = GOOGLE_GEOCODE_URL, **kwargs):
        super().__init__(**kwargs)
        self.api_key = (api_key or "").strip() or None
        self.url = url

    def is_configured(self) -> bool:
        return self.api_key is not None

    def not_configured_message(self) -> str:
        return "GOOGLE_MAPS_API_KEY is missing"

    def attempt(self, query: str, alias_key: Optional[str], cache_key: str) -> ProviderResult:
        if not self.is_configured():
            return self.not_configured(query, alias_key, cache_key)

        def failed(outcome: GeocodeOutcome, **details) -> ProviderResult:
            logger.debug(f"Google Geocoding: {outcome.value} for '{query}' {details}")
            return ProviderResult(
                hit=None,
                attempt=self.build_attempt(query, alias_key, cache_key, outcome, **details),
            )

        response, error = self.request_with_retries(
            self.url,
            params={
                "address": query,
                "region": "au",
                "language": "en",
                "key": self.api_key,
            },
            headers={"Accept": "application/json"},
        )

        if response is None:
            return failed(GeocodeOutcome.REQUEST_FAILED, error_message=error)

        if not 200 <= response.status_code < 300:
            return failed(GeocodeOutcome.HTTP_ERROR, http_status=response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            return failed(
                GeocodeOutcome.REQUEST_FAILED,
                http_status=response.status_code,
                error_message=f"Invalid JSON response: {e}",
            )

        if not isinstance(payload, dict):
            return failed(
                GeocodeOutcome.REQUEST_FAILED,
                http_status=response.status_code,
                error_message=f"Unexpected response body of type {type(payload).__name__}",
            )

        api_status = payload.get("status", "OK")
        results = payload.get("results") or []

        if api_status != "OK" and api_status not in _EMPTY_STATUSES:
            # OVER_QUERY_LIMIT, REQUEST_DENIED, INVALID_REQUEST, UNKNOWN_ERROR
            message = payload.get("error_message")
            return failed(
                GeocodeOutcome.HTTP_ERROR,
                http_status=response.status_code,
                error_message=f"{api_status}: {message}" if message else api_status,
            )

        if api_status in _EMPTY_STATUSES or not results:
            return failed(GeocodeOutcome.EMPTY_RESULT, result_count=len(results))

        first = results[0]
        location = (first.get("geometry") or {}).get("location") or {}
        if not location:
            return failed(GeocodeOutcome.EMPTY_RESULT, result_count=len(results))

        latitude = parse_coordinate(location.get("lat"), 90)
        longitude = parse_coordinate(location.get("lng"), 180)
        if latitude is None or longitude is None:
            return failed(GeocodeOutcome.INVALID_COORDINATES, result_count=len(results))

        display_name = (first.get("formatted_address") or "").strip() or query
        result_types = first.get("types") or []

        if REJECTED_RESULT_TYPES.intersection(result_types):
            return failed(
                GeocodeOutcome.EMPTY_RESULT,
                result_count=len(results),
                error_message=(
                    f"Rejected street-level result type [{', '.join(result_types)}]: \"{display_name}\""
                ),
            )

        hit = GeocodeHit(
            latitude=latitude,
            longitude=longitude,
            display_name=display_name,
            confidence=derive_confidence(result_types),
            provider=self.name,
        )
        return ProviderResult(
            hit=hit,
            attempt=self.build_attempt(
                query, alias_key, cache_key, GeocodeOutcome.LOOKUP_SUCCESS,
                http_status=response.status_code, result_count=len(results),
            ),
        )
