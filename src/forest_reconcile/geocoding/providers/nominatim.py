"""
OpenStreetMap Nominatim provider.

Free and fast, but coarse. A local Nominatim instance is tried first; the
public instance is the fallback and gets a politeness delay between calls.
"""

import logging
import math
from typing import Any, List, Optional
from urllib.parse import urlparse

from forest_reconcile.geocoding.models import GeocodeHit, GeocodeOutcome, GeocodeProviderName
from forest_reconcile.geocoding.providers.base import GeocodeProvider, ProviderResult, parse_coordinate

logger = logging.getLogger(__name__)

PUBLIC_NOMINATIM_URL = "https://nominatim.openstreetmap.org"
DEFAULT_LOCAL_NOMINATIM_URL = "http://localhost:8080"
DEFAULT_USER_AGENT = "forest-reconcile/0.3 (purpose: state forest fire ban lookup)"

_LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1", "host.docker.internal"}


def is_local_url(base_url: str) -> bool:
    hostname = (urlparse(base_url).hostname or "").lower()
    return hostname in _LOCAL_HOSTS


def parse_confidence(importance: Any) -> float:
    """Nominatim importance clamped to [0, 1]; missing or non-numeric gives 0."""
    try:
        value = float(importance)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return min(1.0, max(0.0, value))


class NominatimProvider(GeocodeProvider):
    """Nominatim /search lookups, local instance first."""

    name = GeocodeProviderName.OSM_NOMINATIM
    precise = False

    def __init__(
        self,
        base_url: Optional[str] = DEFAULT_LOCAL_NOMINATIM_URL,
        user_agent: str = DEFAULT_USER_AGENT,
        request_delay_s: float = 1.2,
        local_delay_s: float = 0.2,
        local_429_retries: int = 4,
        local_429_retry_delay_s: float = 1.5,
        use_public_fallback: bool = True,
        **kwargs,
    ):
        """Initialize provider.

        Args:
            base_url: Preferred Nominatim instance
            user_agent: Identifying User-Agent (required by the public usage policy)
            request_delay_s: Pause after each public request
            local_delay_s: Pause after each local request
            local_429_retries: Extra tries when a local instance answers 429
            local_429_retry_delay_s: Pause before each of those tries
            use_public_fallback: Also try the public instance
            **kwargs: Passed to GeocodeProvider
        """
        super().__init__(**kwargs)
        urls = [base_url or ""]
        if use_public_fallback:
            urls.append(PUBLIC_NOMINATIM_URL)
        self.base_urls: List[str] = list(dict.fromkeys(u.strip().rstrip("/") for u in urls if u and u.strip()))
        self.user_agent = user_agent
        self.request_delay_s = request_delay_s
        self.local_delay_s = local_delay_s
        self.local_429_retries = local_429_retries
        self.local_429_retry_delay_s = local_429_retry_delay_s

    def is_configured(self) -> bool:
        return bool(self.base_urls)

    def not_configured_message(self) -> str:
        return "no Nominatim base URL is configured"

    def attempt(self, query: str, alias_key: Optional[str], cache_key: str) -> ProviderResult:
        if not self.is_configured():
            return self.not_configured(query, alias_key, cache_key)

        outcome = GeocodeOutcome.EMPTY_RESULT
        http_status: Optional[int] = None
        result_count: Optional[int] = None
        error_message: Optional[str] = None
        warnings: List[str] = []

        for index, base_url in enumerate(self.base_urls):
            local = is_local_url(base_url)
            local_429_count = 0

            while True:
                response, error = self.request_with_retries(
                    f"{base_url}/search",
                    params={
                        "q": query,
                        "format": "jsonv2",
                        "countrycodes": "au",
                        "limit": 1,
                    },
                    headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                )
                self._pause(self.local_delay_s if local else self.request_delay_s)

                if response is None:
                    outcome, http_status, result_count = GeocodeOutcome.REQUEST_FAILED, None, None
                    error_message = error
                    break

                if not 200 <= response.status_code < 300:
                    if local and response.status_code == 429 and local_429_count < self.local_429_retries:
                        local_429_count += 1
                        self._pause(self.local_429_retry_delay_s)
                        continue
                    outcome, http_status, result_count = GeocodeOutcome.HTTP_ERROR, response.status_code, None
                    error_message = f"HTTP {response.status_code} from {base_url}"
                    break

                try:
                    rows = response.json()
                except ValueError as e:
                    outcome, http_status, result_count = GeocodeOutcome.REQUEST_FAILED, response.status_code, None
                    error_message = f"Invalid JSON response: {e}"
                    break

                rows = rows if isinstance(rows, list) else []
                result_count = len(rows)
                top = rows[0] if rows else None
                if not top or not top.get("lat") or not top.get("lon"):
                    outcome, http_status = GeocodeOutcome.EMPTY_RESULT, None
                    error_message = f"Empty result from {base_url}"
                    break

                latitude = parse_coordinate(top.get("lat"), 90)
                longitude = parse_coordinate(top.get("lon"), 180)
                if latitude is None or longitude is None:
                    outcome, http_status = GeocodeOutcome.INVALID_COORDINATES, None
                    error_message = f"Invalid coordinates from {base_url}"
                    break

                if index > 0:
                    warnings.append(
                        f"Local Nominatim at {self.base_urls[0]} was unavailable; "
                        f"used {base_url} instead."
                    )
                confidence = parse_confidence(top.get("importance"))
                hit = GeocodeHit(
                    latitude=latitude,
                    longitude=longitude,
                    display_name=top.get("display_name") or query,
                    confidence=confidence,
                    provider=self.name,
                )
                return ProviderResult(
                    hit=hit,
                    attempt=self.build_attempt(
                        query, alias_key, cache_key, GeocodeOutcome.LOOKUP_SUCCESS,
                        http_status=response.status_code, result_count=result_count,
                    ),
                    warnings=warnings,
                )

            logger.debug(f"Nominatim {base_url}: {outcome.value} for '{query}' ({error_message})")

        return ProviderResult(
            hit=None,
            attempt=self.build_attempt(
                query, alias_key, cache_key, outcome,
                http_status=http_status, result_count=result_count, error_message=error_message,
            ),
            warnings=warnings,
        )
