"""
Base class for geocoding providers.

Providers share the HTTP plumbing: an explicit timeout on every request and
bounded retries with exponential backoff on 408, 429, 5xx and transport
errors. Each call returns a hit (or None) plus one GeocodeAttempt.
"""

import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

import requests

from forest_reconcile.geocoding.models import (
    GeocodeAttempt,
    GeocodeHit,
    GeocodeOutcome,
    GeocodeProviderName,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = (408, 429)
COORDINATE_PRECISION = 6


@dataclass
class ProviderResult:
    """Outcome of one provider call."""
    hit: Optional[GeocodeHit]
    attempt: GeocodeAttempt
    warnings: List[str] = field(default_factory=list)


def should_retry_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


def parse_coordinate(value: Any, limit: float) -> Optional[float]:
    """Parse a latitude/longitude value, rounded to 6 decimal places.

    Returns:
        Rounded coordinate, or None if missing, non-finite or out of range
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or abs(number) > limit:
        return None
    return round(number, COORDINATE_PRECISION)


class GeocodeProvider(ABC):
    """Abstract base class for geocoding providers."""

    name: GeocodeProviderName
    precise: bool = False

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout_s: float = 15.0,
        retry_attempts: int = 3,
        retry_base_delay_s: float = 0.75,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize provider.

        Args:
            session: HTTP session (a new requests.Session if omitted)
            timeout_s: Per-request timeout in seconds
            retry_attempts: Total tries per request, including the first
            retry_base_delay_s: Backoff base; try n waits base * 2**(n-1)
            sleep: Sleep function, replaceable in tests
        """
        self.session = session or requests.Session()
        self.timeout_s = timeout_s
        self.retry_attempts = max(1, retry_attempts)
        self.retry_base_delay_s = retry_base_delay_s
        self._sleep = sleep

    def is_configured(self) -> bool:
        """Whether the provider has everything it needs (e.g. credentials)."""
        return True

    def not_configured_message(self) -> str:
        return f"{self.name.value} is not configured"

    @abstractmethod
    def attempt(self, query: str, alias_key: Optional[str], cache_key: str) -> ProviderResult:
        """Geocode one query.

        Args:
            query: Free-text query
            alias_key: Alias cache key recorded on the attempt
            cache_key: Query cache key recorded on the attempt

        Returns:
            ProviderResult with a hit on LOOKUP_SUCCESS, otherwise None
        """

    def build_attempt(
        self,
        query: str,
        alias_key: Optional[str],
        cache_key: str,
        outcome: GeocodeOutcome,
        http_status: Optional[int] = None,
        result_count: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> GeocodeAttempt:
        return GeocodeAttempt(
            provider=self.name,
            query=query,
            alias_key=alias_key,
            cache_key=cache_key,
            outcome=outcome,
            http_status=http_status,
            result_count=result_count,
            error_message=error_message,
        )

    def not_configured(self, query: str, alias_key: Optional[str], cache_key: str) -> ProviderResult:
        return ProviderResult(
            hit=None,
            attempt=self.build_attempt(
                query, alias_key, cache_key,
                GeocodeOutcome.PROVIDER_NOT_CONFIGURED,
                error_message=self.not_configured_message(),
            ),
        )

    def _backoff(self, attempt_number: int) -> None:
        delay = self.retry_base_delay_s * 2 ** (attempt_number - 1)
        if delay > 0:
            self._sleep(delay)

    def _pause(self, seconds: float) -> None:
        if seconds > 0:
            self._sleep(seconds)

    def request_with_retries(
        self, url: str, **kwargs: Any
    ) -> Tuple[Optional[requests.Response], Optional[str]]:
        """GET url, retrying transient failures.

        Returns:
            (response, None) once a non-retryable status arrives or retries
            run out; (None, error message) if every try raised
        """
        last_error: Optional[str] = None
        for attempt_number in range(1, self.retry_attempts + 1):
            try:
                response = self.session.get(url, timeout=self.timeout_s, **kwargs)
            except requests.RequestException as e:
                last_error = str(e) or e.__class__.__name__
                logger.debug(
                    f"{self.name.value} request failed (try {attempt_number}/{self.retry_attempts}): {last_error}"
                )
                if attempt_number < self.retry_attempts:
                    self._backoff(attempt_number)
                continue

            if should_retry_status(response.status_code) and attempt_number < self.retry_attempts:
                logger.debug(
                    f"{self.name.value} returned HTTP {response.status_code} "
                    f"(try {attempt_number}/{self.retry_attempts}), retrying"
                )
                self._backoff(attempt_number)
                continue

            return response, None

        return None, last_error

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(configured={self.is_configured()})"
