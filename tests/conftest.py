"""
Shared fixtures and fakes: no test touches the network.
"""

from typing import Dict, List, Optional, Tuple

import pytest

from forest_reconcile.cache.geocode_cache import GeocodeCache
from forest_reconcile.cache.kv_store import InMemoryKeyValueStore
from forest_reconcile.geocoding.models import GeocodeHit, GeocodeOutcome, GeocodeProviderName
from forest_reconcile.geocoding.providers.base import GeocodeProvider, ProviderResult


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """Replays queued responses (or raises queued exceptions) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: List[Dict] = []

    def get(self, url, timeout=None, **kwargs):
        self.calls.append({"url": url, "timeout": timeout, **kwargs})
        if not self.responses:
            raise AssertionError(f"Unexpected request to {url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeProvider(GeocodeProvider):
    """Provider answering from a prefix table instead of HTTP.

    A query resolves when it starts with one of the keys in results
    (case-insensitive); anything else gets default_outcome.
    """

    def __init__(
        self,
        name: GeocodeProviderName = GeocodeProviderName.OSM_NOMINATIM,
        precise: bool = False,
        results: Optional[Dict[str, Tuple[float, float, str]]] = None,
        default_outcome: GeocodeOutcome = GeocodeOutcome.EMPTY_RESULT,
        configured: bool = True,
        confidence: float = 0.6,
    ):
        super().__init__(session=FakeSession(), retry_attempts=1, sleep=lambda seconds: None)
        self.name = name
        self.precise = precise
        self.results = results or {}
        self.default_outcome = default_outcome
        self.configured = configured
        self.confidence = confidence
        self.calls: List[str] = []

    def is_configured(self) -> bool:
        return self.configured

    def attempt(self, query: str, alias_key: Optional[str], cache_key: str) -> ProviderResult:
        self.calls.append(query)
        for prefix, (latitude, longitude, display_name) in self.results.items():
            if query.lower().startswith(prefix.lower()):
                return ProviderResult(
                    hit=GeocodeHit(
                        latitude=latitude,
                        longitude=longitude,
                        display_name=display_name,
                        confidence=self.confidence,
                        provider=self.name,
                    ),
                    attempt=self.build_attempt(
                        query, alias_key, cache_key, GeocodeOutcome.LOOKUP_SUCCESS,
                        http_status=200, result_count=1,
                    ),
                )
        return ProviderResult(
            hit=None,
            attempt=self.build_attempt(query, alias_key, cache_key, self.default_outcome, result_count=0),
        )


@pytest.fixture
def memory_store():
    """Empty in-memory key-value store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def memory_cache(memory_store):
    """Geocode cache over an in-memory store."""
    return GeocodeCache(memory_store)
