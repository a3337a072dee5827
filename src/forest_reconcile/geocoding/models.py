"""
Pydantic models for geocode attempts and responses.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from forest_reconcile.cache.models import GeocodeCacheEntry


class GeocodeOutcome(str, Enum):
    """Outcome of one cache check or provider call."""
    CACHE_HIT = "CACHE_HIT"
    CACHE_MISS = "CACHE_MISS"
    LOOKUP_SUCCESS = "LOOKUP_SUCCESS"
    LIMIT_REACHED = "LIMIT_REACHED"
    HTTP_ERROR = "HTTP_ERROR"
    REQUEST_FAILED = "REQUEST_FAILED"
    EMPTY_RESULT = "EMPTY_RESULT"
    INVALID_COORDINATES = "INVALID_COORDINATES"
    PROVIDER_NOT_CONFIGURED = "PROVIDER_NOT_CONFIGURED"


class GeocodeProviderName(str, Enum):
    CACHE = "CACHE"
    OSM_NOMINATIM = "OSM_NOMINATIM"
    GOOGLE_GEOCODING = "GOOGLE_GEOCODING"


# Outcomes meaning "the provider had nothing usable", as opposed to
# quota, transport or configuration trouble
NO_DATA_OUTCOMES = frozenset({GeocodeOutcome.EMPTY_RESULT, GeocodeOutcome.INVALID_COORDINATES})
TRANSIENT_OR_QUOTA_OUTCOMES = frozenset({
    GeocodeOutcome.LIMIT_REACHED,
    GeocodeOutcome.HTTP_ERROR,
    GeocodeOutcome.REQUEST_FAILED,
    GeocodeOutcome.PROVIDER_NOT_CONFIGURED,
})


class GeocodeAttempt(BaseModel):
    """Immutable audit record for one cache check or provider call."""

    model_config = ConfigDict(frozen=True)

    provider: GeocodeProviderName
    query: str
    alias_key: Optional[str] = None
    cache_key: str
    outcome: GeocodeOutcome
    http_status: Optional[int] = None
    result_count: Optional[int] = None
    error_message: Optional[str] = None


class GeocodeHit(BaseModel):
    """A coordinate returned by a provider or read from the cache."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    display_name: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0, le=1)
    provider: GeocodeProviderName

    def to_cache_entry(self, key: str) -> GeocodeCacheEntry:
        return GeocodeCacheEntry(
            key=key,
            latitude=self.latitude,
            longitude=self.longitude,
            display_name=self.display_name,
            confidence=self.confidence,
            provider=self.provider.value,
        )

    @classmethod
    def from_cache_entry(cls, entry: GeocodeCacheEntry) -> "GeocodeHit":
        try:
            provider = GeocodeProviderName(entry.provider)
        except ValueError:
            provider = GeocodeProviderName.CACHE
        return cls(
            latitude=entry.latitude,
            longitude=entry.longitude,
            display_name=entry.display_name,
            confidence=entry.confidence,
            provider=provider,
        )


class GeocodeResponse(BaseModel):
    """Best-effort geocode result; coordinates are None when unresolved."""

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    display_name: Optional[str] = None
    confidence: Optional[float] = None
    provider: Optional[GeocodeProviderName] = None
    approximate: bool = False
    attempts: List[GeocodeAttempt] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    reason: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def cache_only(self) -> bool:
        """True when no provider was called (every attempt was a cache check)."""
        return all(attempt.provider == GeocodeProviderName.CACHE for attempt in self.attempts)
