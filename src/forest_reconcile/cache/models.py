"""
Pydantic model for cached geocode results.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class GeocodeCacheEntry(BaseModel):
    """A resolved coordinate stored under a query or alias key."""

    model_config = ConfigDict(frozen=True)

    key: str
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    display_name: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0, le=1)
    provider: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def with_key(self, key: str) -> "GeocodeCacheEntry":
        """Same coordinate stored under another key."""
        return self.model_copy(update={"key": key})
