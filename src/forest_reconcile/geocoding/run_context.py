"""
Per-run state shared by every geocode call in one reconciliation run.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from forest_reconcile.geocoding.enrichment_queue import EnrichmentQueue
from forest_reconcile.geocoding.models import GeocodeResponse


class LookupBudget:
    """Ceiling on new provider lookups for one run, safe across threads."""

    def __init__(self, max_lookups: int):
        if max_lookups < 0:
            raise ValueError(f"max_lookups must be >= 0, got {max_lookups}")
        self.max_lookups = max_lookups
        self._used = 0
        self._lock = threading.Lock()

    def try_consume(self) -> bool:
        """Reserve one lookup; False once the ceiling is reached."""
        with self._lock:
            if self._used >= self.max_lookups:
                return False
            self._used += 1
            return True

    @property
    def used(self) -> int:
        with self._lock:
            return self._used

    @property
    def remaining(self) -> int:
        with self._lock:
            return self.max_lookups - self._used

    @property
    def exhausted(self) -> bool:
        return self.remaining <= 0


@dataclass
class RunContext:
    """Budget, enrichment queue and area centroids for one run.

    Passed explicitly into every resolver call so concurrent or test runs
    never share counters.
    """
    budget: LookupBudget
    enrichment: Optional[EnrichmentQueue] = None
    area_centroids: Dict[str, GeocodeResponse] = field(default_factory=dict)
    _warnings: List[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def add_warning(self, message: str) -> None:
        with self._lock:
            if message not in self._warnings:
                self._warnings.append(message)

    @property
    def warnings(self) -> List[str]:
        with self._lock:
            return list(self._warnings)

    def set_area_centroid(self, area_name: str, response: GeocodeResponse) -> None:
        with self._lock:
            self.area_centroids[area_name] = response

    def area_centroid(self, area_name: Optional[str]) -> Optional[GeocodeResponse]:
        if not area_name:
            return None
        with self._lock:
            return self.area_centroids.get(area_name)

    def close(self) -> None:
        """Wait for background enrichment to finish and stop its worker."""
        if self.enrichment is not None:
            self.enrichment.close()
