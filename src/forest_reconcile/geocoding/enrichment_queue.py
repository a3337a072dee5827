"""
Background enrichment queue.

Cache hits that came from the fast provider are queued here so a precise
provider can upgrade them later. One worker thread drains the queue, so at
most one upgrade is in flight, and enqueue never blocks the caller.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, FrozenSet, Optional, Set, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnrichmentJob:
    """Re-geocode a cached query with a more precise provider."""
    query: str
    cache_key: str
    alias_key: Optional[str] = None
    source_provider: Optional[str] = None
    # Display-name word sets the upgraded result must satisfy
    required_words: Tuple[FrozenSet[str], ...] = ()


_STOP = object()


class EnrichmentQueue:
    """Single-worker FIFO of enrichment jobs, deduplicated by cache key."""

    def __init__(self, handler: Callable[[EnrichmentJob], bool], name: str = "geocode-enrichment"):
        """Initialize queue.

        Args:
            handler: Called for each job on the worker thread; returns True
                when the cache entry was upgraded
            name: Worker thread name
        """
        self._handler = handler
        self._name = name
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._seen: Set[str] = set()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._closed = False
        self.processed = 0
        self.upgraded = 0
        self.failed = 0

    def enqueue(self, job: EnrichmentJob) -> bool:
        """Queue a job unless one for the same cache key was already queued.

        Returns:
            True if the job was queued
        """
        with self._lock:
            if self._closed or job.cache_key in self._seen:
                return False
            self._seen.add(job.cache_key)
            self._queue.put_nowait(job)
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
                self._thread.start()
        logger.debug("Queued enrichment for %s", job.cache_key)
        return True

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                upgraded = self._handler(job)
                self.processed += 1
                if upgraded:
                    self.upgraded += 1
            except Exception as e:
                self.failed += 1
                logger.error(f"Enrichment failed for {getattr(job, 'cache_key', job)}: {e}")
            finally:
                self._queue.task_done()

    @property
    def queued(self) -> int:
        """Number of distinct jobs accepted so far."""
        with self._lock:
            return len(self._seen)

    def join(self) -> None:
        """Block until every queued job has been handled."""
        self._queue.join()

    def close(self, timeout: Optional[float] = None) -> None:
        """Drain outstanding jobs, then stop the worker."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            thread = self._thread
        if thread is not None:
            self._queue.put(_STOP)
            thread.join(timeout)
