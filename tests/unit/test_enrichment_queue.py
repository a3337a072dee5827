"""
Unit tests for the background enrichment queue and the per-run budget.
"""

import threading

import pytest

from forest_reconcile.geocoding.enrichment_queue import EnrichmentJob, EnrichmentQueue
from forest_reconcile.geocoding.run_context import LookupBudget, RunContext


def job(key):
    return EnrichmentJob(query=f"{key} State Forest", cache_key=f"query:{key}")


def test_jobs_are_processed_in_order():
    handled = []
    queue = EnrichmentQueue(lambda j: handled.append(j.cache_key) or True)

    assert queue.enqueue(job("a"))
    assert queue.enqueue(job("b"))
    queue.close()

    assert handled == ["query:a", "query:b"]
    assert queue.processed == 2
    assert queue.upgraded == 2


def test_duplicate_cache_keys_are_dropped():
    handled = []
    queue = EnrichmentQueue(lambda j: handled.append(j) or False)

    assert queue.enqueue(job("a"))
    assert not queue.enqueue(job("a"))
    queue.close()

    assert len(handled) == 1
    assert queue.queued == 1
    assert queue.upgraded == 0


def test_handler_errors_do_not_stop_the_worker():
    def handler(j):
        if j.cache_key == "query:bad":
            raise RuntimeError("provider exploded")
        return True

    queue = EnrichmentQueue(handler)
    queue.enqueue(job("bad"))
    queue.enqueue(job("good"))
    queue.close()

    assert queue.failed == 1
    assert queue.upgraded == 1


def test_enqueue_after_close_is_refused():
    queue = EnrichmentQueue(lambda j: True)
    queue.close()
    assert not queue.enqueue(job("a"))


def test_join_waits_for_idle():
    release = threading.Event()
    handled = []

    def handler(j):
        release.wait(5)
        handled.append(j.cache_key)
        return True

    queue = EnrichmentQueue(handler)
    queue.enqueue(job("a"))
    release.set()
    queue.join()

    assert handled == ["query:a"]
    queue.close()


class TestLookupBudget:
    """Test the per-run lookup ceiling."""

    def test_consume_until_exhausted(self):
        budget = LookupBudget(2)
        assert budget.try_consume()
        assert budget.try_consume()
        assert not budget.try_consume()
        assert budget.used == 2
        assert budget.remaining == 0
        assert budget.exhausted

    def test_negative_budget_rejected(self):
        with pytest.raises(ValueError):
            LookupBudget(-1)

    def test_thread_safe(self):
        """Test concurrent callers never overspend the budget."""
        budget = LookupBudget(10)
        granted = []
        lock = threading.Lock()

        def worker():
            for _ in range(10):
                if budget.try_consume():
                    with lock:
                        granted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(granted) == 10
        assert budget.used == 10


def test_run_context_deduplicates_warnings():
    context = RunContext(budget=LookupBudget(1))
    context.add_warning("Google Geocoding skipped")
    context.add_warning("Google Geocoding skipped")

    assert context.warnings == ["Google Geocoding skipped"]
    assert context.area_centroid(None) is None
    context.close()
