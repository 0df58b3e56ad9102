"""
Unit tests for the message deduplication cache.
Covers first-seen admission, TTL expiry, sweeping and concurrent check-and-insert.
"""

import asyncio
import threading

import pytest

from clawrelay.pipeline.dedup import DedupCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestShouldProcess:
    """Test the dedup gate."""

    def test_second_call_within_ttl_is_rejected(self):
        """Same id twice inside the window yields (True, False)."""
        cache = DedupCache(ttl=60.0, clock=FakeClock())

        assert cache.should_process("om_1") is True
        assert cache.should_process("om_1") is False

    def test_id_is_admitted_again_after_ttl(self):
        """Once the TTL elapses the id is treated as new."""
        clock = FakeClock()
        cache = DedupCache(ttl=60.0, clock=clock)

        assert cache.should_process("om_1") is True
        clock.advance(59.9)
        assert cache.should_process("om_1") is False
        clock.advance(0.2)
        assert cache.should_process("om_1") is True

    def test_distinct_ids_are_independent(self):
        """Different ids never block each other."""
        cache = DedupCache(clock=FakeClock())

        assert cache.should_process("om_1") is True
        assert cache.should_process("om_2") is True
        assert len(cache) == 2

    def test_empty_id_is_always_admitted(self):
        """Events without an id bypass dedup and are not stored."""
        cache = DedupCache(clock=FakeClock())

        assert cache.should_process("") is True
        assert cache.should_process("") is True
        assert len(cache) == 0

    def test_concurrent_arrivals_admit_exactly_one(self):
        """Near-simultaneous arrivals from many threads admit a single winner."""
        cache = DedupCache()
        results: list[bool] = []
        barrier = threading.Barrier(16)

        def worker():
            barrier.wait()
            results.append(cache.should_process("om_race"))

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert results.count(False) == 15


class TestSweep:
    """Test expiry sweeping and the background sweeper."""

    def test_sweep_removes_only_expired_entries(self):
        """Entries older than the TTL are removed, fresh ones stay."""
        clock = FakeClock()
        cache = DedupCache(ttl=60.0, clock=clock)
        cache.should_process("old")
        clock.advance(30)
        cache.should_process("fresh")
        clock.advance(31)

        removed = cache.sweep()

        assert removed == 1
        assert len(cache) == 1
        assert cache.should_process("fresh") is False

    @pytest.mark.asyncio
    async def test_background_sweeper_runs_and_stops(self):
        """start() schedules periodic sweeps; stop() cancels cleanly."""
        cache = DedupCache(ttl=0.0, sweep_interval=0.01)
        cache.should_process("om_1")

        cache.start()
        await asyncio.sleep(0.05)
        await cache.stop()

        assert len(cache) == 0
        assert cache._sweep_task is None
