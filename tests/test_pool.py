"""Tests for the bounded worker pool and progress events."""

import asyncio

import pytest

from sync.pool import run_bounded
from sync.progress import ProgressEvent, emit


class TestRunBounded:
    """Order and concurrency bound."""

    def test_results_keep_input_order(self):
        async def _worker(value):
            await asyncio.sleep(0.001 * (5 - value))
            return value * 10

        results = asyncio.run(run_bounded([1, 2, 3, 4], _worker, 3))
        assert results == [10, 20, 30, 40]

    def test_never_exceeds_concurrency(self):
        active = 0
        peak = 0

        async def _worker(_):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.005)
            active -= 1

        asyncio.run(run_bounded(list(range(20)), _worker, 4))
        assert peak == 4

    def test_empty_input(self):
        async def _worker(_):
            raise AssertionError("not called")

        assert asyncio.run(run_bounded([], _worker, 3)) == []

    def test_worker_exception_propagates(self):
        async def _worker(_):
            raise ValueError("boom")

        with pytest.raises(ValueError):
            asyncio.run(run_bounded([1], _worker, 1))


class TestProgress:
    """Progress sink delivery."""

    def test_percent(self):
        assert ProgressEvent("downloading", 1, 4).percent == 25
        assert ProgressEvent("completed", 0, 0).percent == 100

    def test_emit_swallows_sink_errors(self):
        def _sink(event):
            raise RuntimeError("sink broke")

        emit(_sink, ProgressEvent("analyzing", 0, 1))

    def test_emit_delivers(self):
        seen = []
        emit(seen.append, ProgressEvent("refreshing", 1, 2, package="a"))
        emit(None, ProgressEvent("refreshing", 2, 2))
        assert [e.package for e in seen] == ["a"]
