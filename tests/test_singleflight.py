"""Tests for the keyed single-flight primitive."""

import asyncio

import pytest

from gemini_bridge.auth.singleflight import SingleFlight


class TestSingleFlight:
    """Tests for SingleFlight.do."""

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_execution(self):
        flight: SingleFlight[int] = SingleFlight()
        calls = 0
        release = asyncio.Event()

        async def work() -> int:
            nonlocal calls
            calls += 1
            await release.wait()
            return 42

        tasks = [asyncio.create_task(flight.do("k", work)) for _ in range(5)]
        await asyncio.sleep(0)
        assert flight.in_flight("k")
        release.set()

        assert await asyncio.gather(*tasks) == [42] * 5
        assert calls == 1
        assert not flight.in_flight("k")

    @pytest.mark.asyncio
    async def test_different_keys_run_independently(self):
        flight: SingleFlight[str] = SingleFlight()
        started: list[str] = []
        release = asyncio.Event()

        async def work(key: str) -> str:
            started.append(key)
            await release.wait()
            return key

        task_a = asyncio.create_task(flight.do("a", lambda: work("a")))
        task_b = asyncio.create_task(flight.do("b", lambda: work("b")))
        await asyncio.sleep(0.01)
        assert sorted(started) == ["a", "b"]
        release.set()
        assert await asyncio.gather(task_a, task_b) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_exception_shared_and_next_call_retries(self):
        flight: SingleFlight[int] = SingleFlight()
        calls = 0
        release = asyncio.Event()

        async def failing() -> int:
            nonlocal calls
            calls += 1
            await release.wait()
            raise RuntimeError("boom")

        tasks = [asyncio.create_task(flight.do("k", failing)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert calls == 1
        assert all(isinstance(r, RuntimeError) for r in results)

        async def ok() -> int:
            return 7

        assert await flight.do("k", ok) == 7

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_others(self):
        """Cancelling the first caller leaves the shared work running for the rest."""
        flight: SingleFlight[int] = SingleFlight()
        calls = 0
        release = asyncio.Event()

        async def slow() -> int:
            nonlocal calls
            calls += 1
            await release.wait()
            return 1

        first = asyncio.create_task(flight.do("k", slow))
        await asyncio.sleep(0)
        second = asyncio.create_task(flight.do("k", slow))
        await asyncio.sleep(0)
        first.cancel()

        with pytest.raises(asyncio.CancelledError):
            await first
        assert flight.in_flight("k")
        release.set()

        assert await second == 1
        assert calls == 1
        assert not flight.in_flight("k")
