"""Tests for the timeout guard."""

import asyncio
import logging

import pytest

from toolrun.timeouts import OperationTimeoutError, timed, with_timeout


async def _value_after(delay: float, value):
    await asyncio.sleep(delay)
    return value


class TestWithTimeout:
    @pytest.mark.asyncio
    async def test_returns_result_when_fast(self):
        assert await with_timeout(lambda: _value_after(0, 42), 1000, "fast") == 42

    @pytest.mark.asyncio
    async def test_accepts_started_coroutine(self):
        assert await with_timeout(_value_after(0, "ok"), 1000) == "ok"

    @pytest.mark.asyncio
    async def test_raises_typed_timeout(self):
        with pytest.raises(OperationTimeoutError) as exc_info:
            await with_timeout(lambda: _value_after(1.0, None), 20, "listIndexes")
        err = exc_info.value
        assert err.operation == "listIndexes"
        assert err.timeout_ms == 20
        assert str(err) == "Operation 'listIndexes' timed out after 20ms"
        assert isinstance(err, TimeoutError)

    @pytest.mark.asyncio
    async def test_timeout_observed_before_operation_resolves(self):
        finished = []

        async def slow():
            await asyncio.sleep(0.2)
            finished.append(True)
            return "late"

        with pytest.raises(OperationTimeoutError):
            await with_timeout(slow, 20, "slow")
        assert finished == []

    @pytest.mark.asyncio
    async def test_operation_errors_propagate_unchanged(self):
        async def boom():
            raise ValueError("backend said no")

        with pytest.raises(ValueError, match="backend said no"):
            await with_timeout(boom, 1000, "boom")

    @pytest.mark.asyncio
    async def test_abandoned_operation_keeps_running(self):
        finished = asyncio.Event()

        async def slow():
            await asyncio.sleep(0.05)
            finished.set()

        with pytest.raises(OperationTimeoutError):
            await with_timeout(slow, 10, "slow")
        await asyncio.wait_for(finished.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_cancel_on_timeout_cancels_operation(self):
        cancelled = asyncio.Event()

        async def slow():
            try:
                await asyncio.sleep(1)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(OperationTimeoutError):
            await with_timeout(slow, 10, "slow", cancel_on_timeout=True)
        await asyncio.wait_for(cancelled.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_abandoned_failure_is_consumed(self, caplog):
        async def fails_late():
            await asyncio.sleep(0.02)
            raise RuntimeError("too late")

        with caplog.at_level(logging.DEBUG, logger="toolrun.timeouts"):
            with pytest.raises(OperationTimeoutError):
                await with_timeout(fails_late, 5, "late")
            await asyncio.sleep(0.05)
        assert "too late" in caplog.text

    @pytest.mark.asyncio
    async def test_default_timeout_is_used(self):
        assert await with_timeout(lambda: _value_after(0, 1)) == 1


class TestTimedDecorator:
    @pytest.mark.asyncio
    async def test_wraps_method(self):
        class Client:
            @timed(20)
            async def slow(self):
                await asyncio.sleep(1)

            @timed(1000)
            async def fast(self, x):
                return x * 2

        client = Client()
        assert await client.fast(21) == 42
        with pytest.raises(OperationTimeoutError) as exc_info:
            await client.slow()
        assert exc_info.value.operation == "slow"
