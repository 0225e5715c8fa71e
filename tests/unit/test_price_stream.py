"""
Unit Tests for the Price Stream Manager

These tests verify that price streams:
- Poll immediately and then every interval
- Stop deterministically (nothing is emitted after stop_stream returns)
- Report poll failures (including a total source outage) to on_error and keep running
- Survive failing callbacks

Run with:
    pytest tests/unit/test_price_stream.py -v
"""

import asyncio

import pytest

from conftest import CAKE, FakeSource
from core.errors import NetworkError, SourcesUnavailableError
from core.schemas import TokenPriceData
from services.price_stream import PriceStreamManager
from services.token_price_service import TokenPriceService


def cake_price(value=2.41):
    return TokenPriceData(
        token_address=CAKE,
        symbol="CAKE",
        price_usd=value,
        price_native=0.0041,
        timestamp=1704110400000,
        source="oracle",
        confidence="high",
    )


class FakeService:
    """Answers get_multiple_prices from a script; can be paused or made to fail."""

    def __init__(self, fail_first: int = 0):
        self.polls = 0
        self.fail_first = fail_first
        self.release = asyncio.Event()
        self.release.set()
        self.entered = asyncio.Event()

    async def get_multiple_prices(self, identifiers, chain_id=None):
        self.polls += 1
        self.entered.set()
        await self.release.wait()
        if self.polls <= self.fail_first:
            raise NetworkError("HTTP 502")
        return {"CAKE": cake_price()} if "CAKE" in identifiers else {}


async def wait_until(predicate, timeout=1.0):
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout=timeout)


class TestStartStream:
    @pytest.mark.asyncio
    async def test_invalid_arguments(self):
        manager = PriceStreamManager(FakeService())

        with pytest.raises(ValueError):
            manager.start_stream([], on_update=print)
        with pytest.raises(ValueError):
            manager.start_stream(["CAKE"])
        with pytest.raises(ValueError):
            manager.start_stream(["CAKE"], interval=0, on_update=print)

    @pytest.mark.asyncio
    async def test_first_update_is_immediate(self):
        updates = []
        manager = PriceStreamManager(FakeService())

        handle = manager.start_stream(["CAKE", "NOPE"], interval=60, on_update=updates.append)
        await wait_until(lambda: updates)
        manager.stop_stream(handle)
        await manager.shutdown()

        assert handle.startswith("stream_")
        assert len(updates) == 1
        update = updates[0]
        assert update.stream_id == handle
        assert update.identifier == "CAKE"
        assert update.token_address == CAKE
        assert update.price_usd == 2.41
        assert update.source == "oracle"

    @pytest.mark.asyncio
    async def test_polls_every_interval(self):
        updates = []
        service = FakeService()
        manager = PriceStreamManager(service)

        manager.start_stream(["CAKE"], interval=0.01, on_update=updates.append)
        await wait_until(lambda: len(updates) >= 3)
        await manager.shutdown()

        assert service.polls >= 3

    @pytest.mark.asyncio
    async def test_async_callback(self):
        updates = []

        async def on_update(update):
            updates.append(update)

        manager = PriceStreamManager(FakeService())
        manager.start_stream(["CAKE"], interval=60, on_update=on_update)
        await wait_until(lambda: updates)
        await manager.shutdown()

        assert updates[0].symbol == "CAKE"


class TestStopStream:
    @pytest.mark.asyncio
    async def test_nothing_emitted_after_stop(self):
        updates = []
        manager = PriceStreamManager(FakeService())

        handle = manager.start_stream(["CAKE"], interval=0.01, on_update=updates.append)
        await wait_until(lambda: updates)
        assert manager.stop_stream(handle) is True
        count = len(updates)
        await asyncio.sleep(0.05)

        assert len(updates) == count
        assert manager.active_streams() == []

    @pytest.mark.asyncio
    async def test_in_flight_result_is_discarded(self):
        updates = []
        service = FakeService()
        service.release.clear()
        manager = PriceStreamManager(service)

        handle = manager.start_stream(["CAKE"], interval=60, on_update=updates.append)
        await asyncio.wait_for(service.entered.wait(), timeout=1.0)
        manager.stop_stream(handle)
        service.release.set()
        await manager.shutdown()

        assert updates == []

    @pytest.mark.asyncio
    async def test_unknown_handle_and_stop_all(self):
        manager = PriceStreamManager(FakeService())
        assert manager.stop_stream("stream_0_deadbeef") is False

        manager.start_stream(["CAKE"], interval=60, on_update=lambda u: None)
        manager.start_stream(["CAKE"], interval=60, on_update=lambda u: None)

        assert len(manager.active_streams()) == 2
        assert manager.stop_all() == 2
        await manager.shutdown()
        assert manager.active_streams() == []


class TestErrors:
    @pytest.mark.asyncio
    async def test_poll_failure_reported_and_stream_continues(self):
        updates, errors = [], []
        manager = PriceStreamManager(FakeService(fail_first=1))

        manager.start_stream(["CAKE"], interval=0.01, on_update=updates.append, on_error=errors.append)
        await wait_until(lambda: updates)
        await manager.shutdown()

        assert isinstance(errors[0], NetworkError)
        assert updates[0].price_usd == 2.41

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_end_stream(self):
        calls = []

        def on_update(update):
            calls.append(update)
            raise RuntimeError("consumer bug")

        manager = PriceStreamManager(FakeService())
        manager.start_stream(["CAKE"], interval=0.01, on_update=on_update)
        await wait_until(lambda: len(calls) >= 2)
        await manager.shutdown()

    @pytest.mark.asyncio
    async def test_total_source_outage_is_reported(self, make_manager, tokens):
        outage = NetworkError("HTTP 502")
        oracle = FakeSource("oracle", error=outage)
        dex = FakeSource("dexscreener", tokens=tokens, error=outage)
        service = TokenPriceService(manager=make_manager(oracle, dex), batch_delay=0)
        updates, errors = [], []
        manager = PriceStreamManager(service)

        manager.start_stream(["CAKE", "WBNB"], interval=0.01, on_update=updates.append, on_error=errors.append)
        await wait_until(lambda: errors)
        await manager.shutdown()

        assert isinstance(errors[0], SourcesUnavailableError)
        assert "HTTP 502" in str(errors[0])
        assert updates == []
