"""Tests del SignalScheduler: tick corto, tick largo y publicación de resultados."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from scalpgate.application.use_cases.scheduler_usecase import SignalScheduler
from scalpgate.domain.entities.candle import Quote
from scalpgate.domain.events.domain_events import (
    TOPIC_MARKET_DATA,
    TOPIC_SIGNAL,
    TOPIC_SIGNAL_REJECTED,
    MarketDataUpdate,
    SignalEmitted,
    SignalRejected,
)
from scalpgate.domain.services.gate_pipeline import GatePipeline
from scalpgate.domain.services.indicator_engine import IndicatorEngine
from scalpgate.domain.services.market_calendar import IST
from scalpgate.domain.value_objects.validation import PASSED, REJECTED
from scalpgate.infrastructure.event_bus import EventBus
from scalpgate.infrastructure.feed.feed_adapter import FeedAdapter
from scalpgate.infrastructure.feed.synthetic_feed import SyntheticMarketGenerator
from scalpgate.infrastructure.feed.yahoo_client import YahooChartClient
from scalpgate.state.indicator_state import IndicatorStateManager
from scalpgate.state.risk_state import RiskStateStore


def _mock_feed() -> MagicMock:
    feed = MagicMock()
    feed.is_live = False
    feed.get_snapshot = AsyncMock(return_value=None)
    return feed


def _mock_generator(candidate) -> MagicMock:
    generator = MagicMock()
    generator.try_generate = AsyncMock(return_value=candidate)
    generator.stats = {}
    return generator


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def pipeline(planner, calendar) -> GatePipeline:
    return GatePipeline(planner, risk_store=RiskStateStore(1_000_000.0, calendar=calendar), calendar=calendar)


def _scheduler(feed, generator, pipeline, bus, calendar, **kwargs) -> SignalScheduler:
    return SignalScheduler(
        feed,
        IndicatorStateManager(IndicatorEngine(calendar=calendar)),
        generator,
        pipeline,
        bus,
        calendar,
        **kwargs,
    )


class TestShortTick:
    @pytest.mark.asyncio
    async def test_publishes_one_update_per_series(self, bus, pipeline, calendar) -> None:
        feed = FeedAdapter(YahooChartClient(), SyntheticMarketGenerator(seed=3), live=False)
        queue = await bus.subscribe(TOPIC_MARKET_DATA, "test")
        scheduler = _scheduler(
            feed, _mock_generator(None), pipeline, bus, calendar,
            symbols=("NIFTY", "BANKNIFTY"), horizons=("1m", "5m"),
        )

        assert await scheduler.run_short_tick() == 4
        events = [queue.get_nowait() for _ in range(4)]
        assert all(isinstance(e, MarketDataUpdate) for e in events)
        assert {(e.symbol, e.horizon) for e in events} == {
            ("NIFTY", "1m"), ("NIFTY", "5m"), ("BANKNIFTY", "1m"), ("BANKNIFTY", "5m"),
        }
        assert all(e.candle is not None and e.indicator_snapshot for e in events)

    @pytest.mark.asyncio
    async def test_short_series_is_skipped(self, bus, pipeline, calendar) -> None:
        feed = FeedAdapter(YahooChartClient(), SyntheticMarketGenerator(seed=3), live=False, min_series_length=20)
        scheduler = _scheduler(
            feed, _mock_generator(None), pipeline, bus, calendar,
            symbols=("NIFTY",), horizons=("1m",), min_series_length=20,
        )
        assert await scheduler.run_short_tick() == 0


class TestLongTick:
    @pytest.mark.asyncio
    async def test_outside_liquid_window_does_nothing(self, bus, pipeline, calendar, candidate_factory) -> None:
        generator = _mock_generator(candidate_factory())
        scheduler = _scheduler(_mock_feed(), generator, pipeline, bus, calendar, liquid_windows_only=True)

        assert await scheduler.run_long_tick(datetime(2024, 3, 12, 12, 30, tzinfo=IST).timestamp()) == []
        generator.try_generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_runs_all_session_by_default(self, bus, pipeline, calendar) -> None:
        generator = _mock_generator(None)
        scheduler = _scheduler(
            _mock_feed(), generator, pipeline, bus, calendar, symbols=("NIFTY",), horizons=("1m",),
        )

        await scheduler.run_long_tick(datetime(2024, 3, 12, 12, 30, tzinfo=IST).timestamp())
        generator.try_generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_accepted_signal_is_published_and_kept(
        self, bus, pipeline, calendar, candidate_factory, trading_now
    ) -> None:
        queue = await bus.subscribe(TOPIC_SIGNAL, "test")
        candidate = candidate_factory()
        scheduler = _scheduler(
            _mock_feed(), _mock_generator(candidate), pipeline, bus, calendar,
            symbols=("NIFTY",), horizons=("1m",),
        )

        results = await scheduler.run_long_tick(trading_now)

        assert [r.decision for r in results] == [PASSED]
        event = queue.get_nowait()
        assert isinstance(event, SignalEmitted)
        assert event.signal.signal_id == candidate.signal_id
        assert scheduler.recent_signals("NIFTY")[0].signal_id == candidate.signal_id
        assert scheduler.recent_signals("BANKNIFTY") == []
        assert scheduler.stats["accepted"] == 1

    @pytest.mark.asyncio
    async def test_rejected_signal_is_published_with_reasons(
        self, bus, pipeline, calendar, candidate_factory, trading_now
    ) -> None:
        queue = await bus.subscribe(TOPIC_SIGNAL_REJECTED, "test")
        candidate = candidate_factory(horizon="1h")
        scheduler = _scheduler(
            _mock_feed(), _mock_generator(candidate), pipeline, bus, calendar,
            symbols=("NIFTY",), horizons=("1m",),
        )

        results = await scheduler.run_long_tick(trading_now)

        assert [r.decision for r in results] == [REJECTED]
        event = queue.get_nowait()
        assert isinstance(event, SignalRejected)
        assert event.signal_id == candidate.signal_id
        assert event.reasons
        assert scheduler.recent_signals() == []
        assert scheduler.stats["rejected"] == 1

    @pytest.mark.asyncio
    async def test_no_candidate_publishes_nothing(self, bus, pipeline, calendar, trading_now) -> None:
        queue = await bus.subscribe(TOPIC_SIGNAL, "test")
        scheduler = _scheduler(_mock_feed(), _mock_generator(None), pipeline, bus, calendar)
        assert await scheduler.run_long_tick(trading_now) == []
        assert queue.empty()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, bus, pipeline, calendar) -> None:
        scheduler = _scheduler(
            FeedAdapter(YahooChartClient(), SyntheticMarketGenerator(seed=3), live=False),
            _mock_generator(None), pipeline, bus, calendar,
            symbols=("NIFTY",), horizons=("1m",),
            short_tick_seconds=0.01, long_tick_seconds=0.01,
        )
        await scheduler.start()
        assert scheduler.is_running
        await scheduler.stop()
        assert not scheduler.is_running
        assert scheduler.stats["tick_errors"] == 0


class TestFeedUpdates:
    @pytest.mark.asyncio
    async def test_refresh_instrument_only_touches_that_symbol(self, bus, pipeline, calendar) -> None:
        feed = FeedAdapter(YahooChartClient(), SyntheticMarketGenerator(seed=3), live=False)
        queue = await bus.subscribe(TOPIC_MARKET_DATA, "test")
        scheduler = _scheduler(
            feed, _mock_generator(None), pipeline, bus, calendar,
            symbols=("NIFTY", "BANKNIFTY"), horizons=("1m", "5m"),
        )

        assert await scheduler.refresh_instrument("NIFTY") == 2
        events = [queue.get_nowait() for _ in range(2)]
        assert {(e.symbol, e.horizon) for e in events} == {("NIFTY", "1m"), ("NIFTY", "5m")}
        assert queue.empty()

    @pytest.mark.asyncio
    async def test_push_update_recomputes_without_waiting_for_tick(self, bus, pipeline, calendar) -> None:
        feed = FeedAdapter(YahooChartClient(), SyntheticMarketGenerator(seed=3), bus, live=False)
        queue = await bus.subscribe(TOPIC_MARKET_DATA, "test")
        scheduler = _scheduler(
            feed, _mock_generator(None), pipeline, bus, calendar,
            symbols=("NIFTY",), horizons=("1m",),
            short_tick_seconds=3600, long_tick_seconds=3600,
        )
        await scheduler.start()
        try:
            first = await asyncio.wait_for(queue.get(), timeout=2.0)
            assert first.symbol == "NIFTY"

            quote = Quote("NIFTY", 21600.0, 21500.0, 21550.0, 21610.0, 21540.0, 0.0, "REGULAR", 0.0)
            await feed.push_update("NIFTY", quote)

            pushed = await asyncio.wait_for(queue.get(), timeout=2.0)
            assert isinstance(pushed, MarketDataUpdate)
            assert (pushed.symbol, pushed.horizon) == ("NIFTY", "1m")
            assert scheduler.stats["push_refreshes"] == 1
            assert scheduler.stats["short_ticks"] == 1
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_push_for_untracked_symbol_is_ignored(self, bus, pipeline, calendar) -> None:
        feed = FeedAdapter(YahooChartClient(), SyntheticMarketGenerator(seed=3), bus, live=False)
        scheduler = _scheduler(
            feed, _mock_generator(None), pipeline, bus, calendar,
            symbols=("NIFTY",), horizons=("1m",),
            short_tick_seconds=3600, long_tick_seconds=3600,
        )
        await scheduler.start()
        try:
            quote = Quote("BANKNIFTY", 46000.0, 45900.0, 45950.0, 46010.0, 45940.0, 0.0, "REGULAR", 0.0)
            await feed.push_update("BANKNIFTY", quote)
            await asyncio.sleep(0.05)
            assert scheduler.stats["push_refreshes"] == 0
        finally:
            await scheduler.stop()
