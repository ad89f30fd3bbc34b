"""Tests del Feed Adapter: fallback sintético, caché por modo y push updates."""

import asyncio
import time

import httpx
import pytest

from scalpgate.domain.entities.candle import Quote
from scalpgate.domain.events.domain_events import TOPIC_FEED_UPDATE, FeedUpdate
from scalpgate.domain.exceptions.domain_errors import UnsupportedHorizonError, UnsupportedInstrumentError
from scalpgate.domain.value_objects.instrument import INSTRUMENTS, Horizon
from scalpgate.infrastructure.event_bus import EventBus
from scalpgate.infrastructure.feed.feed_adapter import MODE_LIVE, MODE_SYNTHETIC, FeedAdapter
from scalpgate.infrastructure.feed.synthetic_feed import SyntheticMarketGenerator
from scalpgate.infrastructure.feed.yahoo_client import FeedUnavailableError, YahooChartClient


def _client(handler) -> YahooChartClient:
    return YahooChartClient(base_url="https://chart.test", transport=httpx.MockTransport(handler))


def _adapter(handler, *, live=True, event_bus=None) -> FeedAdapter:
    return FeedAdapter(
        _client(handler),
        SyntheticMarketGenerator(seed=42),
        event_bus,
        live=live,
        min_series_length=100,
    )


def _assert_valid_series(series, length) -> None:
    assert len(series) >= length
    assert all(c.is_consistent() for c in series)
    timestamps = [c.timestamp for c in series]
    assert all(b > a for a, b in zip(timestamps, timestamps[1:]))


def _server_error(request: httpx.Request) -> httpx.Response:
    return httpx.Response(500, json={"chart": {"result": None, "error": "boom"}})


class TestYahooClient:
    def test_parse_candles_skips_null_rows(self, chart_payload) -> None:
        result = chart_payload(rows=5)["chart"]["result"][0]
        result["indicators"]["quote"][0]["close"][2] = None
        candles = YahooChartClient.parse_candles(result)
        assert len(candles) == 4
        assert all(c.is_consistent() for c in candles)

    def test_parse_candles_malformed_payload(self) -> None:
        with pytest.raises(FeedUnavailableError):
            YahooChartClient.parse_candles({"timestamp": [1, 2]})

    def test_parse_quote_uses_meta(self, chart_payload) -> None:
        result = chart_payload(rows=5)["chart"]["result"][0]
        candles = YahooChartClient.parse_candles(result)
        quote = YahooChartClient.parse_quote("NIFTY", result["meta"], candles)
        assert quote.is_live
        assert quote.last_price == result["meta"]["regularMarketPrice"]
        assert quote.session_state == "REGULAR"

    @pytest.mark.asyncio
    async def test_provider_error_raises_feed_unavailable(self) -> None:
        client = _client(_server_error)
        with pytest.raises(FeedUnavailableError):
            await client.fetch_chart("^NSEI", "1m", "1d")
        assert client.stats == {"requests": 1, "errors": 1}
        await client.close()

    @pytest.mark.asyncio
    async def test_request_shape(self, chart_payload) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=chart_payload(rows=3))

        client = _client(handler)
        await client.fetch_candles("^NSEI", "5m", "5d")
        assert seen[0].url.path.startswith("/v8/finance/chart/")
        assert seen[0].url.path.endswith("NSEI")
        assert seen[0].url.params["interval"] == "5m"
        assert seen[0].url.params["range"] == "5d"
        assert "User-Agent" in seen[0].headers
        await client.close()


class TestFallback:
    @pytest.mark.asyncio
    async def test_provider_failure_falls_back_to_synthetic(self) -> None:
        feed = _adapter(_server_error)
        series = await feed.get_latest_series("NIFTY", "5m", 100)
        _assert_valid_series(series, 100)
        assert feed.status()["fallbacks"] == 1
        assert feed.mode == MODE_LIVE

    @pytest.mark.asyncio
    async def test_transport_error_falls_back(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("sin red", request=request)

        feed = _adapter(handler)
        series = await feed.get_latest_series("BANKNIFTY", "1m", 100)
        _assert_valid_series(series, 100)

    @pytest.mark.asyncio
    async def test_short_live_series_falls_back(self, chart_payload) -> None:
        feed = _adapter(lambda request: httpx.Response(200, json=chart_payload(rows=10)))
        series = await feed.get_latest_series("NIFTY", "1m", 100)
        _assert_valid_series(series, 100)
        assert feed.status()["fallbacks"] == 1

    @pytest.mark.asyncio
    async def test_malformed_json_falls_back(self) -> None:
        feed = _adapter(lambda request: httpx.Response(200, content=b"<html>"))
        _assert_valid_series(await feed.get_latest_series("NIFTY", "1m", 100), 100)

    @pytest.mark.asyncio
    async def test_snapshot_falls_back(self) -> None:
        feed = _adapter(_server_error)
        quote = await feed.get_snapshot("NIFTY")
        assert quote is not None
        assert not quote.is_live

    @pytest.mark.asyncio
    async def test_configuration_errors_propagate(self) -> None:
        feed = _adapter(_server_error)
        with pytest.raises(UnsupportedInstrumentError):
            await feed.get_latest_series("DOWJONES", "1m")
        with pytest.raises(UnsupportedHorizonError):
            await feed.get_latest_series("NIFTY", "3m")


class TestLiveAndCache:
    @pytest.mark.asyncio
    async def test_live_series_is_cached_with_quote(self, chart_payload) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=chart_payload(rows=120))

        feed = _adapter(handler)
        first = await feed.get_latest_series("NIFTY", "1m", 100)
        second = await feed.get_latest_series("NIFTY", "1m", 100)
        quote = await feed.get_snapshot("NIFTY")

        assert first is second
        assert len(first) == 120
        assert quote.is_live
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_fetch(self, chart_payload) -> None:
        calls = []

        async def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            await asyncio.sleep(0.01)
            return httpx.Response(200, json=chart_payload(rows=120))

        feed = _adapter(handler)
        results = await asyncio.gather(*(feed.get_latest_series("NIFTY", "1m") for _ in range(5)))
        assert len(calls) == 1
        assert all(r is results[0] for r in results)

    @pytest.mark.asyncio
    async def test_mode_switch_clears_cache(self, chart_payload) -> None:
        feed = _adapter(lambda request: httpx.Response(200, json=chart_payload(rows=120)))
        live_series = await feed.get_latest_series("NIFTY", "1m", 100)
        assert feed.status()["cache_size"] > 0

        feed.disable_live()
        assert feed.mode == MODE_SYNTHETIC
        assert feed.status()["cache_size"] == 0
        synthetic = await feed.get_latest_series("NIFTY", "1m", 100)
        assert synthetic[-1].timestamp != live_series[-1].timestamp

    @pytest.mark.asyncio
    async def test_fetch_started_before_switch_is_discarded(self, chart_payload) -> None:
        holder = {}

        def handler(request: httpx.Request) -> httpx.Response:
            holder["feed"].disable_live()
            return httpx.Response(200, json=chart_payload(rows=120))

        feed = _adapter(handler)
        holder["feed"] = feed
        series = await feed.get_latest_series("NIFTY", "1m", 100)

        status = feed.status()
        assert status["mode"] == MODE_SYNTHETIC
        assert status["discarded_fetches"] == 1
        assert status["cache_size"] == 0
        # el resultado live no se entrega tras pasar a sintético
        assert series[-1].timestamp != chart_payload(rows=120)["chart"]["result"][0]["timestamp"][-1]

    @pytest.mark.asyncio
    async def test_synthetic_mode_never_calls_provider(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no debe llamarse")

        feed = _adapter(handler, live=False)
        _assert_valid_series(await feed.get_latest_series("NIFTY", "15m", 100), 100)
        assert (await feed.get_snapshot("NIFTY")).is_live is False


class TestPushUpdates:
    @pytest.mark.asyncio
    async def test_push_invalidates_and_publishes(self) -> None:
        bus = EventBus()
        queue = await bus.subscribe(TOPIC_FEED_UPDATE, "test")
        feed = _adapter(_server_error, live=False, event_bus=bus)

        await feed.get_latest_series("NIFTY", "1m", 100)
        await feed.get_latest_series("NIFTY", "5m", 100)
        await feed.get_latest_series("BANKNIFTY", "1m", 100)

        quote = Quote(
            instrument="NIFTY",
            last_price=22000.0,
            prev_close=21900.0,
            day_open=21950.0,
            day_high=22010.0,
            day_low=21940.0,
            volume=1_000_000,
            session_state="REGULAR",
            timestamp=1710217800.0,
            is_live=True,
        )
        await feed.push_update("NIFTY", quote)

        event = queue.get_nowait()
        assert isinstance(event, FeedUpdate)
        assert event.instrument == "NIFTY"
        assert event.invalidated == 2
        assert await feed.get_snapshot("NIFTY") is quote
        assert feed.status()["cache_size"] == 2
        assert feed.status()["push_updates"] == 1

    @pytest.mark.asyncio
    async def test_generator_follows_pushed_price(self) -> None:
        generator = SyntheticMarketGenerator(seed=1)
        feed = FeedAdapter(_client(_server_error), generator, live=False)
        await feed.get_latest_series("NIFTY", "1m", 100)
        quote = Quote("NIFTY", 23000.0, 22900.0, 22950.0, 23010.0, 22940.0, 0.0, "REGULAR", 0.0)
        await feed.push_update("NIFTY", quote)
        assert generator.state(INSTRUMENTS["NIFTY"]).last_price == 23000.0
        series = generator.generate_series(INSTRUMENTS["NIFTY"], Horizon.M1, 60, now=time.time() + 120)
        assert abs(series[-1].close / 23000.0 - 1) < 0.05


class TestSyntheticHistory:
    NOW = 1710217800.0

    def test_emitted_candles_never_change(self) -> None:
        generator = SyntheticMarketGenerator(seed=2)
        first = generator.generate_series(INSTRUMENTS["NIFTY"], Horizon.M1, 100, now=self.NOW)
        later = generator.generate_series(INSTRUMENTS["NIFTY"], Horizon.M1, 100, now=self.NOW + 180)

        assert later[-1].timestamp == first[-1].timestamp + 180
        assert later[:97] == first[3:]
        assert later[97].open == first[-1].close

    def test_same_bucket_returns_same_candles(self) -> None:
        generator = SyntheticMarketGenerator(seed=2)
        first = generator.generate_series(INSTRUMENTS["NIFTY"], Horizon.M5, 80, now=self.NOW)
        again = generator.generate_series(INSTRUMENTS["NIFTY"], Horizon.M5, 80, now=self.NOW + 30)
        assert again == first

    def test_longer_request_extends_backwards(self) -> None:
        generator = SyntheticMarketGenerator(seed=2)
        short = generator.generate_series(INSTRUMENTS["NIFTY"], Horizon.M1, 100, now=self.NOW)
        longer = generator.generate_series(INSTRUMENTS["NIFTY"], Horizon.M1, 150, now=self.NOW)

        assert longer[50:] == short
        assert longer[49].close == longer[50].open
        assert all(b.timestamp - a.timestamp == 60 for a, b in zip(longer, longer[1:]))

    def test_candle_fields_are_builtin_floats(self) -> None:
        generator = SyntheticMarketGenerator(seed=2)
        candles = generator.generate_series(INSTRUMENTS["BANKNIFTY"], Horizon.M1, 50, now=self.NOW)
        candles += generator.generate_series(INSTRUMENTS["BANKNIFTY"], Horizon.M1, 80, now=self.NOW + 120)
        for candle in candles:
            for value in (candle.timestamp, candle.open, candle.high, candle.low, candle.close, candle.volume):
                assert type(value) is float
