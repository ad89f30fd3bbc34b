"""Pytest configuration and fixtures."""

from datetime import datetime
from typing import Callable, List, Sequence

import pytest

from scalpgate.domain.entities.candle import Candle
from scalpgate.domain.entities.signal import CandidateSignal
from scalpgate.domain.services.market_calendar import IST, MarketCalendar
from scalpgate.domain.services.trade_planner import PlannerConfig, TradePlanner
from scalpgate.domain.value_objects.validation import MarketContext, TradePlan

# Martes 12/03/2024, dentro de la ventana líquida de la mañana
TRADING_NOW = datetime(2024, 3, 12, 10, 30, tzinfo=IST).timestamp()
SPOT = 21500.0


def ist(year: int, month: int, day: int, hour: int, minute: int = 0) -> float:
    return datetime(year, month, day, hour, minute, tzinfo=IST).timestamp()


@pytest.fixture
def trading_now() -> float:
    """Instante de mercado abierto sin bloqueos ni eventos."""
    return TRADING_NOW


@pytest.fixture
def calendar() -> MarketCalendar:
    return MarketCalendar()


@pytest.fixture
def candle_factory() -> Callable[..., List[Candle]]:
    """Velas a partir de una lista de cierres (open = cierre anterior)."""

    def make(
        closes: Sequence[float],
        start: float = TRADING_NOW - 3600 * 3,
        step: float = 60.0,
        spread: float = 2.0,
        volume: float = 1000.0,
    ) -> List[Candle]:
        candles = []
        prev = closes[0]
        for i, close in enumerate(closes):
            candles.append(Candle(
                timestamp=start + i * step,
                open=prev,
                high=max(prev, close) + spread,
                low=min(prev, close) - spread,
                close=close,
                volume=volume,
            ))
            prev = close
        return candles

    return make


@pytest.fixture
def candidate_factory() -> Callable[..., CandidateSignal]:
    """
    Candidato NIFTY 1m BUY con ATR 20: stop a 1 ATR y target2 a 2 ATR
    por defecto, con contexto de confluencia completo.
    """

    def make(stop_atr: float = 1.0, target_atr: float = 2.0, **overrides) -> CandidateSignal:
        atr = 20.0
        entry = overrides.pop("entry_price", SPOT)
        fields = dict(
            instrument="NIFTY",
            horizon="1m",
            direction="BUY",
            entry_price=entry,
            stop_loss=entry - stop_atr * atr,
            target1=entry + stop_atr * atr,
            target2=entry + target_atr * atr,
            strength_score=70,
            confluence_flags=("trend_filter", "momentum_trigger", "structure_filter"),
            created_at=TRADING_NOW,
            atr=atr,
            htf_trend="UP",
            vwap_position="ABOVE",
            ema_alignment=True,
            rsi_reset=True,
            structure_break=False,
        )
        fields.update(overrides)
        return CandidateSignal(**fields)

    return make


@pytest.fixture
def planner(calendar: MarketCalendar) -> TradePlanner:
    return TradePlanner(PlannerConfig(capital=1_000_000.0, sizing_risk_pct=1.0), calendar=calendar)


@pytest.fixture
def market() -> MarketContext:
    return MarketContext(spot=SPOT, now=TRADING_NOW, vix=15.0)


@pytest.fixture
def plan_factory(planner: TradePlanner, candidate_factory, market: MarketContext):
    def make(**kwargs) -> TradePlan:
        return planner.build(candidate_factory(**kwargs), market)

    return make


@pytest.fixture
def chart_payload() -> Callable[..., dict]:
    """Payload del chart API de Yahoo con `rows` velas de 1 minuto."""

    def make(rows: int = 120, start: int = 1710215100, price: float = SPOT) -> dict:
        timestamps = [start + i * 60 for i in range(rows)]
        closes = [price + i * 0.5 for i in range(rows)]
        return {
            "chart": {
                "result": [{
                    "meta": {
                        "symbol": "^NSEI",
                        "regularMarketPrice": closes[-1],
                        "previousClose": price - 10,
                        "marketState": "REGULAR",
                        "regularMarketTime": timestamps[-1],
                    },
                    "timestamp": timestamps,
                    "indicators": {
                        "quote": [{
                            "open": [c - 0.5 for c in closes],
                            "high": [c + 1.0 for c in closes],
                            "low": [c - 1.5 for c in closes],
                            "close": closes,
                            "volume": [1000 + i for i in range(rows)],
                        }],
                    },
                }],
                "error": None,
            }
        }

    return make
