"""
ScalpGate – Synthetic Market Generator
========================================
Generador de velas plausibles cuando no hay feed en vivo.

ESTADO POR INSTRUMENTO:
  last_price  → persiste entre llamadas (coherencia de series sucesivas)
  trend       → ±1, se invierte con probabilidad 5% por tramo añadido
  volatility  → diaria 0.02–0.05, escalada al horizonte intradía

VELAS:
  open  = close anterior
  close = open·(1+Δ), Δ acotado por la envolvente de volatilidad
  high  = max(o,c) + r·o·vol·0.5
  low   = max(0, min(o,c) − r·o·vol·0.5)
  volume= (50k + r·100k)·m, m ∈ [1.5, 2.5] entre 09:00 y 15:00 IST

HISTORIA POR (instrumento, horizonte):
  Solo crece. La primera serie se reescala para terminar en last_price;
  después cada llamada añade las velas que faltan hasta el bucket actual
  (terminando en el last_price avanzado) o completa hacia atrás. Una vela
  emitida no se reescribe. Timestamps alineados al horizonte.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from scalpgate.domain.entities.candle import Candle, Quote
from scalpgate.domain.services.market_calendar import MarketCalendar
from scalpgate.domain.value_objects.instrument import Horizon, Instrument

TRADING_MINUTES_PER_DAY = 375
TREND_FLIP_PROBABILITY = 0.05
HISTORY_LIMIT = 1_000
ACTIVE_HOURS = (9, 15)


@dataclass
class InstrumentState:
    last_price: float
    trend: int
    volatility: float
    prev_close: float
    day_open: float
    day_high: float
    day_low: float
    volume: float = 0.0


class SyntheticMarketGenerator:
    """Generador determinista por semilla (numpy Generator por instrumento)."""

    def __init__(self, seed: Optional[int] = None, calendar: MarketCalendar | None = None) -> None:
        self._seed = seed
        self._calendar = calendar or MarketCalendar()
        self._rngs: Dict[str, np.random.Generator] = {}
        self._states: Dict[str, InstrumentState] = {}
        self._history: Dict[Tuple[str, str], List[Candle]] = {}
        self._series_generated = 0

    def _rng(self, symbol: str) -> np.random.Generator:
        rng = self._rngs.get(symbol)
        if rng is None:
            # Semilla estable por símbolo para que el orden de uso no altere las series
            seed = None if self._seed is None else [self._seed, sum(map(ord, symbol))]
            rng = np.random.default_rng(seed)
            self._rngs[symbol] = rng
        return rng

    def state(self, instrument: Instrument) -> InstrumentState:
        state = self._states.get(instrument.symbol)
        if state is None:
            rng = self._rng(instrument.symbol)
            price = instrument.base_price * (1 + rng.uniform(-0.01, 0.01))
            state = InstrumentState(
                last_price=price,
                trend=1 if rng.random() < 0.5 else -1,
                volatility=float(rng.uniform(0.02, 0.05)),
                prev_close=price,
                day_open=price,
                day_high=price,
                day_low=price,
            )
            self._states[instrument.symbol] = state
        return state

    # ════════════════════════════════════════════════════════════════
    #  SERIES
    # ════════════════════════════════════════════════════════════════

    def generate_series(
        self,
        instrument: Instrument,
        horizon: Horizon,
        length: int,
        now: Optional[float] = None,
    ) -> Tuple[Candle, ...]:
        """
        Últimas `length` velas de la historia (instrumento, horizonte).

        La historia solo crece: las velas nuevas se añaden al final
        hasta el bucket del horizonte que contiene `now`, y si se piden
        más velas que las que hay se completan hacia atrás. Una vela ya
        emitida nunca cambia.
        """
        now = time.time() if now is None else now
        step = horizon.seconds
        last_ts = float(math.floor(now / step) * step)
        key = (instrument.symbol, horizon.value)
        history = self._history.get(key)

        if history is None or (last_ts - history[-1].timestamp) / step > self._history_limit(length):
            history = self._build_history(instrument, horizon, length, last_ts)
            self._history[key] = history
        elif last_ts > history[-1].timestamp:
            self._append(instrument, horizon, history, last_ts)

        if len(history) < length:
            self._prepend(instrument, horizon, history, length - len(history))

        limit = self._history_limit(length)
        if len(history) > limit:
            del history[:len(history) - limit]

        self._series_generated += 1
        return tuple(history[-length:])

    @staticmethod
    def _history_limit(length: int) -> int:
        return max(HISTORY_LIMIT, length)

    def _build_history(
        self, instrument: Instrument, horizon: Horizon, length: int, last_ts: float
    ) -> List[Candle]:
        """Primera serie: camino reescalado para terminar en el last_price actual."""
        rng = self._rng(instrument.symbol)
        state = self.state(instrument)
        vol = self._candle_volatility(state.volatility, horizon)

        deltas = [self._delta(rng, state.trend, vol) for _ in range(length)]
        closes = np.cumprod(1 + np.asarray(deltas, dtype=float))
        scale = state.last_price / closes[-1]
        closes = closes * scale

        step = horizon.seconds
        candles: List[Candle] = []
        prev_close = float(scale)
        for i, close in enumerate(closes):
            candle = self._candle(rng, prev_close, float(close), vol, last_ts - (length - 1 - i) * step)
            candles.append(candle)
            prev_close = candle.close
        self._track_day(state, candles[-1])
        return candles

    def _append(
        self, instrument: Instrument, horizon: Horizon, history: List[Candle], last_ts: float
    ) -> None:
        """Añadir las velas que faltan hasta `last_ts`, terminando en el last_price."""
        rng = self._rng(instrument.symbol)
        state = self.state(instrument)
        vol = self._candle_volatility(state.volatility, horizon)

        # ── 1. Avanzar el estado del instrumento ──
        if rng.random() < TREND_FLIP_PROBABILITY:
            state.trend = -state.trend
        state.last_price = state.last_price * (1 + self._delta(rng, state.trend, vol))

        # ── 2. Tramo nuevo desde el último cierre hasta last_price ──
        step = horizon.seconds
        start = history[-1].timestamp + step
        count = int(round((last_ts - start) / step)) + 1
        prev_close = history[-1].close
        deltas = [self._delta(rng, state.trend, vol) for _ in range(count)]
        path = prev_close * np.cumprod(1 + np.asarray(deltas, dtype=float))
        closes = path * (state.last_price / path[-1])

        for i, close in enumerate(closes):
            candle = self._candle(rng, prev_close, float(close), vol, start + i * step)
            history.append(candle)
            self._track_day(state, candle)
            prev_close = candle.close

    def _prepend(
        self, instrument: Instrument, horizon: Horizon, history: List[Candle], missing: int
    ) -> None:
        """Completar hacia atrás: el cierre de cada vela es la apertura de la siguiente."""
        rng = self._rng(instrument.symbol)
        state = self.state(instrument)
        vol = self._candle_volatility(state.volatility, horizon)

        step = horizon.seconds
        older: List[Candle] = []
        first = history[0]
        for _ in range(missing):
            close = first.open
            o = close / (1 + self._delta(rng, state.trend, vol))
            first = self._candle(rng, o, close, vol, first.timestamp - step)
            older.append(first)
        older.reverse()
        history[:0] = older

    def _candle(self, rng: np.random.Generator, o: float, c: float, vol: float, ts: float) -> Candle:
        r_high, r_low, r_vol = rng.random(3)
        return Candle(
            timestamp=float(ts),
            open=float(o),
            high=float(max(o, c) + r_high * o * vol * 0.5),
            low=float(max(0.0, min(o, c) - r_low * o * vol * 0.5)),
            close=float(c),
            volume=self._volume(rng, r_vol, ts),
        )

    @staticmethod
    def _candle_volatility(daily_vol: float, horizon: Horizon) -> float:
        minutes = min(horizon.minutes, TRADING_MINUTES_PER_DAY)
        return daily_vol * math.sqrt(minutes / TRADING_MINUTES_PER_DAY)

    @staticmethod
    def _delta(rng: np.random.Generator, trend: int, vol: float) -> float:
        raw = trend * vol * 0.1 + float(rng.normal(0.0, vol * 0.5))
        return max(-vol, min(vol, raw))

    def _volume(self, rng: np.random.Generator, r: float, ts: float) -> float:
        hour = self._calendar.to_ist(ts).hour
        multiplier = 1.0
        if ACTIVE_HOURS[0] <= hour < ACTIVE_HOURS[1]:
            multiplier = float(rng.uniform(1.5, 2.5))
        return float((50_000 + r * 100_000) * multiplier)

    @staticmethod
    def _track_day(state: InstrumentState, candle: Candle) -> None:
        state.day_high = max(state.day_high, candle.high)
        state.day_low = min(state.day_low, candle.low)
        state.volume += candle.volume

    # ════════════════════════════════════════════════════════════════
    #  SNAPSHOT
    # ════════════════════════════════════════════════════════════════

    def snapshot(self, instrument: Instrument, now: Optional[float] = None) -> Quote:
        """Cotización derivada del estado del generador."""
        now = time.time() if now is None else now
        state = self.state(instrument)
        return Quote(
            instrument=instrument.symbol,
            last_price=state.last_price,
            prev_close=state.prev_close,
            day_open=state.day_open,
            day_high=max(state.day_high, state.last_price),
            day_low=min(state.day_low, state.last_price),
            volume=state.volume,
            session_state="REGULAR" if self._calendar.is_market_open(now) else "CLOSED",
            timestamp=now,
            is_live=False,
        )

    def set_last_price(self, symbol: str, price: float) -> None:
        """Alinear el estado con un precio real (push en vivo)."""
        state = self._states.get(symbol)
        if state is not None and price > 0:
            state.last_price = price

    @property
    def stats(self) -> dict:
        return {
            "instruments": sorted(self._states),
            "series_generated": self._series_generated,
            "histories": {f"{s}:{h}": len(c) for (s, h), c in self._history.items()},
        }
