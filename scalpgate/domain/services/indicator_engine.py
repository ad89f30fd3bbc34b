"""
ScalpGate – Domain Service: Indicator Engine
==============================================
Cálculo puro de la batería fija de indicadores sobre una serie de velas.

  compute(series) → IndicatorSet
  len(series) < 50 → InsufficientDataError

PUREZA:
El resultado depende SOLO de los argumentos. Mismo input → mismo output
bit a bit (no hay estado global). El arrastre de PSAR y CPR entre
ticks se hace pasando explícitamente un `IndicatorCarry`, que produce
IndicatorState (capa state/).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from scalpgate.domain.entities.candle import Candle
from scalpgate.domain.exceptions.domain_errors import InsufficientDataError
from scalpgate.domain.services.indicator_calculator import IndicatorCalculator
from scalpgate.domain.services.market_calendar import MarketCalendar
from scalpgate.domain.value_objects.indicator_set import (
    IndicatorSet,
    PivotLevels,
    PsarState,
    Series,
)

MIN_CANDLES = 50


@dataclass(frozen=True)
class IndicatorConfig:
    """Periodos de la batería de indicadores."""

    ema_fast: int = 9
    ema_slow: int = 21
    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    bb_period: int = 20
    bb_std: float = 2.0
    atr_period: int = 14
    psar_step: float = 0.02
    psar_max: float = 0.2
    swing_lookback: int = 5
    swing_min_candles: int = 20


@dataclass(frozen=True)
class IndicatorCarry:
    """
    Estado arrastrado entre llamadas para una (instrumento, horizonte).

    psar_state:  estado tras la última vela procesada
    psar_values: (timestamp, sar) ya emitidos
    cpr:         bloque pivote vigente (se reutiliza mientras el
                 periodo anterior no cambie)
    candles:     velas sobre las que se calculó; si alguna vela con el
                 mismo timestamp cambia, el arrastre se descarta
    """

    psar_state: Optional[PsarState] = None
    psar_values: Tuple[Tuple[float, float], ...] = ()
    cpr: Optional[PivotLevels] = None
    candles: Tuple[Candle, ...] = ()


class IndicatorEngine:
    """Motor de indicadores sin estado."""

    def __init__(
        self,
        config: IndicatorConfig | None = None,
        calendar: MarketCalendar | None = None,
    ) -> None:
        self._config = config or IndicatorConfig()
        self._calendar = calendar or MarketCalendar()
        self._calc = IndicatorCalculator

    @property
    def config(self) -> IndicatorConfig:
        return self._config

    def compute(
        self,
        series: Sequence[Candle],
        carry: IndicatorCarry | None = None,
    ) -> IndicatorSet:
        """
        Calcular el IndicatorSet de una serie.

        Args:
            series: Velas ordenadas (más antigua primero).
            carry: Estado PSAR/CPR de la llamada anterior (opcional).

        Raises:
            InsufficientDataError: si hay menos de 50 velas.
        """
        n = len(series)
        if n < MIN_CANDLES:
            raise InsufficientDataError(
                f"Se requieren {MIN_CANDLES} velas, hay {n}",
                required=MIN_CANDLES,
                available=n,
            )

        cfg = self._config
        calc = self._calc
        closes = [c.close for c in series]

        # ── 1. Tendencia ──
        vwap = calc.vwap(series)
        ema_fast = calc.ema(closes, cfg.ema_fast)
        ema_slow = calc.ema(closes, cfg.ema_slow)

        # ── 2. Momentum ──
        rsi = calc.rsi(closes, cfg.rsi_period)
        macd_line, macd_signal, macd_hist = calc.macd(
            closes, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal
        )

        # ── 3. Volatilidad ──
        bb_upper, bb_middle, bb_lower, bb_width = calc.bollinger_bands(
            closes, cfg.bb_period, cfg.bb_std
        )
        atr = calc.atr(series, cfg.atr_period)

        # ── 4. Estructura ──
        carry = self._valid_carry(series, carry)
        psar_values, psar_state = self._psar(series, carry)
        cpr = self._pivots(series, carry)

        swing_highs: Tuple[Tuple[float, float], ...] = ()
        swing_lows: Tuple[Tuple[float, float], ...] = ()
        if n >= cfg.swing_min_candles:
            hi_idx, lo_idx = calc.swing_points(series, cfg.swing_lookback)
            swing_highs = tuple((series[i].timestamp, series[i].high) for i in hi_idx)
            swing_lows = tuple((series[i].timestamp, series[i].low) for i in lo_idx)

        last = series[-1]
        return IndicatorSet(
            candle_count=n,
            last_timestamp=last.timestamp,
            last_close=last.close,
            vwap=Series("vwap", tuple(vwap)),
            ema_fast=Series("ema_fast", tuple(ema_fast)),
            ema_slow=Series("ema_slow", tuple(ema_slow)),
            rsi=Series("rsi", tuple(rsi)),
            macd_line=Series("macd_line", tuple(macd_line)),
            macd_signal=Series("macd_signal", tuple(macd_signal)),
            macd_hist=Series("macd_hist", tuple(macd_hist)),
            bb_upper=Series("bb_upper", tuple(bb_upper)),
            bb_middle=Series("bb_middle", tuple(bb_middle)),
            bb_lower=Series("bb_lower", tuple(bb_lower)),
            bb_width=Series("bb_width", tuple(bb_width)),
            atr=Series("atr", tuple(atr)),
            psar=Series("psar", tuple(psar_values)),
            psar_state=psar_state,
            cpr=cpr,
            swing_highs=swing_highs,
            swing_lows=swing_lows,
        )

    def next_carry(self, series: Sequence[Candle], result: IndicatorSet) -> IndicatorCarry:
        """Estado a pasar a la siguiente llamada para la misma serie."""
        timestamps = [c.timestamp for c in series][-len(result.psar):]
        return IndicatorCarry(
            psar_state=result.psar_state,
            psar_values=tuple(zip(timestamps, result.psar.values)),
            cpr=result.cpr,
            candles=tuple(series),
        )

    @staticmethod
    def _valid_carry(series: Sequence[Candle], carry: IndicatorCarry | None) -> IndicatorCarry | None:
        """None si alguna vela ya procesada llega distinta."""
        if carry is None or not carry.candles:
            return carry
        seen = {c.timestamp: c for c in carry.candles}
        for candle in series:
            previous = seen.get(candle.timestamp)
            if previous is not None and previous != candle:
                return None
        return carry

    # ════════════════════════════════════════════════════════════════
    #  PSAR con arrastre de estado
    # ════════════════════════════════════════════════════════════════

    def _psar(
        self,
        series: Sequence[Candle],
        carry: IndicatorCarry | None,
    ) -> Tuple[list, PsarState]:
        cfg = self._config
        state = carry.psar_state if carry else None
        known_ts = {c.timestamp for c in series}

        # El estado solo es reutilizable si su última vela sigue en la serie
        if state is None or state.timestamp not in known_ts:
            values, final = self._calc.psar(series, cfg.psar_step, cfg.psar_max)
            return values, final

        history: Dict[float, float] = dict(carry.psar_values)
        new_values, final = self._calc.psar(series, cfg.psar_step, cfg.psar_max, state=state)
        new_candles = [c for c in series if c.timestamp > state.timestamp]
        for candle, value in zip(new_candles, new_values):
            history[candle.timestamp] = value

        # Serie alineada por la derecha: solo velas con valor conocido,
        # cortando en el primer hueco desde el final.
        aligned: list = []
        for candle in reversed(series):
            if candle.timestamp not in history:
                break
            aligned.append(history[candle.timestamp])
        aligned.reverse()
        return aligned, final

    # ════════════════════════════════════════════════════════════════
    #  CPR del periodo anterior
    # ════════════════════════════════════════════════════════════════

    def _previous_period(self, series: Sequence[Candle]) -> Tuple[float, float, float, str]:
        """
        H/L/C del periodo anterior.

        Si la serie abarca más de un día IST → último día COMPLETO
        anterior al día de la última vela. Si no → vela anterior.
        """
        to_date = self._calendar.trading_date
        last_day = to_date(series[-1].timestamp)
        previous = [c for c in series if to_date(c.timestamp) != last_day]
        if previous:
            prev_day = to_date(previous[-1].timestamp)
            day = [c for c in previous if to_date(c.timestamp) == prev_day]
            return (
                max(c.high for c in day),
                min(c.low for c in day),
                day[-1].close,
                prev_day,
            )
        prev = series[-2]
        return prev.high, prev.low, prev.close, str(prev.timestamp)

    def _pivots(self, series: Sequence[Candle], carry: IndicatorCarry | None) -> PivotLevels:
        high, low, close, period = self._previous_period(series)
        if carry and carry.cpr is not None and carry.cpr.source_period == period:
            return carry.cpr
        return self._calc.pivot_levels(high, low, close, period)
