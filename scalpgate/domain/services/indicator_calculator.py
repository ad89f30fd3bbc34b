"""
ScalpGate – Domain Service: Indicator Calculator
==================================================
Cálculos de indicadores técnicos puros.

Este servicio calcula series completas de EMA, RSI, MACD, Bollinger,
VWAP, ATR, Parabolic SAR, niveles pivote y swings sin dependencias
externas (no TA-Lib, solo math puro).

CONVENCIÓN DE ALINEACIÓN:
Cada serie retornada está alineada por la DERECHA con la entrada:
el último elemento corresponde a la última vela. Los valores de
warm-up no se emiten, así que len(serie) ≤ len(entrada).
"""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence, Tuple

from scalpgate.domain.entities.candle import Candle
from scalpgate.domain.value_objects.indicator_set import PivotLevels, PsarState


class IndicatorCalculator:
    """
    Calculadora de indicadores técnicos puros.

    RESPONSABILIDAD:
    Implementar las fórmulas matemáticas de indicadores.
    NO mantiene estado (stateless).

    Para el arrastre de estado entre llamadas (PSAR, CPR), ver
    IndicatorState en la capa state/.
    """

    @staticmethod
    def ema(
        prices: Sequence[float],
        period: int,
    ) -> List[float]:
        """
        Serie EMA (Exponential Moving Average).

        FÓRMULA:
        EMA_t = price_t × k + EMA_{t-1} × (1-k)
        k = 2 / (period + 1)

        INICIALIZACIÓN:
        EMA inicial = SMA de los primeros `period` valores.

        Returns:
            Lista de longitud len(prices) - period + 1 (vacía si no alcanza)
        """
        if period <= 0 or len(prices) < period:
            return []

        k = 2.0 / (period + 1)
        ema = sum(prices[:period]) / period
        out = [ema]
        for price in prices[period:]:
            ema = price * k + ema * (1 - k)
            out.append(ema)
        return out

    @staticmethod
    def sma(
        prices: Sequence[float],
        period: int,
    ) -> List[float]:
        """Serie SMA con ventana deslizante."""
        if period <= 0 or len(prices) < period:
            return []
        window = sum(prices[:period])
        out = [window / period]
        for i in range(period, len(prices)):
            window += prices[i] - prices[i - period]
            out.append(window / period)
        return out

    @staticmethod
    def rsi(
        prices: Sequence[float],
        period: int = 14,
    ) -> List[float]:
        """
        Serie RSI con suavizado de Wilder.

        FÓRMULA:
        RSI = 100 - (100 / (1 + RS)),  RS = avg_gain / avg_loss
        avg_t = (avg_{t-1} × (period-1) + valor_t) / period

        Returns:
            Lista de longitud len(prices) - period
        """
        if len(prices) < period + 1:
            return []

        changes = [prices[i] - prices[i - 1] for i in range(1, len(prices))]
        avg_gain = sum(max(0.0, c) for c in changes[:period]) / period
        avg_loss = sum(max(0.0, -c) for c in changes[:period]) / period

        def _value(gain: float, loss: float) -> float:
            # Sin pérdidas → RSI máximo
            if loss == 0:
                return 100.0 if gain > 0 else 50.0
            return 100.0 - (100.0 / (1.0 + gain / loss))

        out = [_value(avg_gain, avg_loss)]
        for change in changes[period:]:
            avg_gain = (avg_gain * (period - 1) + max(0.0, change)) / period
            avg_loss = (avg_loss * (period - 1) + max(0.0, -change)) / period
            out.append(_value(avg_gain, avg_loss))
        return out

    @classmethod
    def macd(
        cls,
        prices: Sequence[float],
        fast: int = 12,
        slow: int = 26,
        signal: int = 9,
    ) -> Tuple[List[float], List[float], List[float]]:
        """
        MACD (línea, señal, histograma).

        línea = EMA(fast) - EMA(slow)   (alineadas por la derecha)
        señal = EMA(signal) de la línea
        hist  = línea - señal
        """
        ema_fast = cls.ema(prices, fast)
        ema_slow = cls.ema(prices, slow)
        if not ema_slow:
            return [], [], []

        offset = len(ema_fast) - len(ema_slow)
        line = [f - s for f, s in zip(ema_fast[offset:], ema_slow)]
        sig = cls.ema(line, signal)
        if not sig:
            return line, [], []
        hist = [l - s for l, s in zip(line[len(line) - len(sig):], sig)]
        return line, sig, hist

    @staticmethod
    def bollinger_bands(
        prices: Sequence[float],
        period: int = 20,
        std_dev: float = 2.0,
    ) -> Tuple[List[float], List[float], List[float], List[float]]:
        """
        Bandas de Bollinger (upper, middle, lower, width%).

        Middle = SMA(period)
        Upper/Lower = Middle ± std_dev × σ  (σ poblacional)
        Width = (upper - lower) / middle × 100
        """
        upper: List[float] = []
        middle: List[float] = []
        lower: List[float] = []
        width: List[float] = []
        for end in range(period, len(prices) + 1):
            window = prices[end - period:end]
            mean = sum(window) / period
            sigma = math.sqrt(sum((p - mean) ** 2 for p in window) / period)
            up = mean + std_dev * sigma
            lo = mean - std_dev * sigma
            upper.append(up)
            middle.append(mean)
            lower.append(lo)
            width.append((up - lo) / mean * 100 if mean else 0.0)
        return upper, middle, lower, width

    @staticmethod
    def vwap(candles: Sequence[Candle]) -> List[float]:
        """
        VWAP acumulado sobre TODA la serie (no ventana).

        VWAP_t = Σ(typical × volume) / Σ volume
        Si el volumen acumulado es 0 se usa el cierre.
        """
        out: List[float] = []
        cum_pv = 0.0
        cum_vol = 0.0
        for c in candles:
            cum_pv += c.typical_price * c.volume
            cum_vol += c.volume
            out.append(cum_pv / cum_vol if cum_vol > 0 else c.close)
        return out

    @staticmethod
    def true_ranges(candles: Sequence[Candle]) -> List[float]:
        """TR = max(high-low, |high-prev_close|, |low-prev_close|) desde la 2ª vela."""
        return [
            max(
                cur.high - cur.low,
                abs(cur.high - prev.close),
                abs(cur.low - prev.close),
            )
            for prev, cur in zip(candles, candles[1:])
        ]

    @classmethod
    def atr(
        cls,
        candles: Sequence[Candle],
        period: int = 14,
    ) -> List[float]:
        """
        Serie ATR con suavizado de Wilder.

        ATR inicial = media de los primeros `period` TR.
        """
        trs = cls.true_ranges(candles)
        if len(trs) < period:
            return []
        atr = sum(trs[:period]) / period
        out = [atr]
        for tr in trs[period:]:
            atr = (atr * (period - 1) + tr) / period
            out.append(atr)
        return out

    @staticmethod
    def psar(
        candles: Sequence[Candle],
        step: float = 0.02,
        max_af: float = 0.2,
        state: Optional[PsarState] = None,
    ) -> Tuple[List[float], Optional[PsarState]]:
        """
        Parabolic SAR (máquina de estados reversión / extreme point / AF).

        Sin estado previo arranca alcista con ep = high₀, sar = low₀.
        Con estado previo solo avanza sobre velas posteriores a
        state.timestamp, arrastrando tendencia y extreme point.

        Returns:
            (valores SAR de las velas procesadas, estado final)
        """
        values: List[float] = []
        if not candles:
            return values, state

        if state is None:
            first = candles[0]
            trend, sar, ep, af = 1, first.low, first.high, step
            values.append(sar)
            pending: Iterable[Candle] = candles[1:]
            last_ts = first.timestamp
        else:
            trend, sar, ep, af = state.trend, state.sar, state.ep, state.af
            pending = [c for c in candles if c.timestamp > state.timestamp]
            last_ts = state.timestamp

        for c in pending:
            sar = sar + af * (ep - sar)
            if trend == 1:
                if c.low <= sar:
                    # Reversión a bajista
                    trend, sar, ep, af = -1, ep, c.low, step
                elif c.high > ep:
                    ep = c.high
                    af = min(af + step, max_af)
            else:
                if c.high >= sar:
                    # Reversión a alcista
                    trend, sar, ep, af = 1, ep, c.high, step
                elif c.low < ep:
                    ep = c.low
                    af = min(af + step, max_af)
            values.append(sar)
            last_ts = c.timestamp

        return values, PsarState(trend=trend, sar=sar, ep=ep, af=af, timestamp=last_ts)

    @staticmethod
    def pivot_levels(
        high: float,
        low: float,
        close: float,
        source_period: str = "",
    ) -> PivotLevels:
        """
        Pivotes clásicos + CPR a partir del H/L/C del periodo anterior.

        pivot = (H+L+C)/3,  bc = (H+L)/2,  tc = 2·pivot − bc
        r1 = 2p − L,  s1 = 2p − H
        r2 = p + (H − L),  s2 = p − (H − L)
        r3 = H + 2(p − L),  s3 = L − 2(H − p)
        """
        pivot = (high + low + close) / 3.0
        bc = (high + low) / 2.0
        tc = 2 * pivot - bc
        return PivotLevels(
            pivot=pivot,
            bc=min(bc, tc),
            tc=max(bc, tc),
            r1=2 * pivot - low,
            r2=pivot + (high - low),
            r3=high + 2 * (pivot - low),
            s1=2 * pivot - high,
            s2=pivot - (high - low),
            s3=low - 2 * (high - pivot),
            source_period=source_period,
        )

    @staticmethod
    def swing_points(
        candles: Sequence[Candle],
        lookback: int = 5,
    ) -> Tuple[List[int], List[int]]:
        """
        Detecta swing highs / lows con ventana simétrica.

        Una vela es swing high solo si NINGUNA otra vela dentro de
        ±lookback tiene un high mayor o igual (análogo para lows).
        Las últimas `lookback` velas no pueden confirmarse todavía.

        Returns:
            (índices de swing highs, índices de swing lows)
        """
        highs: List[int] = []
        lows: List[int] = []
        n = len(candles)
        for i in range(lookback, n - lookback):
            window = [j for j in range(i - lookback, i + lookback + 1) if j != i]
            hi = candles[i].high
            lo = candles[i].low
            if all(candles[j].high < hi for j in window):
                highs.append(i)
            if all(candles[j].low > lo for j in window):
                lows.append(i)
        return highs, lows
