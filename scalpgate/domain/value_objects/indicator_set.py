"""
ScalpGate – Value Objects: IndicatorSet
=========================================
Resultado inmutable del Indicator Engine.

Series:
  Tipo etiquetado que expone la serie completa (`values`) y el último
  valor (`latest`). Los valores de warm-up se descartan, así que
  len(series) ≤ len(velas) y `latest == values[-1]` siempre.

PivotLevels:
  Rango pivote (CPR) derivado del H/L/C del periodo anterior.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


@dataclass(frozen=True, slots=True)
class Series:
    """Serie temporal alineada a las últimas velas de la entrada."""

    name: str
    values: Tuple[float, ...] = ()

    @property
    def latest(self) -> Optional[float]:
        return self.values[-1] if self.values else None

    @property
    def previous(self) -> Optional[float]:
        return self.values[-2] if len(self.values) >= 2 else None

    def full(self) -> Tuple[float, ...]:
        return self.values

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True, slots=True)
class PivotLevels:
    """Niveles pivote clásicos + CPR (pivot, bc, tc)."""

    pivot: float
    bc: float
    tc: float
    r1: float
    r2: float
    r3: float
    s1: float
    s2: float
    s3: float
    source_period: str        # fecha IST o timestamp de la vela origen

    @property
    def width_pct(self) -> float:
        if not self.pivot:
            return 0.0
        return abs(self.tc - self.bc) / self.pivot * 100

    @property
    def classification(self) -> str:
        """NARROW → día tendencial, WIDE → día lateral."""
        width = self.width_pct
        if width < 0.3:
            return "NARROW"
        if width > 0.7:
            return "WIDE"
        return "NORMAL"

    def to_dict(self) -> dict:
        return {
            "pivot": round(self.pivot, 2),
            "bc": round(self.bc, 2),
            "tc": round(self.tc, 2),
            "r1": round(self.r1, 2),
            "r2": round(self.r2, 2),
            "r3": round(self.r3, 2),
            "s1": round(self.s1, 2),
            "s2": round(self.s2, 2),
            "s3": round(self.s3, 2),
            "width_pct": round(self.width_pct, 3),
            "classification": self.classification,
            "source_period": self.source_period,
        }


@dataclass(frozen=True, slots=True)
class PsarState:
    """Estado de la máquina Parabolic SAR tras procesar una vela."""

    trend: int          # +1 alcista, -1 bajista
    sar: float
    ep: float           # extreme point
    af: float           # acceleration factor
    timestamp: float    # última vela procesada


@dataclass(frozen=True)
class IndicatorSet:
    """Batería fija de indicadores sobre una serie de velas."""

    candle_count: int
    last_timestamp: float
    last_close: float
    vwap: Series
    ema_fast: Series
    ema_slow: Series
    rsi: Series
    macd_line: Series
    macd_signal: Series
    macd_hist: Series
    bb_upper: Series
    bb_middle: Series
    bb_lower: Series
    bb_width: Series
    atr: Series
    psar: Series
    psar_state: PsarState
    cpr: PivotLevels
    swing_highs: Tuple[Tuple[float, float], ...] = field(default=())
    swing_lows: Tuple[Tuple[float, float], ...] = field(default=())

    def series(self) -> Dict[str, Series]:
        """Todas las series por nombre."""
        return {
            s.name: s
            for s in (
                self.vwap, self.ema_fast, self.ema_slow, self.rsi,
                self.macd_line, self.macd_signal, self.macd_hist,
                self.bb_upper, self.bb_middle, self.bb_lower, self.bb_width,
                self.atr, self.psar,
            )
        }

    @property
    def psar_trend(self) -> str:
        return "UP" if self.psar_state.trend > 0 else "DOWN"

    @property
    def nearest_swing_low(self) -> Optional[float]:
        return self.swing_lows[-1][1] if self.swing_lows else None

    @property
    def nearest_swing_high(self) -> Optional[float]:
        return self.swing_highs[-1][1] if self.swing_highs else None

    def snapshot(self) -> dict:
        """Últimos valores escalares (payload de MarketDataUpdate)."""
        data = {
            name: (round(s.latest, 4) if s.latest is not None else None)
            for name, s in self.series().items()
        }
        data.update({
            "psar_trend": self.psar_trend,
            "cpr": self.cpr.to_dict(),
            "swing_high": self.nearest_swing_high,
            "swing_low": self.nearest_swing_low,
            "candle_count": self.candle_count,
        })
        return data
