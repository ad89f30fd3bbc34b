"""
ScalpGate – Domain Entity: Candle & Quote
===========================================
Vela OHLCV inmutable y cotización puntual (snapshot) de un instrumento.

Decisiones de diseño:
- frozen=True → inmutable una vez producida. Nadie puede alterar una
  vela pasada, garantizando integridad histórica.
- Se usa dataclass por rendimiento (más ligera que Pydantic para hot-path).
- Una serie es una tupla ordenada con timestamps estrictamente crecientes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from scalpgate.domain.exceptions.domain_errors import ValidationError


@dataclass(frozen=True, slots=True)
class Candle:
    """Vela OHLCV con timestamp de apertura (epoch segundos)."""

    timestamp: float
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3.0

    @property
    def range(self) -> float:
        return self.high - self.low

    def is_consistent(self) -> bool:
        """high ≥ max(open, close), 0 ≤ low ≤ min(open, close)."""
        return (
            self.high >= max(self.open, self.close)
            and self.low <= min(self.open, self.close)
            and self.low >= 0
        )

    def to_dict(self) -> dict:
        """Serialización para WebSocket / API."""
        return {
            "timestamp": self.timestamp,
            "open": round(self.open, 2),
            "high": round(self.high, 2),
            "low": round(self.low, 2),
            "close": round(self.close, 2),
            "volume": round(self.volume),
        }


def validate_series(candles: Sequence[Candle]) -> Tuple[Candle, ...]:
    """
    Verifica el invariante de serie: timestamps estrictamente crecientes,
    sin duplicados. Retorna la serie como tupla inmutable.
    """
    prev: Optional[float] = None
    for candle in candles:
        if prev is not None and candle.timestamp <= prev:
            raise ValidationError(
                "Serie de velas no estrictamente creciente",
                field="timestamp",
                value=candle.timestamp,
            )
        prev = candle.timestamp
    return tuple(candles)


@dataclass(frozen=True, slots=True)
class Quote:
    """Cotización puntual de un instrumento."""

    instrument: str
    last_price: float
    prev_close: float
    day_open: float
    day_high: float
    day_low: float
    volume: float
    session_state: str       # REGULAR | CLOSED | PRE | POST
    timestamp: float
    is_live: bool = False

    @property
    def change_pct(self) -> float:
        if not self.prev_close:
            return 0.0
        return (self.last_price - self.prev_close) / self.prev_close * 100

    def to_dict(self) -> dict:
        return {
            "instrument": self.instrument,
            "last_price": round(self.last_price, 2),
            "prev_close": round(self.prev_close, 2),
            "day_open": round(self.day_open, 2),
            "day_high": round(self.day_high, 2),
            "day_low": round(self.day_low, 2),
            "volume": round(self.volume),
            "change_pct": round(self.change_pct, 3),
            "session_state": self.session_state,
            "timestamp": self.timestamp,
            "is_live": self.is_live,
        }
