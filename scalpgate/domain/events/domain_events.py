"""
ScalpGate – Domain Events
===========================
Eventos de dominio que circulan por el EventBus.

Los eventos representan HECHOS ya ocurridos: son inmutables, llevan
timestamp y se serializan con to_dict() para el fan-out WebSocket.

TÓPICOS:
  feed_update      → FeedUpdate        (Feed Adapter, push de cotización)
  market_data      → MarketDataUpdate  (tick corto del scheduler)
  signal           → SignalEmitted     (señal aceptada por el pipeline)
  signal_rejected  → SignalRejected    (candidato rechazado, auditoría)
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from scalpgate.domain.entities.candle import Candle, Quote
from scalpgate.domain.entities.signal import FinalSignal

TOPIC_FEED_UPDATE = "feed_update"
TOPIC_MARKET_DATA = "market_data"
TOPIC_SIGNAL = "signal"
TOPIC_SIGNAL_REJECTED = "signal_rejected"


@dataclass(frozen=True)
class DomainEvent:
    """Evento base de dominio."""

    event_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: float = field(default_factory=time.time)

    topic = ""

    @property
    def instrument(self) -> Optional[str]:
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.__class__.__name__,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class FeedUpdate(DomainEvent):
    """Evento: llegó una cotización push y se invalidó la caché del instrumento."""

    topic = TOPIC_FEED_UPDATE

    quote: Optional[Quote] = None
    invalidated: int = 0

    @property
    def instrument(self) -> Optional[str]:
        return self.quote.instrument if self.quote else None

    def to_dict(self) -> Dict[str, Any]:
        base = super().to_dict()
        base.update({
            "instrument": self.instrument,
            "quote": self.quote.to_dict() if self.quote else None,
            "invalidated": self.invalidated,
        })
        return base


@dataclass(frozen=True)
class MarketDataUpdate(DomainEvent):
    """Evento: última vela + snapshot de indicadores de un (instrumento, horizonte)."""

    topic = TOPIC_MARKET_DATA

    symbol: str = ""
    horizon: str = ""
    candle: Optional[Candle] = None
    indicator_snapshot: Dict[str, Any] = field(default_factory=dict)
    is_live: bool = False

    @property
    def instrument(self) -> Optional[str]:
        return self.symbol

    def to_dict(self) -> Dict[str, Any]:
        base = super().to_dict()
        base.update({
            "instrument": self.symbol,
            "horizon": self.horizon,
            "candle": self.candle.to_dict() if self.candle else None,
            "indicators": self.indicator_snapshot,
            "is_live": self.is_live,
        })
        return base


@dataclass(frozen=True)
class SignalEmitted(DomainEvent):
    """Evento: el pipeline aceptó una señal (PASSED o REWRITTEN)."""

    topic = TOPIC_SIGNAL

    signal: Optional[FinalSignal] = None

    @property
    def instrument(self) -> Optional[str]:
        return self.signal.instrument if self.signal else None

    def to_dict(self) -> Dict[str, Any]:
        base = super().to_dict()
        base.update({
            "instrument": self.instrument,
            "signal": self.signal.to_dict() if self.signal else None,
        })
        return base


@dataclass(frozen=True)
class SignalRejected(DomainEvent):
    """Evento: un candidato fue rechazado por el pipeline."""

    topic = TOPIC_SIGNAL_REJECTED

    signal_id: str = ""
    symbol: str = ""
    horizon: str = ""
    direction: str = ""
    gate_score: int = 0
    reasons: tuple = ()

    @property
    def instrument(self) -> Optional[str]:
        return self.symbol

    def to_dict(self) -> Dict[str, Any]:
        base = super().to_dict()
        base.update({
            "signal_id": self.signal_id,
            "instrument": self.symbol,
            "horizon": self.horizon,
            "direction": self.direction,
            "gate_score": self.gate_score,
            "reasons": list(self.reasons),
        })
        return base
