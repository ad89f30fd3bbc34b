"""
ScalpGate – Domain Entities: CandidateSignal & FinalSignal
============================================================
CandidateSignal:
  Producido por el Candidate Generator. Solo lectura aguas abajo; una
  corrección del pipeline crea un objeto NUEVO (dataclasses.replace),
  nunca muta el original.

FinalSignal:
  Candidato + pata de opción + bloque de riesgo + bloque de gestión,
  tal como se distribuye a los suscriptores. Inmutable una vez emitido.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Optional, Tuple


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True, slots=True)
class CandidateSignal:
    """Señal cruda sintetizada a partir de las reglas de confluencia."""

    instrument: str
    horizon: str
    direction: str                  # BUY | SELL
    entry_price: float
    stop_loss: float
    target1: float
    target2: float
    strength_score: int             # 0-100
    confluence_flags: Tuple[str, ...] = ()
    created_at: float = field(default_factory=time.time)
    signal_id: str = field(default_factory=_new_id)

    # ── Contexto para los gates ──
    atr: float = 0.0
    htf_trend: str = "NEUTRAL"      # UP | DOWN | NEUTRAL
    vwap_position: str = "AT"       # ABOVE | BELOW | AT
    ema_alignment: bool = False
    rsi_reset: bool = False
    structure_break: bool = False
    volume_expansion: bool = False

    @property
    def is_bullish(self) -> bool:
        return self.direction == "BUY"

    @property
    def risk(self) -> float:
        return abs(self.entry_price - self.stop_loss)

    def to_dict(self) -> dict:
        return {
            "signal_id": self.signal_id,
            "instrument": self.instrument,
            "horizon": self.horizon,
            "direction": self.direction,
            "entry_price": round(self.entry_price, 2),
            "stop_loss": round(self.stop_loss, 2),
            "target1": round(self.target1, 2),
            "target2": round(self.target2, 2),
            "strength_score": self.strength_score,
            "confluence_flags": list(self.confluence_flags),
            "created_at": self.created_at,
            "context": {
                "atr": round(self.atr, 4),
                "htf_trend": self.htf_trend,
                "vwap_position": self.vwap_position,
                "ema_alignment": self.ema_alignment,
                "rsi_reset": self.rsi_reset,
                "structure_break": self.structure_break,
                "volume_expansion": self.volume_expansion,
            },
        }


@dataclass(frozen=True, slots=True)
class OptionLeg:
    """Pata de opción seleccionada (valores estimados)."""

    strike: int
    side: str                       # CE | PE
    expiry: str                     # YYYY-MM-DD
    moneyness: str                  # ATM | ITM1 | OTM1
    premium: float
    bid: float
    ask: float
    spread_pct: float
    iv: float
    delta: float
    theta: float
    liquidity_score: float
    execution_probability: float
    order_type: str                 # LIMIT | MARKET
    slippage_estimate: float
    cost_pct: float

    def to_dict(self) -> dict:
        return {
            "strike": self.strike,
            "side": self.side,
            "expiry": self.expiry,
            "moneyness": self.moneyness,
            "premium": round(self.premium, 2),
            "bid": round(self.bid, 2),
            "ask": round(self.ask, 2),
            "spread_pct": round(self.spread_pct, 3),
            "iv": round(self.iv, 2),
            "delta": round(self.delta, 3),
            "theta": round(self.theta, 2),
            "liquidity_score": round(self.liquidity_score, 1),
            "execution_probability": round(self.execution_probability, 1),
            "order_type": self.order_type,
            "slippage_estimate": round(self.slippage_estimate, 5),
            "cost_pct": round(self.cost_pct, 3),
        }


@dataclass(frozen=True, slots=True)
class RiskBlock:
    """Distancias en múltiplos de ATR, R:R y tamaño de posición."""

    atr_value: float
    atr_period: int
    stop_distance: float
    stop_atr_multiple: float
    target_distance: float
    target_atr_multiple: float
    risk_reward: float
    position_size: int
    max_risk_amount: float

    def to_dict(self) -> dict:
        return {
            "atr_value": round(self.atr_value, 4),
            "atr_period": self.atr_period,
            "stop_distance": round(self.stop_distance, 2),
            "stop_atr_multiple": round(self.stop_atr_multiple, 3),
            "target_distance": round(self.target_distance, 2),
            "target_atr_multiple": round(self.target_atr_multiple, 3),
            "risk_reward": round(self.risk_reward, 3),
            "position_size": self.position_size,
            "max_risk_amount": round(self.max_risk_amount, 2),
        }


@dataclass(frozen=True, slots=True)
class ManagementBlock:
    """Reglas de gestión de la operación."""

    max_hold_minutes: int
    trailing_method: str = "EMA"
    trailing_trigger_pct: float = 60.0
    time_exits: Tuple[Tuple[str, str, int], ...] = (("15:20", "CLOSE", 100),)
    invalidation: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "max_hold_minutes": self.max_hold_minutes,
            "trailing_stop": {
                "method": self.trailing_method,
                "trigger_profit_pct": self.trailing_trigger_pct,
            },
            "time_exits": [
                {"time": t, "action": a, "percentage": p} for t, a, p in self.time_exits
            ],
            "invalidation": list(self.invalidation),
        }


@dataclass(frozen=True, slots=True)
class ExecutionPlan:
    """Plan de ejecución estimado (troceo por freeze limit + precio protegido)."""

    quantity: int
    slices: Tuple[int, ...]
    slice_delay_ms: int
    protected_price: float

    def to_dict(self) -> dict:
        return {
            "quantity": self.quantity,
            "slices": list(self.slices),
            "slice_delay_ms": self.slice_delay_ms,
            "protected_price": round(self.protected_price, 2),
        }


@dataclass(frozen=True, slots=True)
class FinalSignal:
    """Señal aceptada por el pipeline, lista para distribución."""

    candidate: CandidateSignal
    option: OptionLeg
    risk: RiskBlock
    management: ManagementBlock
    execution: ExecutionPlan
    decision: str                   # PASSED | REWRITTEN
    gate_score: int
    corrections: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    event_status: str = "CLEAR"
    session: Optional[str] = None
    emitted_at: float = field(default_factory=time.time)

    @property
    def instrument(self) -> str:
        return self.candidate.instrument

    @property
    def signal_id(self) -> str:
        return self.candidate.signal_id

    def to_dict(self) -> dict:
        data = self.candidate.to_dict()
        data.update({
            "option": self.option.to_dict(),
            "risk": self.risk.to_dict(),
            "management": self.management.to_dict(),
            "execution": self.execution.to_dict(),
            "decision": self.decision,
            "gate_score": self.gate_score,
            "corrections": list(self.corrections),
            "warnings": list(self.warnings),
            "event_status": self.event_status,
            "session": self.session,
            "emitted_at": self.emitted_at,
        })
        return data
