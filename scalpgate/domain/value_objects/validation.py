"""
ScalpGate – Value Objects: Validation
=======================================
Tipos del Validation Gate Pipeline.

  MarketContext   → foto de mercado que acompaña a un candidato
  TradePlan       → candidato + opción + riesgo + gestión (lo que leen los gates)
  GateVerdict     → veredicto de UN gate
  ValidationResult→ decisión agregada + FinalSignal si no es REJECTED
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional, Tuple

from scalpgate.domain.entities.candle import Quote
from scalpgate.domain.entities.signal import (
    CandidateSignal,
    ExecutionPlan,
    FinalSignal,
    ManagementBlock,
    OptionLeg,
    RiskBlock,
)
from scalpgate.domain.services.market_calendar import EconomicEvent, EventFilterStatus

# ─── Estados de gate ──────────────────────────────────────────────
PASS = "PASS"
FAIL = "FAIL"
REWRITE = "REWRITE"
BLOCKED = "BLOCKED"

# ─── Decisiones agregadas ─────────────────────────────────────────
PASSED = "PASSED"
REWRITTEN = "REWRITTEN"
REJECTED = "REJECTED"


@dataclass(frozen=True, slots=True)
class MarketContext:
    """Contexto de mercado en el instante de validación."""

    spot: float
    now: float = field(default_factory=time.time)
    vix: float = 15.0
    quote: Optional[Quote] = None
    events: Tuple[EconomicEvent, ...] = ()


@dataclass(frozen=True, slots=True)
class TradePlan:
    """Candidato enriquecido: la unidad que evalúan y corrigen los gates."""

    candidate: CandidateSignal
    option: OptionLeg
    risk: RiskBlock
    management: ManagementBlock
    execution: ExecutionPlan
    event_filter: EventFilterStatus
    session: str = "CLOSED"
    risk_per_unit: float = 0.0


@dataclass(frozen=True, slots=True)
class GateVerdict:
    """Resultado de un gate individual."""

    gate: str
    status: str
    reasons: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return self.status == PASS

    @property
    def is_failure(self) -> bool:
        return self.status in (FAIL, BLOCKED)

    def to_dict(self) -> dict:
        return {
            "gate": self.gate,
            "status": self.status,
            "reasons": list(self.reasons),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Decisión agregada del pipeline."""

    decision: str
    gate_score: int
    verdicts: Tuple[GateVerdict, ...]
    first_pass: Tuple[GateVerdict, ...] = ()
    corrections: Tuple[str, ...] = ()
    final_signal: Optional[FinalSignal] = None

    @property
    def accepted(self) -> bool:
        return self.decision != REJECTED

    @property
    def reasons(self) -> Tuple[str, ...]:
        """Todas las razones de los gates que no pasaron (pase final)."""
        return tuple(
            f"{v.gate}: {r}" for v in self.verdicts if not v.passed for r in v.reasons
        )

    def verdict(self, gate: str) -> Optional[GateVerdict]:
        return next((v for v in self.verdicts if v.gate == gate), None)

    def to_dict(self) -> dict:
        return {
            "decision": self.decision,
            "gate_score": self.gate_score,
            "verdicts": [v.to_dict() for v in self.verdicts],
            "first_pass": [v.to_dict() for v in self.first_pass],
            "corrections": list(self.corrections),
            "reasons": list(self.reasons),
            "final_signal": self.final_signal.to_dict() if self.final_signal else None,
        }
