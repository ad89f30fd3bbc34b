"""
ScalpGate – Domain Service: Validation Gate Pipeline
======================================================
Agregación de los cinco gates con una única ronda de corrección.

MÁQUINA DE ESTADOS:
  pase 1 ──► algún FAIL/BLOCKED ───────────────► REJECTED
         ──► algún REWRITE ──► corregir ──► pase 2 ──► todo PASS ──► REWRITTEN
                                                  └─► otro caso ──► REJECTED
         ──► todo PASS ─────────────────────────► PASSED

gate_score = round(100 · PASS / 5) sobre el pase final.
Una señal aceptada queda registrada como trade en el RiskStateStore
con try_record_trade(); si entretanto otro trade agotó un límite duro,
la decisión pasa a REJECTED con el gate de riesgo en FAIL.
"""

from __future__ import annotations

import time
from typing import List, Optional, Tuple

from scalpgate.domain.entities.signal import CandidateSignal, FinalSignal
from scalpgate.domain.services import gates
from scalpgate.domain.services.gates import ValidationRules
from scalpgate.domain.services.market_calendar import MarketCalendar
from scalpgate.domain.services.trade_planner import TradePlanner
from scalpgate.domain.value_objects.validation import (
    FAIL,
    PASSED,
    REJECTED,
    REWRITE,
    REWRITTEN,
    GateVerdict,
    MarketContext,
    TradePlan,
    ValidationResult,
)
from scalpgate.shared.logging.logger import get_logger
from scalpgate.state.risk_state import RiskSnapshot, RiskStateStore

logger = get_logger("gate_pipeline")


def gate_score(verdicts: Tuple[GateVerdict, ...]) -> int:
    passed = sum(1 for v in verdicts if v.passed)
    return round(passed / len(gates.GATE_ORDER) * 100)


class GatePipeline:
    """
    Validation Gate Pipeline.

    Sin estado propio salvo contadores: el estado de riesgo vive en el
    RiskStateStore y se lee como snapshot al inicio de cada validación.
    """

    def __init__(
        self,
        planner: TradePlanner,
        rules: ValidationRules | None = None,
        risk_store: RiskStateStore | None = None,
        calendar: MarketCalendar | None = None,
    ) -> None:
        self._planner = planner
        self._rules = rules or ValidationRules()
        self._risk_store = risk_store
        self._calendar = calendar or MarketCalendar()

        self._validated = 0
        self._passed = 0
        self._rewritten = 0
        self._rejected = 0

    @property
    def rules(self) -> ValidationRules:
        return self._rules

    # ════════════════════════════════════════════════════════════════
    #  VALIDACIÓN
    # ════════════════════════════════════════════════════════════════

    def validate(
        self,
        candidate: CandidateSignal,
        market: MarketContext,
        risk_state: Optional[RiskSnapshot] = None,
    ) -> ValidationResult:
        """
        Validar un candidato.

        Args:
            candidate: señal cruda del Candidate Generator
            market: contexto de mercado (spot, VIX, instante, eventos)
            risk_state: snapshot de riesgo; si es None se lee del store

        Returns:
            ValidationResult con decisión, veredictos y FinalSignal
        """
        self._validated += 1
        snapshot = risk_state or self._snapshot(market.now)

        # ── 1. Primer pase ──
        plan = self._planner.build(candidate, market)
        first = gates.run_all(plan, self._rules, snapshot)

        if any(v.is_failure for v in first):
            return self._reject(candidate, first, first, ())

        if not any(v.status == REWRITE for v in first):
            return self._accept(plan, first, first, (), PASSED, market.now)

        # ── 2. Corrección única ──
        corrected, corrections = self._correct(plan, first, snapshot)

        # ── 3. Segundo pase (final) ──
        second = gates.run_all(corrected, self._rules, snapshot)
        if all(v.passed for v in second):
            return self._accept(corrected, second, first, tuple(corrections), REWRITTEN, market.now)
        return self._reject(candidate, second, first, tuple(corrections))

    def _correct(
        self,
        plan: TradePlan,
        verdicts: Tuple[GateVerdict, ...],
        snapshot: RiskSnapshot,
    ) -> Tuple[TradePlan, List[str]]:
        corrections: List[str] = []
        by_gate = {v.gate: v for v in verdicts}

        # El orden importa: el riesgo por trade depende de la distancia al stop.
        if by_gate[gates.GATE_TIMEFRAME].status == REWRITE:
            plan, applied = gates.correct_timeframe_rr(plan, self._rules)
            corrections.extend(applied)

        risk_verdict = gates.check_risk_limits(plan, self._rules, snapshot)
        if by_gate[gates.GATE_RISK].status == REWRITE or risk_verdict.status == REWRITE:
            plan, applied = gates.correct_position_size(plan, self._rules, snapshot.capital)
            corrections.extend(applied)

        return plan, corrections

    # ════════════════════════════════════════════════════════════════
    #  RESULTADOS
    # ════════════════════════════════════════════════════════════════

    def _accept(
        self,
        plan: TradePlan,
        verdicts: Tuple[GateVerdict, ...],
        first: Tuple[GateVerdict, ...],
        corrections: Tuple[str, ...],
        decision: str,
        now: float,
    ) -> ValidationResult:
        if self._risk_store is not None:
            c = plan.candidate
            limits = self._rules.risk
            recorded, reason = self._risk_store.try_record_trade(
                c.signal_id, c.instrument, c.horizon, plan.management.max_hold_minutes, now,
                max_trades_per_day=limits.max_trades_per_day,
                max_open_positions=limits.max_open_positions,
                max_daily_loss_pct=limits.max_daily_loss_pct,
            )
            if not recorded:
                verdicts = tuple(
                    GateVerdict(gates.GATE_RISK, FAIL, (reason,)) if v.gate == gates.GATE_RISK else v
                    for v in verdicts
                )
                return self._reject(c, verdicts, first, corrections)

        score = gate_score(verdicts)
        warnings = tuple(w for v in verdicts for w in v.warnings)
        final = FinalSignal(
            candidate=plan.candidate,
            option=plan.option,
            risk=plan.risk,
            management=plan.management,
            execution=plan.execution,
            decision=decision,
            gate_score=score,
            corrections=corrections,
            warnings=warnings,
            event_status=plan.event_filter.status,
            session=plan.session,
            emitted_at=time.time(),
        )

        if decision == PASSED:
            self._passed += 1
        else:
            self._rewritten += 1
        logger.info(
            "✅ Señal %s %s %s %s (score %d%s)",
            decision, plan.candidate.instrument, plan.candidate.horizon,
            plan.candidate.direction, score,
            f", correcciones: {'; '.join(corrections)}" if corrections else "",
        )
        return ValidationResult(
            decision=decision,
            gate_score=score,
            verdicts=verdicts,
            first_pass=first,
            corrections=corrections,
            final_signal=final,
        )

    def _reject(
        self,
        candidate: CandidateSignal,
        verdicts: Tuple[GateVerdict, ...],
        first: Tuple[GateVerdict, ...],
        corrections: Tuple[str, ...],
    ) -> ValidationResult:
        self._rejected += 1
        result = ValidationResult(
            decision=REJECTED,
            gate_score=gate_score(verdicts),
            verdicts=verdicts,
            first_pass=first,
            corrections=corrections,
        )
        logger.info(
            "❌ Candidato rechazado %s %s %s: %s",
            candidate.instrument, candidate.horizon, candidate.direction,
            " | ".join(result.reasons) or "sin razones",
        )
        return result

    def _snapshot(self, now: float) -> RiskSnapshot:
        if self._risk_store is not None:
            return self._risk_store.snapshot(now)
        return RiskSnapshot(
            day=self._calendar.trading_date(now),
            capital=self._planner.config.capital,
            trades_count=0,
            total_loss_pct=0.0,
            open_positions=0,
            emergency_stop=False,
        )

    @property
    def stats(self) -> dict:
        return {
            "validated": self._validated,
            "passed": self._passed,
            "rewritten": self._rewritten,
            "rejected": self._rejected,
        }
