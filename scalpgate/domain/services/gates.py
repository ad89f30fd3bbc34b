"""
ScalpGate – Domain Service: Validation Gates
==============================================
Los cinco gates independientes del pipeline y sus correcciones.

Cada gate recibe el TradePlan (y el snapshot de riesgo) y devuelve un
GateVerdict. Ningún gate lanza excepciones ni depende de otro.

  1. timeframe_rr          → REWRITE si múltiplos ATR / R:R / hold fuera de rango
  2. option_executability  → FAIL (no corregible)
  3. confluence            → FAIL por tendencia neutra, <3 factores o contradicción
  4. risk_limits           → FAIL; REWRITE si SOLO falla el riesgo por trade
  5. event_filter          → BLOCKED en ventana, PASS con aviso en el margen
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from scalpgate.domain.entities.signal import ManagementBlock, RiskBlock
from scalpgate.domain.services.cost_model import plan_order_slices
from scalpgate.domain.value_objects.instrument import get_instrument
from scalpgate.domain.value_objects.validation import (
    BLOCKED,
    FAIL,
    PASS,
    REWRITE,
    GateVerdict,
    TradePlan,
)
from scalpgate.state.risk_state import RiskSnapshot

GATE_TIMEFRAME = "timeframe_rr"
GATE_OPTIONS = "option_executability"
GATE_CONFLUENCE = "confluence"
GATE_RISK = "risk_limits"
GATE_EVENTS = "event_filter"

GATE_ORDER = (GATE_TIMEFRAME, GATE_OPTIONS, GATE_CONFLUENCE, GATE_RISK, GATE_EVENTS)


@dataclass(frozen=True)
class TimeframeBounds:
    min_sl_atr: float
    max_sl_atr: float
    min_target_atr: float
    max_target_atr: float
    min_rr: float
    max_hold_minutes: int


@dataclass(frozen=True)
class OptionThresholds:
    max_spread_pct: float = 2.0
    min_liquidity_score: float = 60.0
    min_delta: float = 0.3
    max_theta_daily: float = -50.0
    min_execution_probability: float = 75.0


@dataclass(frozen=True)
class RiskLimits:
    max_risk_per_trade_pct: float = 2.0
    max_daily_loss_pct: float = 6.0
    max_trades_per_day: int = 8
    max_open_positions: int = 3


def _default_bounds() -> Dict[str, TimeframeBounds]:
    return {
        "1m": TimeframeBounds(0.5, 2.0, 0.8, 3.0, 1.2, 15),
        "5m": TimeframeBounds(0.8, 3.0, 1.2, 5.0, 1.5, 45),
        "15m": TimeframeBounds(1.0, 3.5, 1.5, 6.0, 1.5, 90),
    }


@dataclass(frozen=True)
class ValidationRules:
    """Umbrales de los cinco gates."""

    timeframe_bounds: Dict[str, TimeframeBounds] = field(default_factory=_default_bounds)
    options: OptionThresholds = field(default_factory=OptionThresholds)
    risk: RiskLimits = field(default_factory=RiskLimits)
    min_confluence_factors: int = 3


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


# ════════════════════════════════════════════════════════════════
#  GATE 1: TIMEFRAME R:R
# ════════════════════════════════════════════════════════════════

def check_timeframe_rr(plan: TradePlan, rules: ValidationRules) -> GateVerdict:
    horizon = plan.candidate.horizon
    bounds = rules.timeframe_bounds.get(horizon)
    if bounds is None:
        return GateVerdict(GATE_TIMEFRAME, FAIL, (f"Horizonte sin límites definidos: {horizon}",))

    risk = plan.risk
    reasons: List[str] = []
    if not bounds.min_sl_atr <= risk.stop_atr_multiple <= bounds.max_sl_atr:
        reasons.append(
            f"SL {risk.stop_atr_multiple:.2f} ATR fuera de [{bounds.min_sl_atr}, {bounds.max_sl_atr}]"
        )
    if not bounds.min_target_atr <= risk.target_atr_multiple <= bounds.max_target_atr:
        reasons.append(
            f"Target {risk.target_atr_multiple:.2f} ATR fuera de "
            f"[{bounds.min_target_atr}, {bounds.max_target_atr}]"
        )
    if risk.risk_reward < bounds.min_rr:
        reasons.append(f"R:R {risk.risk_reward:.2f} por debajo de {bounds.min_rr}")
    if plan.management.max_hold_minutes > bounds.max_hold_minutes:
        reasons.append(
            f"Hold {plan.management.max_hold_minutes}m supera {bounds.max_hold_minutes}m"
        )

    if reasons:
        return GateVerdict(GATE_TIMEFRAME, REWRITE, tuple(reasons))
    return GateVerdict(GATE_TIMEFRAME, PASS)


def correct_timeframe_rr(plan: TradePlan, rules: ValidationRules) -> Tuple[TradePlan, List[str]]:
    """
    Llevar los múltiplos ATR al límite más cercano y recalcular
    distancias, precios y R:R. El hold se recorta al máximo.
    """
    bounds = rules.timeframe_bounds[plan.candidate.horizon]
    risk = plan.risk
    corrections: List[str] = []

    sl_mult = _clamp(risk.stop_atr_multiple, bounds.min_sl_atr, bounds.max_sl_atr)
    tp_mult = _clamp(risk.target_atr_multiple, bounds.min_target_atr, bounds.max_target_atr)
    if sl_mult != risk.stop_atr_multiple:
        corrections.append(f"SL ajustado a {sl_mult} ATR")
    if tp_mult != risk.target_atr_multiple:
        corrections.append(f"Target ajustado a {tp_mult} ATR")

    stop_distance = risk.atr_value * sl_mult
    target_distance = risk.atr_value * tp_mult
    risk_per_unit = stop_distance * abs(plan.option.delta)

    candidate = plan.candidate
    sign = 1 if candidate.is_bullish else -1
    t1_distance = min(abs(candidate.target1 - candidate.entry_price), target_distance)
    new_candidate = dataclasses.replace(
        candidate,
        stop_loss=candidate.entry_price - sign * stop_distance,
        target1=candidate.entry_price + sign * t1_distance,
        target2=candidate.entry_price + sign * target_distance,
    )
    new_risk = dataclasses.replace(
        risk,
        stop_distance=stop_distance,
        stop_atr_multiple=sl_mult,
        target_distance=target_distance,
        target_atr_multiple=tp_mult,
        risk_reward=round(target_distance / stop_distance, 6),
        max_risk_amount=risk.position_size * risk_per_unit,
    )

    management: ManagementBlock = plan.management
    if management.max_hold_minutes > bounds.max_hold_minutes:
        management = dataclasses.replace(management, max_hold_minutes=bounds.max_hold_minutes)
        corrections.append(f"Hold recortado a {bounds.max_hold_minutes}m")

    corrected = dataclasses.replace(
        plan,
        candidate=new_candidate,
        risk=new_risk,
        management=management,
        risk_per_unit=risk_per_unit,
    )
    return corrected, corrections


# ════════════════════════════════════════════════════════════════
#  GATE 2: EJECUTABILIDAD DE LA OPCIÓN
# ════════════════════════════════════════════════════════════════

def check_option_executability(plan: TradePlan, rules: ValidationRules) -> GateVerdict:
    option = plan.option
    th = rules.options
    reasons: List[str] = []
    if option.spread_pct > th.max_spread_pct:
        reasons.append(f"Spread {option.spread_pct:.2f}% supera {th.max_spread_pct}%")
    if option.liquidity_score < th.min_liquidity_score:
        reasons.append(f"Liquidez {option.liquidity_score:.0f} por debajo de {th.min_liquidity_score:.0f}")
    if abs(option.delta) < th.min_delta:
        reasons.append(f"Delta {option.delta:.2f} por debajo de {th.min_delta}")
    if option.theta < th.max_theta_daily:
        reasons.append(f"Theta {option.theta:.1f} indica decaimiento excesivo")
    if option.execution_probability < th.min_execution_probability:
        reasons.append(
            f"Probabilidad de ejecución {option.execution_probability:.0f}% "
            f"por debajo de {th.min_execution_probability:.0f}%"
        )
    if reasons:
        return GateVerdict(GATE_OPTIONS, FAIL, tuple(reasons))
    return GateVerdict(GATE_OPTIONS, PASS)


# ════════════════════════════════════════════════════════════════
#  GATE 3: CONFLUENCIA
# ════════════════════════════════════════════════════════════════

def check_confluence(plan: TradePlan, rules: ValidationRules) -> GateVerdict:
    c = plan.candidate
    if c.htf_trend == "NEUTRAL":
        return GateVerdict(GATE_CONFLUENCE, FAIL, ("Sin sesgo claro en el horizonte superior",))

    factors = [c.ema_alignment, c.rsi_reset, c.structure_break, c.vwap_position != "AT"]
    count = sum(1 for f in factors if f)
    reasons: List[str] = []
    if count < rules.min_confluence_factors:
        reasons.append(f"Confluencia insuficiente: {count}/4 factores")

    if c.vwap_position != "AT" and (c.htf_trend == "UP") != (c.vwap_position == "ABOVE"):
        reasons.append("Tendencia superior y posición vs VWAP contradictorias")

    if reasons:
        return GateVerdict(GATE_CONFLUENCE, FAIL, tuple(reasons))
    return GateVerdict(GATE_CONFLUENCE, PASS, warnings=(f"Confluencia {count}/4",))


# ════════════════════════════════════════════════════════════════
#  GATE 4: LÍMITES DE RIESGO
# ════════════════════════════════════════════════════════════════

def per_trade_risk_pct(plan: TradePlan, capital: float) -> float:
    return plan.risk.max_risk_amount / capital * 100 if capital > 0 else math.inf


def check_risk_limits(plan: TradePlan, rules: ValidationRules, snapshot: RiskSnapshot) -> GateVerdict:
    limits = rules.risk
    hard: List[str] = []
    if snapshot.emergency_stop:
        hard.append(f"Parada de emergencia activa: {snapshot.emergency_reason}")
    if snapshot.total_loss_pct >= limits.max_daily_loss_pct:
        hard.append(f"Pérdida diaria {snapshot.total_loss_pct:.2f}% alcanzó {limits.max_daily_loss_pct}%")
    if snapshot.trades_count >= limits.max_trades_per_day:
        hard.append(f"Límite diario de trades {limits.max_trades_per_day} alcanzado")
    if snapshot.open_positions >= limits.max_open_positions:
        hard.append(f"Máximo de posiciones abiertas {limits.max_open_positions} alcanzado")
    if plan.risk.position_size <= 0:
        hard.append("Tamaño de posición nulo")

    risk_pct = per_trade_risk_pct(plan, snapshot.capital)
    over_risk = risk_pct > limits.max_risk_per_trade_pct
    soft = (
        f"Riesgo por trade {risk_pct:.2f}% supera {limits.max_risk_per_trade_pct}%",
    ) if over_risk else ()

    if hard:
        return GateVerdict(GATE_RISK, FAIL, tuple(hard) + soft)
    if over_risk:
        return GateVerdict(GATE_RISK, REWRITE, soft)
    return GateVerdict(GATE_RISK, PASS)


def correct_position_size(
    plan: TradePlan, rules: ValidationRules, capital: float
) -> Tuple[TradePlan, List[str]]:
    """Reducir el tamaño proporcionalmente hasta el riesgo máximo permitido."""
    max_allowed = rules.risk.max_risk_per_trade_pct / 100 * capital
    risk: RiskBlock = plan.risk
    if risk.max_risk_amount <= max_allowed or risk.max_risk_amount <= 0:
        return plan, []

    factor = max_allowed / risk.max_risk_amount
    size = int(math.floor(risk.position_size * factor))
    new_risk = dataclasses.replace(
        risk,
        position_size=size,
        max_risk_amount=size * plan.risk_per_unit,
    )
    freeze = get_instrument(plan.candidate.instrument).freeze_quantity
    execution = dataclasses.replace(
        plan.execution,
        quantity=size,
        slices=tuple(plan_order_slices(size, freeze)),
    )
    corrected = dataclasses.replace(plan, risk=new_risk, execution=execution)
    return corrected, [f"Posición reducida un {(1 - factor) * 100:.1f}%"]


# ════════════════════════════════════════════════════════════════
#  GATE 5: EVENTOS / SESIÓN
# ════════════════════════════════════════════════════════════════

def check_event_filter(plan: TradePlan) -> GateVerdict:
    status = plan.event_filter
    if status.status == "BLOCKED":
        return GateVerdict(GATE_EVENTS, BLOCKED, (f"Operativa bloqueada: {status.reason}",))
    if status.status == "CAUTION":
        return GateVerdict(GATE_EVENTS, PASS, warnings=(f"Precaución: {status.reason}",))
    return GateVerdict(GATE_EVENTS, PASS)


def run_all(plan: TradePlan, rules: ValidationRules, snapshot: RiskSnapshot) -> Tuple[GateVerdict, ...]:
    """Evaluar los cinco gates sin cortocircuito, en orden fijo."""
    return (
        check_timeframe_rr(plan, rules),
        check_option_executability(plan, rules),
        check_confluence(plan, rules),
        check_risk_limits(plan, rules, snapshot),
        check_event_filter(plan),
    )
