"""
ScalpGate – Domain Service: Trade Planner
===========================================
Convierte un CandidateSignal en un TradePlan: pata de opción, bloque
de riesgo en múltiplos de ATR, gestión y plan de ejecución estimado.

FÓRMULAS:
- stop_atr_multiple   = |entry − stop| / ATR
- target_atr_multiple = |target2 − entry| / ATR
- risk_reward         = target_distance / stop_distance
- riesgo por unidad   = stop_distance × |delta|
- position_size       = ⌊capital × sizing% / riesgo_unidad⌋ en lotes,
                        mínimo 1 lote
- max_risk_amount     = position_size × riesgo_unidad
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict

from scalpgate.domain.entities.signal import (
    CandidateSignal,
    ExecutionPlan,
    ManagementBlock,
    OptionLeg,
    RiskBlock,
)
from scalpgate.domain.services.cost_model import SLICE_DELAY_MS, plan_order_slices, protected_price
from scalpgate.domain.services.market_calendar import MarketCalendar
from scalpgate.domain.services.option_pricing import OptionPricer
from scalpgate.domain.value_objects.instrument import get_instrument
from scalpgate.domain.value_objects.validation import MarketContext, TradePlan

ATR_PERIOD = 14


@dataclass
class PlannerConfig:
    """Parámetros de dimensionado y gestión."""

    capital: float = 1_000_000.0
    sizing_risk_pct: float = 1.0
    max_hold_minutes: Dict[str, int] = field(
        default_factory=lambda: {"1m": 12, "5m": 35, "15m": 75}
    )
    default_hold_minutes: int = 60
    trailing_trigger_pct: float = 60.0


class TradePlanner:
    """Construye TradePlans a partir de candidatos."""

    def __init__(
        self,
        config: PlannerConfig | None = None,
        pricer: OptionPricer | None = None,
        calendar: MarketCalendar | None = None,
    ) -> None:
        self._config = config or PlannerConfig()
        self._calendar = calendar or MarketCalendar()
        self._pricer = pricer or OptionPricer(self._calendar)

    @property
    def config(self) -> PlannerConfig:
        return self._config

    def build(self, candidate: CandidateSignal, market: MarketContext) -> TradePlan:
        instrument = get_instrument(candidate.instrument)
        spot = market.spot or candidate.entry_price

        option = self._pricer.build_leg(
            instrument, spot, candidate.is_bullish, market.vix, market.now,
        )

        # ── 1. Bloque de riesgo ──
        atr = candidate.atr if candidate.atr > 0 else candidate.entry_price * 0.001
        stop_distance = abs(candidate.entry_price - candidate.stop_loss)
        target_distance = abs(candidate.target2 - candidate.entry_price)
        risk_per_unit = stop_distance * abs(option.delta)
        position_size = self._position_size(risk_per_unit, instrument.lot_size)
        risk = RiskBlock(
            atr_value=atr,
            atr_period=ATR_PERIOD,
            stop_distance=stop_distance,
            stop_atr_multiple=stop_distance / atr,
            target_distance=target_distance,
            target_atr_multiple=target_distance / atr,
            risk_reward=round(target_distance / stop_distance, 6) if stop_distance else 0.0,
            position_size=position_size,
            max_risk_amount=position_size * risk_per_unit,
        )

        # ── 2. Gestión ──
        management = ManagementBlock(
            max_hold_minutes=self._config.max_hold_minutes.get(
                candidate.horizon, self._config.default_hold_minutes
            ),
            trailing_method="EMA",
            trailing_trigger_pct=self._config.trailing_trigger_pct,
            invalidation=(
                "close_below_ema21" if candidate.is_bullish else "close_above_ema21",
                "htf_trend_reversal",
                "volume_below_50pct_of_average",
            ),
        )

        return TradePlan(
            candidate=candidate,
            option=option,
            risk=risk,
            management=management,
            execution=self.execution_plan(option, position_size, instrument.freeze_quantity),
            event_filter=self._calendar.event_filter(market.now, market.events or None),
            session=self._calendar.session(market.now),
            risk_per_unit=risk_per_unit,
        )

    def _position_size(self, risk_per_unit: float, lot_size: int) -> int:
        if risk_per_unit <= 0:
            return 0
        budget = self._config.capital * self._config.sizing_risk_pct / 100
        lots = math.floor(budget / risk_per_unit / lot_size)
        return max(1, lots) * lot_size

    @staticmethod
    def execution_plan(option: OptionLeg, quantity: int, freeze_quantity: int) -> ExecutionPlan:
        return ExecutionPlan(
            quantity=quantity,
            slices=tuple(plan_order_slices(quantity, freeze_quantity)),
            slice_delay_ms=SLICE_DELAY_MS,
            protected_price=protected_price("BUY", option.bid, option.ask),
        )
