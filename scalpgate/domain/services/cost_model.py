"""
ScalpGate – Domain Service: Quality & Cost Model
==================================================
Estimaciones de calidad de ejecución para una pata de opción hipotética.
No ejecuta nada: sus cifras solo alimentan el gate de ejecutabilidad y
la selección de strike.

FUNCIONES:
- estimate_costs     → STT, fees de exchange/regulador, GST, brokerage
- assess_liquidity   → spread / profundidad / volumen → score 0-100
- SlippageModel      → estimación + realimentación acotada
- plan_order_slices  → troceo por freeze limit
- protected_price    → precio límite protegido alrededor del mid
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Tuple

from scalpgate.domain.value_objects.instrument import Instrument

# ─── Tarifas (en % del turnover) ──────────────────────────────────
STT_RATE = 0.0625
EXCHANGE_FEE_RATE = 0.00345
REGULATORY_FEE_RATE = 0.0001
GST_RATE = 0.18
BROKERAGE_FLAT = 20.0

# ─── Umbrales de liquidez ─────────────────────────────────────────
MIN_DEPTH = 500
MAX_SPREAD_PCT = 2.0
MIN_VOLUME = 1000

# ─── Troceo de órdenes ────────────────────────────────────────────
SLICE_SIZE = 900
SLICE_DELAY_MS = 100
MAX_SLIPPAGE_PCT = 0.5


@dataclass(frozen=True, slots=True)
class CostBreakdown:
    """Costes de una operación sobre turnover = premium × quantity."""

    turnover: float
    levies: float
    exchange_fee: float
    regulatory_fee: float
    tax: float
    brokerage: float
    total: float
    pct: float
    net_premium: float

    def to_dict(self) -> dict:
        return {
            "turnover": round(self.turnover, 2),
            "levies": round(self.levies, 2),
            "exchange_fee": round(self.exchange_fee, 2),
            "regulatory_fee": round(self.regulatory_fee, 2),
            "tax": round(self.tax, 2),
            "brokerage": round(self.brokerage, 2),
            "total": round(self.total, 2),
            "pct": round(self.pct, 3),
            "net_premium": round(self.net_premium, 2),
        }


def estimate_costs(premium: float, quantity: int = 50) -> CostBreakdown:
    """
    Costes con tarifas fijas sobre el turnover nocional.

    Los valores NO se redondean: total / turnover == pct / 100.
    """
    if premium <= 0 or quantity <= 0:
        raise ValueError("premium y quantity deben ser positivos")

    turnover = premium * quantity
    levies = turnover * STT_RATE / 100
    exchange_fee = turnover * EXCHANGE_FEE_RATE / 100
    regulatory_fee = turnover * REGULATORY_FEE_RATE / 100
    tax = (exchange_fee + regulatory_fee) * GST_RATE
    total = levies + exchange_fee + regulatory_fee + tax + BROKERAGE_FLAT
    return CostBreakdown(
        turnover=turnover,
        levies=levies,
        exchange_fee=exchange_fee,
        regulatory_fee=regulatory_fee,
        tax=tax,
        brokerage=BROKERAGE_FLAT,
        total=total,
        pct=total / turnover * 100,
        net_premium=premium - total / quantity,
    )


@dataclass(frozen=True, slots=True)
class LiquidityAssessment:
    strike: int
    steps_from_atm: int
    spread_pct: float
    depth: float
    volume: float
    score: float
    label: str
    passes_filter: bool

    def to_dict(self) -> dict:
        return {
            "strike": self.strike,
            "steps_from_atm": self.steps_from_atm,
            "spread_pct": round(self.spread_pct, 3),
            "depth": round(self.depth),
            "volume": round(self.volume),
            "score": round(self.score, 1),
            "label": self.label,
            "passes_filter": self.passes_filter,
        }


def assess_liquidity(strike: int, instrument: Instrument, spot: float) -> LiquidityAssessment:
    """
    Modelo determinista de liquidez del strike.

    La liquidez decae con la distancia al ATM (en pasos de strike):
      spread% = spread_atm × (1 + 0.5·pasos)
      depth   = depth_atm × 0.7^pasos
      volume  = volume_atm × 0.6^pasos

    Sub-scores: spread ≤ 2% → 100 (si no 50); depth ≥ 1.6×500 → 100,
    ≥ 500 → 75, si no 50; volume ≥ 1000 → 100 (si no 50). Score = media.
    """
    profile = instrument.liquidity
    steps = abs(strike - instrument.atm_strike(spot)) // instrument.strike_interval

    spread_pct = profile.atm_spread_pct * (1 + 0.5 * steps)
    depth = profile.atm_depth * (0.7 ** steps)
    volume = profile.atm_volume * (0.6 ** steps)

    spread_score = 100 if spread_pct <= MAX_SPREAD_PCT else 50
    if depth >= MIN_DEPTH * 1.6:
        depth_score = 100
    elif depth >= MIN_DEPTH:
        depth_score = 75
    else:
        depth_score = 50
    volume_score = 100 if volume >= MIN_VOLUME else 50

    score = (spread_score + depth_score + volume_score) / 3
    if score >= 80:
        label = "EXCELLENT"
    elif score >= 60:
        label = "GOOD"
    else:
        label = "POOR"

    return LiquidityAssessment(
        strike=strike,
        steps_from_atm=int(steps),
        spread_pct=spread_pct,
        depth=depth,
        volume=volume,
        score=score,
        label=label,
        passes_filter=score >= 60,
    )


@dataclass(frozen=True, slots=True)
class SlippageEstimate:
    estimate: float
    base: float
    quantity: float
    depth: float
    order_type: float

    @property
    def breakdown(self) -> dict:
        return {
            "base": self.base,
            "quantity": self.quantity,
            "depth": self.depth,
            "order_type": self.order_type,
        }

    def to_dict(self) -> dict:
        return {"estimate": self.estimate, "breakdown": self.breakdown}


class SlippageModel:
    """
    Modelo de slippage con realimentación.

    estimate = (base + ln(qty/100)·0.0005 + spread/mid·0.5) × k
      k = 1.2 (MARKET) | 0.8 (LIMIT)

    update() acerca `market_impact` al slippage observado con tasa
    de aprendizaje acotada y lo mantiene en [0, MAX_IMPACT].
    """

    LEARNING_RATE = 0.1
    MAX_IMPACT = 0.01

    def __init__(self, market_impact: float = 0.001) -> None:
        self.market_impact = market_impact
        self.liquidity_factor = 1.0
        self.volatility_factor = 1.0
        self.updates = 0

    def estimate(
        self,
        instrument: str,
        quantity: int,
        order_type: str,
        depth: Tuple[float, float],
    ) -> SlippageEstimate:
        """
        Args:
            instrument: símbolo (informativo)
            quantity: unidades
            order_type: "MARKET" | "LIMIT"
            depth: (spread, mid_price) del libro
        """
        spread, mid = depth
        quantity_impact = math.log(max(quantity, 1) / 100) * 0.0005
        depth_impact = spread / mid * 0.5 if mid > 0 else 0.0
        multiplier = 1.2 if order_type.upper() == "MARKET" else 0.8
        total = (self.market_impact + quantity_impact + depth_impact) * multiplier
        return SlippageEstimate(
            estimate=max(0.0, total),
            base=self.market_impact,
            quantity=quantity_impact,
            depth=depth_impact,
            order_type=multiplier,
        )

    def update(
        self,
        actual: float,
        predicted: float,
        volatility: float = 0.0,
        liquidity: float = 1.0,
    ) -> float:
        """Realimentación con el slippage observado. Retorna el nuevo impacto base."""
        error = actual - predicted
        step = error * self.LEARNING_RATE
        self.market_impact = min(self.MAX_IMPACT, max(0.0, self.market_impact + step * 0.1))
        if volatility > 0.02:
            self.volatility_factor += step * 0.05
        if liquidity < 0.5:
            self.liquidity_factor += step * 0.05
        self.updates += 1
        return self.market_impact

    def to_dict(self) -> dict:
        return {
            "market_impact": self.market_impact,
            "liquidity_factor": self.liquidity_factor,
            "volatility_factor": self.volatility_factor,
            "updates": self.updates,
        }


def plan_order_slices(quantity: int, freeze_limit: int = 1800, slice_size: int = SLICE_SIZE) -> List[int]:
    """Trocear una orden que supera el freeze limit en slices ≤ slice_size."""
    if quantity <= 0:
        return []
    if quantity <= freeze_limit:
        return [quantity]
    full, rest = divmod(quantity, slice_size)
    return [slice_size] * full + ([rest] if rest else [])


def protected_price(
    side: str,
    bid: float,
    ask: float,
    max_slippage_pct: float = MAX_SLIPPAGE_PCT,
) -> float:
    """Precio límite protegido: ask + margen (compra) o bid − margen (venta)."""
    mid = (bid + ask) / 2
    margin = mid * max_slippage_pct / 100
    if side.upper() == "BUY":
        return ask + margin
    return max(0.0, bid - margin)
