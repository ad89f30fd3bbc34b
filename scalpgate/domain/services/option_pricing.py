"""
ScalpGate – Domain Service: Option Pricing
============================================
Selección de strike y estimación simplificada de la pata de opción.

SELECCIÓN POR VOLATILIDAD (VIX):
  VIX < 12  → ATM   (volatilidad baja)
  VIX > 20  → ITM1  (más delta con volatilidad alta)
  resto     → OTM1  (más apalancamiento)

MODELO (simplificado, no Black-Scholes):
  delta   = clamp(0.5 + (spot/strike − 1)·2, 0.1, 0.9)   (put espejado)
  premium = max(0.05, intrínseco + √(tte/365) · iv · spot · 0.01)
  theta   = −premium · 0.05
"""

from __future__ import annotations

import math
from datetime import datetime

from scalpgate.domain.entities.signal import OptionLeg
from scalpgate.domain.services.cost_model import SlippageModel, assess_liquidity, estimate_costs
from scalpgate.domain.services.market_calendar import MarketCalendar
from scalpgate.domain.value_objects.instrument import Instrument

# Tick mínimo de prima en NSE/BSE
PREMIUM_TICK = 0.05


class OptionPricer:
    """Construye la OptionLeg de un candidato."""

    def __init__(
        self,
        calendar: MarketCalendar | None = None,
        slippage_model: SlippageModel | None = None,
    ) -> None:
        self._calendar = calendar or MarketCalendar()
        self._slippage = slippage_model or SlippageModel()

    @property
    def slippage_model(self) -> SlippageModel:
        return self._slippage

    @staticmethod
    def moneyness_for_vix(vix: float) -> str:
        if vix < 12:
            return "ATM"
        if vix > 20:
            return "ITM1"
        return "OTM1"

    @staticmethod
    def select_strike(instrument: Instrument, spot: float, bullish: bool, moneyness: str) -> int:
        step = instrument.strike_interval
        if moneyness == "ATM":
            return instrument.atm_strike(spot)
        if moneyness == "ITM1":
            if bullish:
                return int(math.floor((spot - step) / step) * step)
            return int(math.ceil((spot + step) / step) * step)
        # OTM1
        if bullish:
            return int(math.ceil((spot + step / 2) / step) * step)
        return int(math.floor((spot - step / 2) / step) * step)

    @staticmethod
    def delta(spot: float, strike: float, is_call: bool) -> float:
        ratio = spot / strike
        if is_call:
            return min(0.9, max(0.1, 0.5 + (ratio - 1) * 2))
        return max(-0.9, min(-0.1, -0.5 - (1 - ratio) * 2))

    @staticmethod
    def premium(spot: float, strike: float, is_call: bool, tte_days: float, iv: float) -> float:
        intrinsic = max(0.0, spot - strike) if is_call else max(0.0, strike - spot)
        time_value = math.sqrt(max(tte_days, 0.0) / 365) * max(iv, 0.0) * spot * 0.01
        return max(PREMIUM_TICK, intrinsic + time_value)

    def time_to_expiry_days(self, now: float) -> tuple[float, datetime]:
        """Días (fraccionarios, mínimo 1h) hasta el vencimiento semanal."""
        current = self._calendar.to_ist(now)
        expiry = self._calendar.next_weekly_expiry(current)
        days = (expiry - current).total_seconds() / 86400
        return max(days, 1 / 24), expiry

    def build_leg(
        self,
        instrument: Instrument,
        spot: float,
        bullish: bool,
        vix: float,
        now: float,
        quantity: int | None = None,
    ) -> OptionLeg:
        """Estimar la pata de opción (strike, prima, griegas, liquidez, costes)."""
        moneyness = self.moneyness_for_vix(vix)
        strike = self.select_strike(instrument, spot, bullish, moneyness)
        tte, expiry = self.time_to_expiry_days(now)

        premium = self.premium(spot, strike, bullish, tte, vix)
        liquidity = assess_liquidity(strike, instrument, spot)
        spread = premium * liquidity.spread_pct / 100
        order_type = "LIMIT" if liquidity.score > 80 else "MARKET"
        qty = quantity or instrument.lot_size
        slippage = self._slippage.estimate(instrument.symbol, qty, order_type, (spread, premium))
        costs = estimate_costs(premium, qty)

        return OptionLeg(
            strike=strike,
            side="CE" if bullish else "PE",
            expiry=expiry.strftime("%Y-%m-%d"),
            moneyness=moneyness,
            premium=premium,
            bid=premium - spread / 2,
            ask=premium + spread / 2,
            spread_pct=liquidity.spread_pct,
            iv=vix,
            delta=self.delta(spot, strike, bullish),
            theta=-premium * 0.05,
            liquidity_score=liquidity.score,
            execution_probability=min(95.0, liquidity.score + 10),
            order_type=order_type,
            slippage_estimate=slippage.estimate,
            cost_pct=costs.pct,
        )
