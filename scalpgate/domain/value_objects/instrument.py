"""
ScalpGate – Value Objects: Instrument & Horizon
=================================================
Registro cerrado de instrumentos negociables y horizontes de vela.

Un símbolo u horizonte fuera del registro es un error de configuración
(fail fast), nunca una condición de runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict

from scalpgate.domain.exceptions.domain_errors import (
    UnsupportedHorizonError,
    UnsupportedInstrumentError,
)


@dataclass(frozen=True, slots=True)
class LiquidityProfile:
    """Perfil de liquidez del strike ATM de un instrumento."""

    atm_depth: float        # contratos en el top del libro
    atm_volume: float       # volumen diario del strike ATM
    atm_spread_pct: float   # spread bid/ask como % del mid


@dataclass(frozen=True, slots=True)
class Instrument:
    """Índice subyacente con sus parámetros de opciones."""

    symbol: str
    vendor_ticker: str
    strike_interval: int
    lot_size: int
    base_price: float
    liquidity: LiquidityProfile
    freeze_quantity: int = 1800

    def atm_strike(self, spot: float) -> int:
        return int(round(spot / self.strike_interval) * self.strike_interval)


class Horizon(str, Enum):
    """Tamaño del bucket de vela."""

    M1 = "1m"
    M5 = "5m"
    M15 = "15m"
    H1 = "1h"
    D1 = "1d"

    @property
    def minutes(self) -> int:
        return _HORIZON_MINUTES[self]

    @property
    def seconds(self) -> int:
        return self.minutes * 60

    @property
    def vendor_range(self) -> str:
        """Rango pedido al proveedor para obtener ≥100 velas."""
        return _VENDOR_RANGE[self]

    @property
    def higher(self) -> "Horizon":
        """Horizonte superior usado como sesgo de tendencia."""
        return Horizon.M5 if self is Horizon.M1 else Horizon.M15

    @classmethod
    def parse(cls, value: "str | Horizon") -> "Horizon":
        if isinstance(value, Horizon):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedHorizonError(str(value)) from None


_HORIZON_MINUTES = {
    Horizon.M1: 1,
    Horizon.M5: 5,
    Horizon.M15: 15,
    Horizon.H1: 60,
    Horizon.D1: 1440,
}

_VENDOR_RANGE = {
    Horizon.M1: "1d",
    Horizon.M5: "5d",
    Horizon.M15: "5d",
    Horizon.H1: "1mo",
    Horizon.D1: "1y",
}


INSTRUMENTS: Dict[str, Instrument] = {
    "NIFTY": Instrument(
        symbol="NIFTY",
        vendor_ticker="^NSEI",
        strike_interval=50,
        lot_size=75,
        base_price=21500.0,
        liquidity=LiquidityProfile(atm_depth=1800, atm_volume=250_000, atm_spread_pct=0.8),
    ),
    "BANKNIFTY": Instrument(
        symbol="BANKNIFTY",
        vendor_ticker="^NSEBANK",
        strike_interval=100,
        lot_size=35,
        base_price=46000.0,
        liquidity=LiquidityProfile(atm_depth=1200, atm_volume=180_000, atm_spread_pct=1.2),
        freeze_quantity=900,
    ),
    "FINNIFTY": Instrument(
        symbol="FINNIFTY",
        vendor_ticker="^CNXFIN",
        strike_interval=50,
        lot_size=65,
        base_price=20500.0,
        liquidity=LiquidityProfile(atm_depth=600, atm_volume=40_000, atm_spread_pct=1.6),
    ),
    "SENSEX": Instrument(
        symbol="SENSEX",
        vendor_ticker="^BSESN",
        strike_interval=100,
        lot_size=20,
        base_price=72000.0,
        liquidity=LiquidityProfile(atm_depth=500, atm_volume=30_000, atm_spread_pct=1.8),
        freeze_quantity=1000,
    ),
}


def get_instrument(symbol: str) -> Instrument:
    """Resolver símbolo → Instrument. Lanza UnsupportedInstrumentError."""
    try:
        return INSTRUMENTS[symbol.upper()]
    except (KeyError, AttributeError):
        raise UnsupportedInstrumentError(str(symbol)) from None
