"""Domain value objects."""
from scalpgate.domain.value_objects.instrument import (
    INSTRUMENTS,
    Horizon,
    Instrument,
    LiquidityProfile,
    get_instrument,
)
from scalpgate.domain.value_objects.indicator_set import IndicatorSet, PivotLevels, PsarState, Series

__all__ = [
    "INSTRUMENTS",
    "Horizon",
    "Instrument",
    "LiquidityProfile",
    "get_instrument",
    "IndicatorSet",
    "PivotLevels",
    "PsarState",
    "Series",
]
