"""Domain entities."""
from scalpgate.domain.entities.candle import Candle, Quote, validate_series
from scalpgate.domain.entities.signal import (
    CandidateSignal,
    ExecutionPlan,
    FinalSignal,
    ManagementBlock,
    OptionLeg,
    RiskBlock,
)

__all__ = [
    "Candle",
    "Quote",
    "validate_series",
    "CandidateSignal",
    "ExecutionPlan",
    "FinalSignal",
    "ManagementBlock",
    "OptionLeg",
    "RiskBlock",
]
