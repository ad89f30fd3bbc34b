"""Domain exceptions."""
from scalpgate.domain.exceptions.domain_errors import (
    DomainError,
    InsufficientDataError,
    UnsupportedInstrumentError,
    UnsupportedHorizonError,
    RiskManagementError,
    ValidationError,
)

__all__ = [
    "DomainError",
    "InsufficientDataError",
    "UnsupportedInstrumentError",
    "UnsupportedHorizonError",
    "RiskManagementError",
    "ValidationError",
]
