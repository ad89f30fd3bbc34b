"""
ScalpGate – Domain Exceptions
===============================
Excepciones específicas del dominio de negocio.

Estas excepciones capturan errores de lógica de negocio o de
configuración, NO fallos transitorios de red (esos se absorben en
infrastructure con fallback a datos sintéticos).

Un candidato rechazado por los gates NO es una excepción: es un
ValidationResult con decisión REJECTED.

JERARQUÍA:
    DomainError (base)
    ├── InsufficientDataError        → "not ready", el caller salta el ciclo
    ├── UnsupportedInstrumentError   → error de configuración (fail fast)
    ├── UnsupportedHorizonError      → error de configuración (fail fast)
    ├── RiskManagementError
    └── ValidationError              → serie de velas mal formada
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Excepción base para errores de dominio."""

    def __init__(self, message: str, code: str = "DOMAIN_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
        }


class InsufficientDataError(DomainError):
    """Error cuando no hay suficientes datos para un cálculo."""

    def __init__(self, message: str, required: int = None, available: int = None):
        super().__init__(message, code="INSUFFICIENT_DATA")
        self.required = required
        self.available = available

    def to_dict(self) -> dict:
        base = super().to_dict()
        base.update({"required": self.required, "available": self.available})
        return base


class UnsupportedInstrumentError(DomainError):
    """Instrumento no registrado. Indica un defecto de configuración."""

    def __init__(self, symbol: str):
        super().__init__(f"Instrumento no soportado: {symbol!r}", code="UNSUPPORTED_INSTRUMENT")
        self.symbol = symbol


class UnsupportedHorizonError(DomainError):
    """Horizonte de vela no soportado. Indica un defecto de configuración."""

    def __init__(self, horizon: str):
        super().__init__(f"Horizonte no soportado: {horizon!r}", code="UNSUPPORTED_HORIZON")
        self.horizon = horizon


class RiskManagementError(DomainError):
    """Error cuando se viola una regla de gestión de riesgo."""

    def __init__(self, message: str, rule: str = None):
        super().__init__(message, code="RISK_VIOLATION")
        self.rule = rule


class ValidationError(DomainError):
    """Error de validación general de datos de dominio."""

    def __init__(self, message: str, field: str = None, value: Any = None):
        super().__init__(message, code="VALIDATION_ERROR")
        self.field = field
        self.value = value
