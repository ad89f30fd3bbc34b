"""
ScalpGate – Domain Layer
==========================
Núcleo puro del sistema. CERO dependencias externas.

Este módulo contiene:
- entities/: Candle, Quote, CandidateSignal, FinalSignal
- value_objects/: Instrument, Horizon, IndicatorSet, tipos de validación
- services/: Indicadores, reglas de confluencia, gates, modelo de costes
- events/: Eventos de dominio
- exceptions/: Excepciones de dominio

REGLA DE DEPENDENCIA:
Este módulo NO puede importar de:
- infrastructure/
- presentation/
- application/
- Frameworks externos (FastAPI, httpx, numpy, etc.)
"""

from scalpgate.domain.entities.candle import Candle, Quote
from scalpgate.domain.entities.signal import CandidateSignal, FinalSignal

__all__ = [
    "Candle",
    "Quote",
    "CandidateSignal",
    "FinalSignal",
]
