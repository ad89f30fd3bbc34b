"""
ScalpGate – Application Port: Market Data Provider
====================================================
Interfaz para obtener series OHLCV y cotizaciones.

Los use cases piden datos; la infraestructura decide si vienen del
feed en vivo o del generador sintético.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Tuple

from scalpgate.domain.entities.candle import Candle, Quote


class IMarketDataProvider(ABC):
    """
    Interfaz del Feed Adapter.

    IMPLEMENTACIONES:
    - FeedAdapter (Yahoo Finance + fallback sintético)
    """

    @abstractmethod
    async def get_latest_series(
        self,
        instrument: str,
        horizon: str,
        min_length: int = 100,
    ) -> Tuple[Candle, ...]:
        """
        Serie de velas ordenada por timestamp ASC.

        Solo lanza por errores de configuración (instrumento u
        horizonte desconocidos); los fallos de red caen a sintético.
        """

    @abstractmethod
    async def get_snapshot(self, instrument: str) -> Optional[Quote]:
        """Última cotización conocida, o None si no disponible."""

    @abstractmethod
    def enable_live(self) -> None:
        """Cambiar a modo live (vacía la caché)."""

    @abstractmethod
    def disable_live(self) -> None:
        """Cambiar a modo sintético (vacía la caché)."""

    @property
    @abstractmethod
    def is_live(self) -> bool:
        """True si el modo actual es live."""

    @abstractmethod
    def status(self) -> dict:
        """Estado del feed: modo, última actualización, caché, fallos."""
