"""
ScalpGate – Application Port: Event Publisher
===============================================
Interfaz para publicar eventos hacia consumidores.

Los use cases publican; la infraestructura decide CÓMO se entregan
(EventBus en memoria hoy, WebSocket aguas abajo).
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any


class IEventPublisher(ABC):
    """
    Interfaz de publicación por tópicos.

    IMPLEMENTACIONES:
    - EventBus (asyncio.Queue fan-out, drop-oldest)
    """

    @abstractmethod
    async def publish(self, topic: str, data: Any) -> None:
        """
        Publica un evento a un tópico.

        Args:
            topic: Nombre del tópico (e.g. "signal", "market_data")
            data: Evento de dominio o dict serializable
        """

    @abstractmethod
    async def subscribe(self, topic: str, consumer_name: str) -> asyncio.Queue:
        """Registra un consumidor y retorna su cola exclusiva."""
