"""
ScalpGate – WebSocket Manager (fan-out por instrumento)
=========================================================
Gestiona conexiones WebSocket y reparte los eventos del EventBus a las
salas de cada instrumento.

ARQUITECTURA:
  EventBus ──(signal)──────▸ WSManager._broadcast_loop()
  EventBus ──(market_data)─▸ WSManager._broadcast_loop()
  EventBus ──(feed_update)─▸ WSManager._broadcast_loop()
       │
       ▼
  sala "NIFTY" → [cliente 1, cliente 3]
  sala "*"     → [cliente 2]            (todos los instrumentos)

PROTOCOLO DE CLIENTE:
  {"subscribe": "NIFTY"}    → unirse a la sala NIFTY ("*" = todas)
  {"unsubscribe": "NIFTY"}  → abandonar la sala

Un cliente lento o caído se elimina sin afectar a los demás: cada envío
usa asyncio.wait_for con timeout.
"""

from __future__ import annotations

import asyncio
import json
from typing import Dict, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect

from scalpgate.domain.events.domain_events import (
    TOPIC_FEED_UPDATE,
    TOPIC_MARKET_DATA,
    TOPIC_SIGNAL,
)
from scalpgate.infrastructure.event_bus import EventBus
from scalpgate.shared.logging.logger import get_logger

logger = get_logger("ws_manager")

ALL_ROOM = "*"
SEND_TIMEOUT = 5.0

_BROADCAST_TOPICS = (
    (TOPIC_SIGNAL, "signal"),
    (TOPIC_MARKET_DATA, "market_data"),
    (TOPIC_FEED_UPDATE, "feed_update"),
)


class WebSocketManager:
    """Conexiones de clientes y broadcast por salas de instrumento."""

    def __init__(self, event_bus: EventBus) -> None:
        self._event_bus = event_bus
        self._clients: Set[WebSocket] = set()
        self._rooms: Dict[str, Set[WebSocket]] = {}
        self._broadcast_tasks: list[asyncio.Task] = []
        self._sent = 0

    async def start(self) -> None:
        """Lanzar un loop de broadcast por tópico."""
        for topic, event_type in _BROADCAST_TOPICS:
            queue = await self._event_bus.subscribe(topic, f"ws_broadcast_{topic}")
            self._broadcast_tasks.append(asyncio.create_task(
                self._broadcast_loop(queue, event_type),
                name=f"ws-broadcast-{topic}",
            ))
        logger.info(
            "WebSocketManager iniciado – broadcast loops para %s",
            ", ".join(t for t, _ in _BROADCAST_TOPICS),
        )

    async def stop(self) -> None:
        """Cancelar broadcast y cerrar todos los clientes."""
        for task in self._broadcast_tasks:
            task.cancel()
        self._broadcast_tasks = []

        for ws in list(self._clients):
            try:
                await ws.close()
            except (RuntimeError, WebSocketDisconnect) as e:
                logger.debug("Cliente WS ya cerrado: %s", e)
        self._clients.clear()
        self._rooms.clear()
        logger.info("WebSocketManager detenido")

    # ════════════════════════════════════════════════════════════════
    #  CLIENTES Y SALAS
    # ════════════════════════════════════════════════════════════════

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)
        logger.info("Cliente WS conectado. Total: %d", len(self._clients))

    def disconnect(self, websocket: WebSocket) -> None:
        self._clients.discard(websocket)
        for members in self._rooms.values():
            members.discard(websocket)
        logger.info("Cliente WS desconectado. Total: %d", len(self._clients))

    def join(self, websocket: WebSocket, instrument: str) -> None:
        self._rooms.setdefault(instrument.upper(), set()).add(websocket)

    def leave(self, websocket: WebSocket, instrument: str) -> None:
        members = self._rooms.get(instrument.upper())
        if members is not None:
            members.discard(websocket)

    async def handle_message(self, websocket: WebSocket, raw: str) -> Optional[dict]:
        """
        Procesar un mensaje de control del cliente.
        Retorna el ack enviado, o None si el mensaje no es válido.
        """
        try:
            message = json.loads(raw)
        except ValueError:
            logger.debug("Mensaje WS no JSON: %s", raw[:100])
            return None
        if not isinstance(message, dict):
            return None

        ack: Optional[dict] = None
        if isinstance(message.get("subscribe"), str):
            room = message["subscribe"]
            self.join(websocket, room)
            ack = {"type": "subscribed", "instrument": room.upper()}
        elif isinstance(message.get("unsubscribe"), str):
            room = message["unsubscribe"]
            self.leave(websocket, room)
            ack = {"type": "unsubscribed", "instrument": room.upper()}

        if ack is not None:
            await websocket.send_text(json.dumps(ack))
        return ack

    def recipients(self, instrument: Optional[str]) -> Set[WebSocket]:
        targets = set(self._rooms.get(ALL_ROOM, ()))
        if instrument:
            targets |= self._rooms.get(instrument.upper(), set())
        return targets & self._clients

    # ════════════════════════════════════════════════════════════════
    #  BROADCAST
    # ════════════════════════════════════════════════════════════════

    async def _broadcast_loop(self, queue: asyncio.Queue, event_type: str) -> None:
        """Consumir eventos de la cola y enviarlos a la sala del instrumento."""
        try:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue
                await self.broadcast(event, event_type)
        except asyncio.CancelledError:
            pass

    async def broadcast(self, event, event_type: str) -> int:
        """Enviar un evento a los suscriptores de su instrumento. Retorna envíos OK."""
        instrument = getattr(event, "instrument", None)
        targets = self.recipients(instrument)
        if not targets:
            return 0

        data = event.to_dict() if hasattr(event, "to_dict") else event
        payload = json.dumps({"type": event_type, "data": data}, default=str)

        disconnected: list[WebSocket] = []
        await asyncio.gather(*(self._safe_send(ws, payload, disconnected) for ws in targets))
        for ws in disconnected:
            self.disconnect(ws)
        sent = len(targets) - len(disconnected)
        self._sent += sent
        return sent

    async def _safe_send(self, ws: WebSocket, payload: str, disconnected: list[WebSocket]) -> None:
        """Enviar con timeout; si falla, marcar el cliente para limpieza."""
        try:
            await asyncio.wait_for(ws.send_text(payload), timeout=SEND_TIMEOUT)
        except (WebSocketDisconnect, asyncio.TimeoutError, RuntimeError, ConnectionError):
            disconnected.append(ws)

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def stats(self) -> dict:
        return {
            "clients": len(self._clients),
            "rooms": {room: len(members) for room, members in self._rooms.items()},
            "sent": self._sent,
        }
