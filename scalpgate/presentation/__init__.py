"""
ScalpGate – Presentation Layer
================================
API HTTP y WebSocket.

Este módulo contiene:
- api/: FastAPI routes
- websocket/: WebSocketManager (salas por instrumento)
"""

from scalpgate.presentation.api.routes import router, init_routes
from scalpgate.presentation.websocket.websocket_manager import WebSocketManager

__all__ = [
    "router",
    "init_routes",
    "WebSocketManager",
]
