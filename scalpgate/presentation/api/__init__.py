"""Rutas REST y WebSocket."""
