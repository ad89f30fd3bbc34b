"""Distribución WebSocket."""
