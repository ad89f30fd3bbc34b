"""
ScalpGate – Infrastructure Layer
==================================
Implementaciones concretas de los ports de application/.

Este módulo contiene:
- feed/: Yahoo Finance (httpx), generador sintético (numpy), caché
- event_bus.py: fan-out asyncio.Queue con drop-oldest

Puede importar de:
- domain/ (entidades, servicios)
- application/ (ports)
- shared/ (config, logging)
"""
