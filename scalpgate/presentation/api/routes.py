"""
ScalpGate – API Routes (FastAPI)
==================================
Superficie operativa del servicio.

Endpoints disponibles:
  WS   /ws/signals               → fan-out por instrumento ({"subscribe": "NIFTY"})
  GET  /api/health               → health check
  GET  /api/status               → feed + mercado + scheduler
  GET  /api/risk                 → contadores del RiskStateStore
  POST /api/risk/emergency-stop  → activar parada de emergencia
  POST /api/risk/resume          → desactivar parada de emergencia
  POST /api/feed/live            → activar/desactivar feed en vivo
  GET  /api/signals/recent       → últimas señales aceptadas
  GET  /api/market/status        → sesión IST, ventana líquida, filtro de eventos
"""

from __future__ import annotations

import time
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from scalpgate.domain.exceptions.domain_errors import RiskManagementError
from scalpgate.shared.logging.logger import get_logger

logger = get_logger("api.routes")

router = APIRouter()

# Referencias a componentes inyectados desde main.py
_ws_manager = None
_feed = None
_scheduler = None
_risk_store = None
_calendar = None
_indicator_state = None


class EmergencyStopRequest(BaseModel):
    """Body para activar la parada de emergencia."""
    reason: str = Field(default="manual", max_length=200)


class FeedModeRequest(BaseModel):
    """Body para cambiar el modo del feed."""
    enabled: bool


def init_routes(
    ws_manager,
    feed,
    scheduler,
    risk_store,
    calendar,
    indicator_state=None,
) -> None:
    """Inyectar dependencias desde main.py al arrancar."""
    global _ws_manager, _feed, _scheduler, _risk_store, _calendar, _indicator_state
    _ws_manager = ws_manager
    _feed = feed
    _scheduler = scheduler
    _risk_store = risk_store
    _calendar = calendar
    _indicator_state = indicator_state


def _require(component, name: str):
    if component is None:
        raise HTTPException(status_code=503, detail=f"{name} no inicializado")
    return component


# ─── WebSocket endpoint ─────────────────────────────────────────────────

@router.websocket("/ws/signals")
async def signal_stream(websocket: WebSocket) -> None:
    """
    El cliente se une a salas de instrumento enviando
    {"subscribe": "NIFTY"}; el broadcast lo hace WebSocketManager.
    """
    if _ws_manager is None:
        await websocket.close(code=1011, reason="Server not ready")
        return

    await _ws_manager.connect(websocket)
    try:
        while True:
            try:
                data = await websocket.receive_text()
            except WebSocketDisconnect:
                break
            await _ws_manager.handle_message(websocket, data)
    finally:
        _ws_manager.disconnect(websocket)


# ─── REST: estado ───────────────────────────────────────────────────────

@router.get("/api/health")
async def health_check() -> dict:
    """Health check para monitoreo."""
    return {"status": "ok", "service": "scalpgate"}


@router.get("/api/status")
async def system_status() -> dict:
    """Estado completo: feed, mercado, scheduler y WebSocket."""
    feed = _require(_feed, "feed")
    scheduler = _require(_scheduler, "scheduler")
    calendar = _require(_calendar, "calendar")
    return {
        "feed": feed.status(),
        "market": calendar.status().to_dict(),
        "scheduler": scheduler.stats,
        "websocket": _ws_manager.stats if _ws_manager is not None else None,
        "indicators": _indicator_state.snapshot() if _indicator_state is not None else None,
    }


@router.get("/api/market/status")
async def market_status() -> dict:
    """Sesión IST, ventana líquida y filtro de eventos del instante actual."""
    calendar = _require(_calendar, "calendar")
    now = time.time()
    return {
        **calendar.status(now).to_dict(),
        "event_filter": calendar.event_filter(now).to_dict(),
        "upcoming_events": [e.to_dict() for e in calendar.upcoming_events(now)],
        "next_expiry": calendar.next_weekly_expiry(now).isoformat(),
    }


# ─── REST: riesgo ───────────────────────────────────────────────────────

@router.get("/api/risk")
async def risk_metrics() -> dict:
    risk_store = _require(_risk_store, "risk_store")
    return risk_store.metrics()


@router.post("/api/risk/emergency-stop")
async def emergency_stop(body: EmergencyStopRequest) -> dict:
    risk_store = _require(_risk_store, "risk_store")
    risk_store.emergency_stop(body.reason)
    return {"emergency_stop": True, "reason": body.reason}


@router.post("/api/risk/resume")
async def resume_trading() -> dict:
    risk_store = _require(_risk_store, "risk_store")
    try:
        risk_store.resume()
    except RiskManagementError as e:
        raise HTTPException(status_code=409, detail=e.to_dict()) from e
    return {"emergency_stop": False}


# ─── REST: feed ─────────────────────────────────────────────────────────

@router.post("/api/feed/live")
async def set_feed_mode(body: FeedModeRequest) -> dict:
    feed = _require(_feed, "feed")
    if body.enabled:
        feed.enable_live()
    else:
        feed.disable_live()
    if _indicator_state is not None:
        _indicator_state.reset()
    return feed.status()


# ─── REST: señales ──────────────────────────────────────────────────────

@router.get("/api/signals/recent")
async def recent_signals(
    instrument: Optional[str] = Query(default=None),
    count: int = Query(default=20, ge=1, le=200),
) -> dict:
    scheduler = _require(_scheduler, "scheduler")
    signals = scheduler.recent_signals(instrument.upper() if instrument else None, count)
    return {
        "count": len(signals),
        "signals": [s.to_dict() for s in signals],
    }
