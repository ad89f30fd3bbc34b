"""
ScalpGate – Main Application Entry Point
==========================================
Orquesta Feed Adapter + Indicator Engine + Candidate Generator +
Validation Gate Pipeline + distribución WebSocket.

ARRANQUE:
  1. Configurar logging
  2. Crear el Container (todas las instancias se construyen desde Settings)
  3. FastAPI lifespan startup:
     a. Inyectar dependencias en las rutas
     b. Iniciar WebSocketManager (broadcast por instrumento)
     c. Iniciar SignalScheduler (tick corto + tick largo)
  4. FastAPI lifespan shutdown: detener en orden inverso

FLUJO DE DATOS:
  FeedAdapter (Yahoo | sintético) → IndicatorStateManager → IndicatorSet
       → EventBus(market_data) → WebSocketManager → clientes
  CandidateGenerator → CandidateSignal → GatePipeline → FinalSignal
       → EventBus(signal) → WebSocketManager → sala del instrumento

  uvicorn scalpgate.main:app --host 0.0.0.0 --port 8888
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from scalpgate.container import init_container
from scalpgate.presentation.api.routes import init_routes, router
from scalpgate.shared.config.settings import settings
from scalpgate.shared.logging.logger import get_logger, setup_logging

# ─── Logging ────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("main")

# ─── Contenedor de Dependencias ─────────────────────────────────────────
container = init_container(settings)


# ─── FastAPI Lifespan ───────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown de los componentes de larga duración."""
    s = container.settings
    logger.info("=" * 60)
    logger.info("  ScalpGate - Validation Gate Pipeline")
    logger.info("  Instrumentos: %s", ", ".join(s.symbols))
    logger.info("  Horizontes: %s", ", ".join(s.horizons))
    logger.info("  Feed: %s (timeout %.0fs)", "live" if s.feed_live_enabled else "synthetic",
                s.feed_timeout_seconds)
    logger.info("  Confluencia: %s (mín. %d reglas), targets %.1fR / %.1fR",
                s.confluence_strictness, s.confluence_min_rules,
                s.target1_r_multiple, s.target2_r_multiple)
    logger.info("  Riesgo: capital %.0f, máx %.1f%%/trade, %.1f%%/día, %d trades, %d posiciones",
                s.capital, s.max_risk_per_trade_pct, s.max_daily_loss_pct,
                s.max_trades_per_day, s.max_open_positions)
    logger.info("=" * 60)

    init_routes(
        container.ws_manager,
        container.feed,
        container.scheduler,
        container.risk_store,
        container.calendar,
        indicator_state=container.indicator_state,
    )

    await container.ws_manager.start()
    await container.scheduler.start()

    logger.info("✓ Todos los componentes iniciados correctamente")

    yield

    # ── SHUTDOWN ──
    logger.info("Iniciando shutdown...")
    await container.scheduler.stop()
    await container.ws_manager.stop()
    await container.feed.close()
    await container.event_bus.unsubscribe_all()
    logger.info("✓ Shutdown completo")


# ─── FastAPI App ────────────────────────────────────────────────────────

app = FastAPI(
    title="ScalpGate",
    description="Señales de scalping en opciones de índices indios con validación por gates",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


def run() -> None:
    """Entry point de consola: `scalpgate`."""
    import uvicorn

    uvicorn.run(
        "scalpgate.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=None,
    )


if __name__ == "__main__":
    run()
