"""
ScalpGate – Settings (Pydantic BaseSettings)
=============================================
Configuración centralizada cargada desde variables de entorno / .env.
Se usa pydantic-settings para validación estricta al arranque.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List


class Settings(BaseSettings):
    # ─── Feed (Yahoo Finance / sintético) ───────────────────────────────
    feed_live_enabled: bool = Field(
        default=False, description="Arrancar en modo live (Yahoo) en vez de sintético",
    )
    feed_base_url: str = Field(
        default="https://query1.finance.yahoo.com",
        description="Endpoint base del chart API de Yahoo Finance",
    )
    feed_timeout_seconds: float = Field(
        default=10.0, description="Timeout fijo por request al proveedor",
    )
    feed_user_agent: str = Field(
        default="Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36",
        description="User-Agent enviado al proveedor",
    )
    feed_quote_ttl_seconds: float = Field(
        default=5.0, description="TTL de cache para cotizaciones (segundos)",
    )
    feed_series_ttl_seconds: float = Field(
        default=300.0, description="TTL de cache para series históricas (segundos)",
    )
    feed_min_series_length: int = Field(
        default=100, description="Velas mínimas exigidas a una serie live",
    )
    feed_seed: int | None = Field(
        default=None, description="Semilla del generador sintético (None = aleatoria)",
    )

    # Instrumentos y horizontes a seguir
    symbols: List[str] = Field(
        default=["NIFTY", "BANKNIFTY"],
        description="Instrumentos a procesar en cada tick",
    )
    horizons: List[str] = Field(
        default=["1m", "5m", "15m"],
        description="Horizontes de vela procesados por instrumento",
    )

    # ─── Scheduler ──────────────────────────────────────────────────────
    short_tick_seconds: float = Field(
        default=1.0, description="Periodo del tick corto (feed + indicadores)",
    )
    long_tick_seconds: float = Field(
        default=60.0, description="Periodo del tick largo (candidatos + validación)",
    )
    liquid_windows_only: bool = Field(
        default=False,
        description=(
            "Generar candidatos solo en ventanas líquidas. Con False el tick largo "
            "corre toda la sesión y los gates de sesión (blackouts, multiplicador "
            "fuera de ventana líquida) deciden"
        ),
    )

    # ─── Candidate Generator ────────────────────────────────────────────
    confluence_strictness: str = Field(
        default="standard",
        description="permissive | standard | strict",
    )
    confluence_min_rules: int = Field(
        default=3, description="Reglas mínimas en modo standard",
    )
    target1_r_multiple: float = Field(default=1.0, description="Target 1 en múltiplos de R")
    target2_r_multiple: float = Field(default=1.5, description="Target 2 en múltiplos de R")
    max_signals_per_hour: int = Field(
        default=10, description="Señales máximas por instrumento/horizonte por hora",
    )
    max_signals_per_day: int = Field(
        default=50, description="Señales máximas por instrumento/horizonte por día",
    )

    # ─── Riesgo / Gates ─────────────────────────────────────────────────
    capital: float = Field(default=1_000_000.0, description="Capital de referencia (INR)")
    sizing_risk_pct: float = Field(
        default=1.0, description="Riesgo objetivo por trade para dimensionar (% capital)",
    )
    max_risk_per_trade_pct: float = Field(default=2.0, description="Riesgo máximo por trade (%)")
    max_daily_loss_pct: float = Field(default=6.0, description="Pérdida diaria máxima (%)")
    max_trades_per_day: int = Field(default=8, description="Trades máximos por día")
    max_open_positions: int = Field(default=3, description="Posiciones simultáneas máximas")
    event_caution_minutes: int = Field(
        default=10, description="Margen tras una ventana de bloqueo con aviso",
    )
    default_vix: float = Field(
        default=15.0, description="VIX de referencia si no hay cotización de volatilidad",
    )

    # ─── Event Bus ──────────────────────────────────────────────────────
    event_bus_max_queue_size: int = Field(
        default=1_000,
        description="Tamaño máximo de cola del Event Bus para contrapresión",
    )

    # ─── Server ─────────────────────────────────────────────────────────
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8888)
    debug: bool = Field(default=False)
    cors_origins: List[str] = Field(default=["*"])

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


# Singleton global – se importa donde se necesite
settings = Settings()
