"""
ScalpGate – Feed Adapter
==========================
Fuente única de series OHLCV y cotizaciones para el resto del sistema.

MODOS:
  live       → Yahoo Finance chart API (httpx, timeout fijo)
  synthetic  → SyntheticMarketGenerator (numpy)

CONTRATO DE FALLBACK:
En modo live, un fallo de red, error del proveedor, timeout, payload
malformado o una serie más corta que `min_length` cae al generador
sintético SOLO para esa llamada. Solo los errores de configuración
(instrumento u horizonte desconocidos) se propagan.

CACHÉ:
- Entradas etiquetadas por modo; cambiar de modo vacía la caché.
- Un fetch iniciado antes de un cambio de modo se descarta (contador de
  generación) en vez de cachearse.
- Lock asyncio por clave (instrumento, horizonte): dos llamadas
  concurrentes a la misma clave hacen un solo fetch.
"""

from __future__ import annotations

import asyncio
import time
from typing import Dict, Hashable, Optional, Tuple

from scalpgate.application.ports.event_publisher import IEventPublisher
from scalpgate.application.ports.market_data_provider import IMarketDataProvider
from scalpgate.domain.entities.candle import Candle, Quote, validate_series
from scalpgate.domain.events.domain_events import TOPIC_FEED_UPDATE, FeedUpdate
from scalpgate.domain.exceptions.domain_errors import ValidationError
from scalpgate.domain.value_objects.instrument import Horizon, Instrument, get_instrument
from scalpgate.infrastructure.feed.cache import ModeTaggedCache
from scalpgate.infrastructure.feed.synthetic_feed import SyntheticMarketGenerator
from scalpgate.infrastructure.feed.yahoo_client import FeedUnavailableError, YahooChartClient
from scalpgate.shared.logging.logger import get_logger

logger = get_logger("feed_adapter")

MODE_LIVE = "live"
MODE_SYNTHETIC = "synthetic"

FRESH_SECONDS = 30
STALE_SECONDS = 120


class FeedAdapter(IMarketDataProvider):
    """
    Implementación de IMarketDataProvider con fallback sintético.

    USO:
        feed = FeedAdapter(client, generator, event_bus=bus, live=True)
        candles = await feed.get_latest_series("NIFTY", "5m")
        quote = await feed.get_snapshot("NIFTY")
    """

    def __init__(
        self,
        client: YahooChartClient,
        generator: SyntheticMarketGenerator,
        event_bus: IEventPublisher | None = None,
        *,
        live: bool = False,
        quote_ttl: float = 5.0,
        series_ttl: float = 300.0,
        min_series_length: int = 100,
    ) -> None:
        self._client = client
        self._generator = generator
        self._event_bus = event_bus
        self._mode = MODE_LIVE if live else MODE_SYNTHETIC
        self._quote_ttl = quote_ttl
        self._series_ttl = series_ttl
        self._min_series_length = min_series_length

        self._cache = ModeTaggedCache()
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._generation = 0

        # Stats
        self._last_update: float = 0.0
        self._live_failures = 0
        self._fallbacks = 0
        self._discarded = 0
        self._push_updates = 0

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def is_live(self) -> bool:
        return self._mode == MODE_LIVE

    def _lock(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    # ════════════════════════════════════════════════════════════════
    #  MODO
    # ════════════════════════════════════════════════════════════════

    def enable_live(self) -> None:
        self._switch(MODE_LIVE)

    def disable_live(self) -> None:
        self._switch(MODE_SYNTHETIC)

    def _switch(self, mode: str) -> None:
        if mode == self._mode:
            return
        previous = self._mode
        self._mode = mode
        self._generation += 1
        self._cache.clear()
        logger.info("Feed %s → %s (caché vaciada)", previous, mode)

    # ════════════════════════════════════════════════════════════════
    #  SERIES
    # ════════════════════════════════════════════════════════════════

    async def get_latest_series(
        self,
        instrument: str,
        horizon: str,
        min_length: int = 100,
    ) -> Tuple[Candle, ...]:
        inst = get_instrument(instrument)
        hz = Horizon.parse(horizon)
        key = ("series", inst.symbol, hz.value)

        async with self._lock(key):
            cached = self._cache.get(key, self._mode)
            if cached is not None and len(cached) >= min_length:
                return cached

            generation = self._generation
            mode = self._mode
            if mode == MODE_LIVE:
                series, source = await self._live_series(inst, hz, min_length, generation)
            else:
                series, source = self._synthetic_series(inst, hz, min_length), MODE_SYNTHETIC

            if generation != self._generation:
                # Cambio de modo durante el fetch: no se cachea
                self._discarded += 1
                logger.debug("Fetch de %s %s descartado por cambio de modo", inst.symbol, hz.value)
                if self._mode == MODE_SYNTHETIC and source == MODE_LIVE:
                    return self._synthetic_series(inst, hz, min_length)
                return series

            # Un fallback en modo live se reintenta pronto
            ttl = self._series_ttl if source == mode else self._quote_ttl
            self._cache.put(key, series, mode, ttl)
            self._last_update = time.time()
            return series

    async def _live_series(
        self, inst: Instrument, hz: Horizon, min_length: int, generation: int
    ) -> Tuple[Tuple[Candle, ...], str]:
        try:
            candles, meta = await self._client.fetch_candles(
                inst.vendor_ticker, hz.value, hz.vendor_range,
            )
            series = validate_series(candles)
        except (FeedUnavailableError, ValidationError) as e:
            return self._fallback(inst, hz, min_length, str(e)), MODE_SYNTHETIC

        if len(series) < min_length:
            return self._fallback(
                inst, hz, min_length, f"serie corta ({len(series)}/{min_length})",
            ), MODE_SYNTHETIC

        if generation != self._generation:
            return series, MODE_LIVE
        try:
            quote = self._client.parse_quote(inst.symbol, meta, list(series))
            self._cache.put(("quote", inst.symbol), quote, MODE_LIVE, self._quote_ttl)
        except FeedUnavailableError as e:
            logger.debug("Meta sin precio para %s: %s", inst.symbol, e)
        return series, MODE_LIVE

    def _fallback(self, inst: Instrument, hz: Horizon, min_length: int, reason: str) -> Tuple[Candle, ...]:
        self._live_failures += 1
        self._fallbacks += 1
        logger.warning(
            "Feed live no disponible para %s %s (%s) – usando sintético",
            inst.symbol, hz.value, reason,
        )
        return self._synthetic_series(inst, hz, min_length)

    def _synthetic_series(self, inst: Instrument, hz: Horizon, min_length: int) -> Tuple[Candle, ...]:
        length = max(min_length, self._min_series_length)
        return self._generator.generate_series(inst, hz, length)

    # ════════════════════════════════════════════════════════════════
    #  SNAPSHOT
    # ════════════════════════════════════════════════════════════════

    async def get_snapshot(self, instrument: str) -> Optional[Quote]:
        inst = get_instrument(instrument)
        key = ("quote", inst.symbol)

        async with self._lock(key):
            cached = self._cache.get(key, self._mode)
            if cached is not None:
                return cached

            generation = self._generation
            mode = self._mode
            quote: Optional[Quote] = None
            if mode == MODE_LIVE:
                try:
                    candles, meta = await self._client.fetch_candles(inst.vendor_ticker, "1m", "1d")
                    quote = self._client.parse_quote(inst.symbol, meta, candles)
                except FeedUnavailableError as e:
                    self._live_failures += 1
                    self._fallbacks += 1
                    logger.warning(
                        "Snapshot live no disponible para %s (%s) – usando sintético",
                        inst.symbol, e,
                    )
            if quote is None:
                quote = self._generator.snapshot(inst)

            if generation != self._generation:
                self._discarded += 1
                if self._mode == MODE_SYNTHETIC and quote.is_live:
                    return self._generator.snapshot(inst)
                return quote

            self._cache.put(key, quote, mode, self._quote_ttl)
            self._last_update = time.time()
            return quote

    # ════════════════════════════════════════════════════════════════
    #  PUSH
    # ════════════════════════════════════════════════════════════════

    async def push_update(self, instrument: str, quote: Quote) -> None:
        """
        Actualización push: invalida toda la caché del instrumento sin
        esperar al TTL y publica un FeedUpdate en el bus.
        """
        inst = get_instrument(instrument)
        invalidated = self._cache.invalidate_instrument(inst.symbol)
        self._cache.put(("quote", inst.symbol), quote, self._mode, self._quote_ttl)
        self._generator.set_last_price(inst.symbol, quote.last_price)
        self._last_update = time.time()
        self._push_updates += 1

        if self._event_bus is not None:
            await self._event_bus.publish(
                TOPIC_FEED_UPDATE, FeedUpdate(quote=quote, invalidated=invalidated),
            )

    async def close(self) -> None:
        await self._client.close()

    # ════════════════════════════════════════════════════════════════
    #  ESTADO
    # ════════════════════════════════════════════════════════════════

    def status(self) -> dict:
        age = time.time() - self._last_update if self._last_update else None
        return {
            "mode": self._mode,
            "last_update": self._last_update or None,
            "cache_size": len(self._cache),
            "live_failures": self._live_failures,
            "fallbacks": self._fallbacks,
            "discarded_fetches": self._discarded,
            "push_updates": self._push_updates,
            "is_data_fresh": age is not None and age < FRESH_SECONDS,
            "is_stale": age is None or age > STALE_SECONDS,
            "cache": self._cache.stats,
            "client": self._client.stats,
            "generator": self._generator.stats,
        }
