"""
Signal Scheduler Use Case.

Dos loops de larga duración sobre el mismo event loop:

  tick corto (~1 s)  → refrescar serie del feed → IndicatorState.update()
                       → EventBus(market_data: MarketDataUpdate)
  tick largo (~60 s) → CandidateGenerator.try_generate()
                       → GatePipeline.validate()
                       → EventBus(signal | signal_rejected)
  feed_update        → refresh_instrument() del instrumento empujado
                       → EventBus(market_data: MarketDataUpdate)

Un fallo en un tick se registra y el loop continúa; InsufficientDataError
solo significa "todavía no hay datos" y se salta el ciclo.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Deque, List, Optional, Sequence

from scalpgate.application.ports.event_publisher import IEventPublisher
from scalpgate.application.ports.market_data_provider import IMarketDataProvider
from scalpgate.application.use_cases.generate_candidate_usecase import CandidateGenerator
from scalpgate.domain.entities.signal import FinalSignal
from scalpgate.domain.events.domain_events import (
    TOPIC_FEED_UPDATE,
    TOPIC_MARKET_DATA,
    TOPIC_SIGNAL,
    TOPIC_SIGNAL_REJECTED,
    MarketDataUpdate,
    SignalEmitted,
    SignalRejected,
)
from scalpgate.domain.exceptions.domain_errors import InsufficientDataError
from scalpgate.domain.services.gate_pipeline import GatePipeline
from scalpgate.domain.services.market_calendar import MarketCalendar
from scalpgate.domain.value_objects.validation import MarketContext, ValidationResult
from scalpgate.shared.logging.logger import get_logger
from scalpgate.state.indicator_state import IndicatorStateManager

logger = get_logger("scheduler")


class SignalScheduler:
    """Orquestador periódico del pipeline completo."""

    def __init__(
        self,
        feed: IMarketDataProvider,
        indicator_state: IndicatorStateManager,
        generator: CandidateGenerator,
        pipeline: GatePipeline,
        event_bus: IEventPublisher,
        calendar: MarketCalendar | None = None,
        *,
        symbols: Sequence[str] = ("NIFTY", "BANKNIFTY"),
        horizons: Sequence[str] = ("1m", "5m", "15m"),
        short_tick_seconds: float = 1.0,
        long_tick_seconds: float = 60.0,
        liquid_windows_only: bool = False,
        default_vix: float = 15.0,
        min_series_length: int = 100,
        recent_maxlen: int = 200,
    ) -> None:
        self._feed = feed
        self._indicator_state = indicator_state
        self._generator = generator
        self._pipeline = pipeline
        self._event_bus = event_bus
        self._calendar = calendar or MarketCalendar()
        self._symbols = list(symbols)
        self._horizons = list(horizons)
        self._short_tick = short_tick_seconds
        self._long_tick = long_tick_seconds
        self._liquid_only = liquid_windows_only
        self._vix = default_vix
        self._min_series_length = min_series_length

        self._recent: Deque[FinalSignal] = deque(maxlen=recent_maxlen)
        self._tasks: List[asyncio.Task] = []
        self._feed_queue: Optional[asyncio.Queue] = None
        self._running = False

        # Stats
        self._short_ticks = 0
        self._long_ticks = 0
        self._tick_errors = 0
        self._push_refreshes = 0
        self._accepted = 0
        self._rejected = 0

    @property
    def symbols(self) -> List[str]:
        return list(self._symbols)

    @property
    def is_running(self) -> bool:
        return self._running

    # ════════════════════════════════════════════════════════════════
    #  CICLO DE VIDA
    # ════════════════════════════════════════════════════════════════

    async def start(self) -> None:
        if self._running:
            logger.warning("Scheduler ya está corriendo")
            return
        self._running = True
        if self._feed_queue is None:
            self._feed_queue = await self._event_bus.subscribe(TOPIC_FEED_UPDATE, "scheduler_feed_update")
        self._tasks = [
            asyncio.create_task(
                self._loop("short", self._short_tick, self.run_short_tick),
                name="scheduler-short-tick",
            ),
            asyncio.create_task(
                self._loop("long", self._long_tick, self.run_long_tick),
                name="scheduler-long-tick",
            ),
            asyncio.create_task(
                self._feed_update_loop(self._feed_queue),
                name="scheduler-feed-update",
            ),
        ]
        logger.info(
            "Scheduler iniciado – %s × %s (tick corto %.1fs, largo %.1fs)",
            ", ".join(self._symbols), ", ".join(self._horizons),
            self._short_tick, self._long_tick,
        )

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._tasks = []
        logger.info(
            "Scheduler detenido. Ticks: %d cortos, %d largos; señales: %d aceptadas, %d rechazadas",
            self._short_ticks, self._long_ticks, self._accepted, self._rejected,
        )

    async def _loop(self, name: str, interval: float, tick) -> None:
        while self._running:
            try:
                await tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._tick_errors += 1
                logger.error("Error en tick %s: %s", name, e, exc_info=True)
            await asyncio.sleep(interval)

    # ════════════════════════════════════════════════════════════════
    #  TICK CORTO: DATOS + INDICADORES
    # ════════════════════════════════════════════════════════════════

    async def run_short_tick(self) -> int:
        """Refrescar cada (instrumento, horizonte) y publicar MarketDataUpdate."""
        self._short_ticks += 1
        published = 0
        for symbol in self._symbols:
            published += await self.refresh_instrument(symbol)
        return published

    async def refresh_instrument(self, symbol: str) -> int:
        """Recalcular los horizontes de un instrumento. Retorna updates publicados."""
        published = 0
        for horizon in self._horizons:
            series = await self._feed.get_latest_series(symbol, horizon, self._min_series_length)
            try:
                indicators = self._indicator_state.update(symbol, horizon, series)
            except InsufficientDataError as e:
                logger.debug("Indicadores %s %s no listos: %s", symbol, horizon, e.message)
                continue
            await self._event_bus.publish(
                TOPIC_MARKET_DATA,
                MarketDataUpdate(
                    symbol=symbol,
                    horizon=horizon,
                    candle=series[-1],
                    indicator_snapshot=indicators.snapshot(),
                    is_live=self._feed.is_live,
                ),
            )
            published += 1
        return published

    async def _feed_update_loop(self, queue: asyncio.Queue) -> None:
        """Cada cotización push recalcula su instrumento sin esperar al tick corto."""
        try:
            while True:
                event = await queue.get()
                symbol = getattr(event, "instrument", None)
                if symbol not in self._symbols:
                    continue
                self._push_refreshes += 1
                try:
                    await self.refresh_instrument(symbol)
                except Exception as e:
                    self._tick_errors += 1
                    logger.error("Error al refrescar %s tras push: %s", symbol, e, exc_info=True)
        except asyncio.CancelledError:
            pass

    # ════════════════════════════════════════════════════════════════
    #  TICK LARGO: CANDIDATOS + VALIDACIÓN
    # ════════════════════════════════════════════════════════════════

    async def run_long_tick(self, now: Optional[float] = None) -> List[ValidationResult]:
        """Generar y validar candidatos para cada (instrumento, horizonte)."""
        now = time.time() if now is None else now
        self._long_ticks += 1
        if self._liquid_only and not self._calendar.is_liquid_window(now):
            logger.debug("Fuera de ventana líquida – tick largo omitido")
            return []

        results: List[ValidationResult] = []
        for symbol in self._symbols:
            for horizon in self._horizons:
                candidate = await self._generator.try_generate(symbol, horizon, now)
                if candidate is None:
                    continue

                quote = await self._feed.get_snapshot(symbol)
                market = MarketContext(
                    spot=quote.last_price if quote else candidate.entry_price,
                    now=now,
                    vix=self._vix,
                    quote=quote,
                )
                result = self._pipeline.validate(candidate, market)
                results.append(result)
                await self._publish_result(result, candidate.signal_id, symbol, horizon, candidate.direction)
        return results

    async def _publish_result(
        self,
        result: ValidationResult,
        signal_id: str,
        symbol: str,
        horizon: str,
        direction: str,
    ) -> None:
        if result.accepted and result.final_signal is not None:
            self._accepted += 1
            self._recent.append(result.final_signal)
            await self._event_bus.publish(TOPIC_SIGNAL, SignalEmitted(signal=result.final_signal))
            return

        self._rejected += 1
        await self._event_bus.publish(
            TOPIC_SIGNAL_REJECTED,
            SignalRejected(
                signal_id=signal_id,
                symbol=symbol,
                horizon=horizon,
                direction=direction,
                gate_score=result.gate_score,
                reasons=result.reasons,
            ),
        )

    # ════════════════════════════════════════════════════════════════
    #  CONSULTAS
    # ════════════════════════════════════════════════════════════════

    def recent_signals(self, instrument: Optional[str] = None, count: int = 20) -> List[FinalSignal]:
        """Últimas señales aceptadas, más recientes primero."""
        signals = [s for s in reversed(self._recent) if instrument is None or s.instrument == instrument]
        return signals[:count]

    @property
    def stats(self) -> dict:
        return {
            "running": self._running,
            "symbols": self._symbols,
            "horizons": self._horizons,
            "short_ticks": self._short_ticks,
            "long_ticks": self._long_ticks,
            "tick_errors": self._tick_errors,
            "push_refreshes": self._push_refreshes,
            "accepted": self._accepted,
            "rejected": self._rejected,
            "recent": len(self._recent),
            "generator": self._generator.stats,
            "pipeline": self._pipeline.stats,
        }
