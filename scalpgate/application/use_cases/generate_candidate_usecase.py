"""
Generate Candidate Use Case.

Caso de uso que produce CandidateSignals a partir de la serie del feed.
Orquesta reglas de confluencia (CandidateRules), estado de indicadores
y límites de frecuencia (RiskStateStore + intervalo mínimo propio).

FRECUENCIA:
- Intervalo mínimo por (instrumento, horizonte):
    base(h) con multiplicador m = 0.3 en ventana líquida, 0.7 fuera
      1m  → max(5,  ⌊10·m⌋)
      5m  → max(10, ⌊20·m⌋)
      15m → max(15, ⌊30·m⌋)
      otro→ max(8,  ⌊15·m⌋)
    intervalo = max(5, base·2) minutos
- Mercado sin cambios: precio movido < 0.1% y < 15 min desde la última
  señal → no se genera.
- Topes horario/diario y parada de emergencia: RiskStateStore.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from scalpgate.application.ports.market_data_provider import IMarketDataProvider
from scalpgate.domain.entities.candle import Candle
from scalpgate.domain.entities.signal import CandidateSignal
from scalpgate.domain.exceptions.domain_errors import InsufficientDataError
from scalpgate.domain.services.candidate_rules import CandidateRules
from scalpgate.domain.services.market_calendar import MarketCalendar
from scalpgate.domain.value_objects.indicator_set import IndicatorSet
from scalpgate.domain.value_objects.instrument import Horizon, get_instrument
from scalpgate.shared.logging.logger import get_logger
from scalpgate.state.indicator_state import IndicatorStateManager
from scalpgate.state.risk_state import RiskStateStore

logger = get_logger("candidate_generator")

UNCHANGED_PRICE_PCT = 0.1
UNCHANGED_WINDOW_MINUTES = 15

_BASE_INTERVALS = {
    "1m": (5, 10),
    "5m": (10, 20),
    "15m": (15, 30),
}
_DEFAULT_BASE = (8, 15)


@dataclass
class _LastSignal:
    timestamp: float
    price: float


def min_interval_minutes(horizon: str, liquid: bool) -> int:
    """Intervalo mínimo entre señales de un mismo (instrumento, horizonte)."""
    floor_minutes, span = _BASE_INTERVALS.get(horizon, _DEFAULT_BASE)
    multiplier = 0.3 if liquid else 0.7
    base = max(floor_minutes, math.floor(span * multiplier))
    return max(5, base * 2)


class CandidateGenerator:
    """
    Caso de uso: generar candidatos de señal.

    DEPENDE DE:
    - IMarketDataProvider (series y snapshots)
    - IndicatorStateManager (indicadores con estado arrastrado)
    - CandidateRules (lógica pura de confluencia)
    - RiskStateStore (topes de frecuencia, parada de emergencia)
    """

    def __init__(
        self,
        feed: IMarketDataProvider,
        indicator_state: IndicatorStateManager,
        rules: CandidateRules | None = None,
        risk_store: RiskStateStore | None = None,
        calendar: MarketCalendar | None = None,
        min_series_length: int = 100,
    ) -> None:
        self._feed = feed
        self._indicator_state = indicator_state
        self._rules = rules or CandidateRules()
        self._risk_store = risk_store
        self._calendar = calendar or MarketCalendar()
        self._min_series_length = min_series_length

        self._last_signal: Dict[Tuple[str, str], _LastSignal] = {}

        # Stats
        self._attempts = 0
        self._generated = 0
        self._skipped: Dict[str, int] = {}

    # ════════════════════════════════════════════════════════════════
    #  EVALUACIÓN PURA
    # ════════════════════════════════════════════════════════════════

    def evaluate(
        self,
        instrument: str,
        horizon: str,
        series: Sequence[Candle],
        indicators: IndicatorSet,
        now: Optional[float] = None,
        htf_indicators: Optional[IndicatorSet] = None,
    ) -> Optional[CandidateSignal]:
        """
        Aplicar las reglas de confluencia a una serie ya calculada.

        No consulta el feed ni modifica estado: mismo input, mismo
        candidato (salvo signal_id).
        """
        if not series:
            return None
        now = time.time() if now is None else now
        outcome = self._rules.evaluate(series, indicators)
        if outcome is None:
            return None

        direction = outcome.direction
        last = series[-1]
        levels = self._rules.levels(direction, last, indicators)
        atr = indicators.atr.latest or 0.0

        return CandidateSignal(
            instrument=instrument,
            horizon=horizon,
            direction=direction,
            entry_price=levels.entry,
            stop_loss=levels.stop_loss,
            target1=levels.target1,
            target2=levels.target2,
            strength_score=self._rules.strength(outcome),
            confluence_flags=outcome.flags,
            created_at=now,
            atr=atr,
            htf_trend=self._rules.htf_trend(htf_indicators),
            vwap_position=self._rules.vwap_position(last.close, indicators),
            ema_alignment=self._rules.ema_alignment(direction, indicators),
            rsi_reset=self._rules.rsi_reset(direction, indicators),
            structure_break=self._rules.structure_break(direction, series),
            volume_expansion=self._rules.volume_expansion(series),
        )

    # ════════════════════════════════════════════════════════════════
    #  GENERACIÓN CON FEED Y FRECUENCIA
    # ════════════════════════════════════════════════════════════════

    async def try_generate(
        self,
        instrument: str,
        horizon: str,
        now: Optional[float] = None,
    ) -> Optional[CandidateSignal]:
        """
        Generar un candidato si la frecuencia lo permite.

        Returns:
            CandidateSignal o None. Propaga solo errores de configuración;
            InsufficientDataError se registra y devuelve None.
        """
        get_instrument(instrument)
        hz = Horizon.parse(horizon)
        now = time.time() if now is None else now
        self._attempts += 1

        # ── 1. Topes del RiskStateStore ──
        if self._risk_store is not None:
            allowed, reason = self._risk_store.can_issue_signal(instrument, hz.value, now)
            if not allowed:
                self._skip("risk_caps", instrument, hz.value, reason)
                return None

        # ── 2. Intervalo mínimo ──
        last = self._last_signal.get((instrument, hz.value))
        if last is not None:
            interval = min_interval_minutes(hz.value, self._calendar.is_liquid_window(now))
            elapsed_min = (now - last.timestamp) / 60
            if elapsed_min < interval:
                self._skip("min_interval", instrument, hz.value, f"{elapsed_min:.1f}/{interval} min")
                return None

        # ── 3. Serie + indicadores ──
        series = await self._feed.get_latest_series(instrument, hz.value, self._min_series_length)
        try:
            indicators = self._indicator_state.update(instrument, hz.value, series)
            htf_indicators = await self._htf_indicators(instrument, hz)
        except InsufficientDataError as e:
            self._skip("insufficient_data", instrument, hz.value, e.message)
            return None

        # ── 4. Mercado sin cambios ──
        price = series[-1].close
        if last is not None and self._unchanged(last, price, now):
            self._skip("unchanged_market", instrument, hz.value, f"precio {price:.2f}")
            return None

        # ── 5. Reglas ──
        candidate = self.evaluate(instrument, hz.value, series, indicators, now, htf_indicators)
        if candidate is None:
            self._skip("no_confluence", instrument, hz.value, None)
            return None

        if self._risk_store is not None:
            # Los topes se re-comprueban: otra tarea pudo registrar entre medias.
            recorded, reason = self._risk_store.try_record_signal(
                instrument, hz.value, candidate.strength_score, now,
            )
            if not recorded:
                self._skip("risk_caps", instrument, hz.value, reason)
                return None
        self._last_signal[(instrument, hz.value)] = _LastSignal(timestamp=now, price=price)
        self._generated += 1
        logger.info(
            "Candidato %s %s %s @ %.2f (SL %.2f, T2 %.2f, fuerza %d)",
            candidate.direction, instrument, hz.value, candidate.entry_price,
            candidate.stop_loss, candidate.target2, candidate.strength_score,
        )
        return candidate

    async def _htf_indicators(self, instrument: str, horizon: Horizon) -> Optional[IndicatorSet]:
        higher = horizon.higher
        if higher is horizon:
            return None
        series = await self._feed.get_latest_series(instrument, higher.value, self._min_series_length)
        return self._indicator_state.update(instrument, higher.value, series)

    @staticmethod
    def _unchanged(last: _LastSignal, price: float, now: float) -> bool:
        moved_pct = abs(price - last.price) / last.price * 100 if last.price else 100.0
        elapsed_min = (now - last.timestamp) / 60
        return moved_pct < UNCHANGED_PRICE_PCT and elapsed_min < UNCHANGED_WINDOW_MINUTES

    def _skip(self, reason: str, instrument: str, horizon: str, detail: Optional[str]) -> None:
        self._skipped[reason] = self._skipped.get(reason, 0) + 1
        logger.debug("Sin candidato %s %s: %s %s", instrument, horizon, reason, detail or "")

    def reset(self) -> None:
        self._last_signal.clear()

    @property
    def stats(self) -> dict:
        return {
            "attempts": self._attempts,
            "generated": self._generated,
            "skipped": dict(self._skipped),
            "tracked": len(self._last_signal),
        }
