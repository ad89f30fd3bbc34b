"""
ScalpGate – Indicator State Management
========================================
Guarda, POR (instrumento, horizonte), el último IndicatorSet calculado,
la última serie usada y el estado arrastrado (PSAR + CPR).

DISEÑO:
- IndicatorEngine es puro; este gestor es quien le pasa el
  IndicatorCarry de la llamada anterior y guarda el siguiente.
- Así el PSAR avanza solo sobre velas nuevas y el bloque CPR se
  reutiliza mientras el periodo anterior no cambie.
- Una sola instancia, creada en el Container. reset() al cambiar de modo
  live ↔ sintético.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from scalpgate.domain.entities.candle import Candle
from scalpgate.domain.services.indicator_engine import IndicatorCarry, IndicatorEngine
from scalpgate.domain.value_objects.indicator_set import IndicatorSet
from scalpgate.shared.logging.logger import get_logger

logger = get_logger("indicator_state")

Key = Tuple[str, str]


@dataclass
class SeriesIndicatorState:
    """Estado de indicadores para UNA (instrumento, horizonte)."""

    instrument: str
    horizon: str
    series: Tuple[Candle, ...] = ()
    indicators: Optional[IndicatorSet] = None
    carry: Optional[IndicatorCarry] = None
    updates: int = 0

    @property
    def latest_candle(self) -> Optional[Candle]:
        return self.series[-1] if self.series else None

    def to_dict(self) -> dict:
        return {
            "instrument": self.instrument,
            "horizon": self.horizon,
            "candles": len(self.series),
            "updates": self.updates,
            "indicators": self.indicators.snapshot() if self.indicators else None,
        }


class IndicatorStateManager:
    """
    Gestor centralizado del estado de indicadores.

    Acceso: indicator_state.update(instrument, horizon, series) → IndicatorSet
    """

    def __init__(self, engine: IndicatorEngine) -> None:
        self._engine = engine
        self._states: Dict[Key, SeriesIndicatorState] = {}

    def get(self, instrument: str, horizon: str) -> Optional[SeriesIndicatorState]:
        return self._states.get((instrument, horizon))

    def update(
        self,
        instrument: str,
        horizon: str,
        series: Sequence[Candle],
    ) -> IndicatorSet:
        """
        Recalcular indicadores de una serie con el estado arrastrado.

        Si la serie no cambió desde la última llamada se devuelve el
        resultado cacheado. Propaga InsufficientDataError.
        """
        key = (instrument, horizon)
        state = self._states.get(key)
        if state is None:
            state = SeriesIndicatorState(instrument=instrument, horizon=horizon)
            self._states[key] = state

        series = tuple(series)
        if state.indicators is not None and series == state.series:
            return state.indicators

        result = self._engine.compute(series, state.carry)
        state.series = series
        state.indicators = result
        state.carry = self._engine.next_carry(series, result)
        state.updates += 1
        return result

    def reset(self) -> None:
        """Descartar todo el estado (p.ej. tras un cambio de modo del feed)."""
        self._states.clear()
        logger.info("Estado de indicadores reseteado")

    def snapshot(self) -> dict:
        return {f"{i}:{h}": s.to_dict() for (i, h), s in self._states.items()}
