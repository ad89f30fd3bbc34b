"""
ScalpGate – Risk State Store
==============================
Contadores de riesgo de vida de proceso, compartidos por el Candidate
Generator (límites de frecuencia de señales) y el Validation Gate
Pipeline (trades, pérdidas y posiciones del día).

CONTENIDO:
- Señales emitidas por (instrumento, horizonte, hora IST) y por día.
- Agregado diario: trades_count, total_loss_pct, posiciones abiertas.
- Flag global de parada de emergencia (persiste hasta resume()).

SERIALIZACIÓN:
Toda mutación pasa por un threading.Lock único. Cada método toma el
lock una sola vez, así que can_issue_signal() seguido de
record_signal() NO es atómico. Las variantes try_record_signal() y
try_record_trade() comprueban y registran bajo la misma toma del lock;
son las que usan el generador y el pipeline.

DAY ROLLOVER:
Cada operación compara la fecha IST actual con la del estado; al
cambiar de día se reinician contadores diarios y posiciones.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from scalpgate.domain.exceptions.domain_errors import RiskManagementError
from scalpgate.domain.services.market_calendar import MarketCalendar
from scalpgate.shared.logging.logger import get_logger

logger = get_logger("risk_state")


@dataclass
class OpenPosition:
    """Posición nocional abierta por una señal aceptada."""

    signal_id: str
    instrument: str
    horizon: str
    opened_at: float
    expires_at: float


@dataclass(frozen=True, slots=True)
class RiskSnapshot:
    """Vista inmutable del estado de riesgo (entrada del gate 4)."""

    day: str
    capital: float
    trades_count: int
    total_loss_pct: float
    open_positions: int
    emergency_stop: bool
    emergency_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "day": self.day,
            "capital": self.capital,
            "trades_count": self.trades_count,
            "total_loss_pct": round(self.total_loss_pct, 4),
            "open_positions": self.open_positions,
            "emergency_stop": self.emergency_stop,
            "emergency_reason": self.emergency_reason,
        }


@dataclass
class _DailyState:
    day: str
    trades_count: int = 0
    total_loss_pct: float = 0.0
    signals_by_hour: Dict[Tuple[str, str, int], int] = field(default_factory=dict)
    signals_by_day: Dict[Tuple[str, str], int] = field(default_factory=dict)
    strength_sum: Dict[Tuple[str, str], float] = field(default_factory=dict)
    positions: List[OpenPosition] = field(default_factory=list)


class RiskStateStore:
    """
    Store de riesgo explícitamente construido (no global).

    Creado al arranque por el Container, pasado por referencia a los
    componentes que lo consultan y reseteado al cambiar de día.
    """

    def __init__(
        self,
        capital: float = 1_000_000.0,
        *,
        max_signals_per_hour: int = 10,
        max_signals_per_day: int = 50,
        calendar: MarketCalendar | None = None,
    ) -> None:
        self._capital = capital
        self._max_per_hour = max_signals_per_hour
        self._max_per_day = max_signals_per_day
        self._calendar = calendar or MarketCalendar()
        self._lock = threading.Lock()
        self._daily = _DailyState(day="")
        self._emergency_stop = False
        self._emergency_reason: Optional[str] = None
        self._rollovers = 0

    @property
    def capital(self) -> float:
        return self._capital

    # ════════════════════════════════════════════════════════════════
    #  DAY ROLLOVER
    # ════════════════════════════════════════════════════════════════

    def _roll(self, now: float) -> _DailyState:
        """Debe llamarse con el lock tomado."""
        day = self._calendar.trading_date(now)
        if self._daily.day != day:
            if self._daily.day:
                self._rollovers += 1
                logger.info(
                    "Cambio de día %s → %s: contadores de riesgo reiniciados",
                    self._daily.day, day,
                )
            self._daily = _DailyState(day=day)
        return self._daily

    def _hour(self, now: float) -> int:
        return self._calendar.to_ist(now).hour

    # ════════════════════════════════════════════════════════════════
    #  FRECUENCIA DE SEÑALES (Candidate Generator)
    # ════════════════════════════════════════════════════════════════

    def can_issue_signal(
        self, instrument: str, horizon: str, now: float | None = None
    ) -> Tuple[bool, Optional[str]]:
        """¿Se puede emitir otra señal para (instrumento, horizonte)?"""
        now = time.time() if now is None else now
        with self._lock:
            reason = self._signal_block(self._roll(now), instrument, horizon, now)
            return reason is None, reason

    def record_signal(
        self, instrument: str, horizon: str, strength: float = 0.0, now: float | None = None
    ) -> None:
        now = time.time() if now is None else now
        with self._lock:
            self._add_signal(self._roll(now), instrument, horizon, strength, now)

    def try_record_signal(
        self, instrument: str, horizon: str, strength: float = 0.0, now: float | None = None
    ) -> Tuple[bool, Optional[str]]:
        """Comprobar topes y registrar la señal bajo una sola toma del lock."""
        now = time.time() if now is None else now
        with self._lock:
            daily = self._roll(now)
            reason = self._signal_block(daily, instrument, horizon, now)
            if reason is None:
                self._add_signal(daily, instrument, horizon, strength, now)
            return reason is None, reason

    def _signal_block(
        self, daily: _DailyState, instrument: str, horizon: str, now: float
    ) -> Optional[str]:
        if self._emergency_stop:
            return f"Parada de emergencia activa: {self._emergency_reason}"
        hourly = daily.signals_by_hour.get((instrument, horizon, self._hour(now)), 0)
        if hourly >= self._max_per_hour:
            return f"Límite horario alcanzado ({hourly}/{self._max_per_hour})"
        per_day = daily.signals_by_day.get((instrument, horizon), 0)
        if per_day >= self._max_per_day:
            return f"Límite diario alcanzado ({per_day}/{self._max_per_day})"
        return None

    def _add_signal(
        self, daily: _DailyState, instrument: str, horizon: str, strength: float, now: float
    ) -> None:
        hour_key = (instrument, horizon, self._hour(now))
        day_key = (instrument, horizon)
        daily.signals_by_hour[hour_key] = daily.signals_by_hour.get(hour_key, 0) + 1
        daily.signals_by_day[day_key] = daily.signals_by_day.get(day_key, 0) + 1
        daily.strength_sum[day_key] = daily.strength_sum.get(day_key, 0.0) + strength

    # ════════════════════════════════════════════════════════════════
    #  TRADES / PÉRDIDAS (Validation Gate Pipeline)
    # ════════════════════════════════════════════════════════════════

    def record_trade(
        self,
        signal_id: str,
        instrument: str,
        horizon: str,
        hold_minutes: float,
        now: float | None = None,
    ) -> None:
        """Registrar una señal aceptada como trade nocional abierto."""
        now = time.time() if now is None else now
        with self._lock:
            self._open_position(self._roll(now), signal_id, instrument, horizon, hold_minutes, now)

    def try_record_trade(
        self,
        signal_id: str,
        instrument: str,
        horizon: str,
        hold_minutes: float,
        now: float | None = None,
        *,
        max_trades_per_day: int,
        max_open_positions: int,
        max_daily_loss_pct: float,
    ) -> Tuple[bool, Optional[str]]:
        """
        Re-comprobar los límites duros y abrir la posición bajo el mismo lock.

        Returns:
            (True, None) si se registró; (False, motivo) si un límite ya
            se alcanzó desde el snapshot usado para validar.
        """
        now = time.time() if now is None else now
        with self._lock:
            daily = self._roll(now)
            reason: Optional[str] = None
            if self._emergency_stop:
                reason = f"Parada de emergencia activa: {self._emergency_reason}"
            elif daily.total_loss_pct >= max_daily_loss_pct:
                reason = f"Pérdida diaria {daily.total_loss_pct:.2f}% alcanzó {max_daily_loss_pct}%"
            elif daily.trades_count >= max_trades_per_day:
                reason = f"Límite diario de trades {max_trades_per_day} alcanzado"
            elif len(self._active_positions(daily, now)) >= max_open_positions:
                reason = f"Máximo de posiciones abiertas {max_open_positions} alcanzado"
            if reason is None:
                self._open_position(daily, signal_id, instrument, horizon, hold_minutes, now)
            return reason is None, reason

    def _open_position(
        self,
        daily: _DailyState,
        signal_id: str,
        instrument: str,
        horizon: str,
        hold_minutes: float,
        now: float,
    ) -> None:
        daily.trades_count += 1
        daily.positions.append(OpenPosition(
            signal_id=signal_id,
            instrument=instrument,
            horizon=horizon,
            opened_at=now,
            expires_at=now + hold_minutes * 60,
        ))
        logger.info(
            "Trade registrado %s (%s %s) – trades hoy: %d",
            signal_id, instrument, horizon, daily.trades_count,
        )

    def record_outcome(self, signal_id: str, pnl_pct: float, now: float | None = None) -> None:
        """
        Cerrar una posición con su resultado (% del capital).
        Las pérdidas se acumulan en total_loss_pct.
        """
        now = time.time() if now is None else now
        with self._lock:
            daily = self._roll(now)
            position = next((p for p in daily.positions if p.signal_id == signal_id), None)
            if position is None:
                raise RiskManagementError(
                    f"No hay posición abierta para la señal {signal_id}",
                    rule="unknown_position",
                )
            daily.positions.remove(position)
            if pnl_pct < 0:
                daily.total_loss_pct += -pnl_pct

    def _active_positions(self, daily: _DailyState, now: float) -> List[OpenPosition]:
        daily.positions = [p for p in daily.positions if p.expires_at > now]
        return daily.positions

    # ════════════════════════════════════════════════════════════════
    #  EMERGENCY STOP
    # ════════════════════════════════════════════════════════════════

    def emergency_stop(self, reason: str = "manual") -> None:
        with self._lock:
            self._emergency_stop = True
            self._emergency_reason = reason
        logger.warning("🛑 PARADA DE EMERGENCIA activada: %s", reason)

    def resume(self) -> None:
        with self._lock:
            if not self._emergency_stop:
                raise RiskManagementError("No hay parada de emergencia activa", rule="resume")
            self._emergency_stop = False
            self._emergency_reason = None
        logger.info("Operativa reanudada tras parada de emergencia")

    @property
    def is_stopped(self) -> bool:
        return self._emergency_stop

    # ════════════════════════════════════════════════════════════════
    #  CONSULTAS
    # ════════════════════════════════════════════════════════════════

    def snapshot(self, now: float | None = None) -> RiskSnapshot:
        now = time.time() if now is None else now
        with self._lock:
            daily = self._roll(now)
            return RiskSnapshot(
                day=daily.day,
                capital=self._capital,
                trades_count=daily.trades_count,
                total_loss_pct=daily.total_loss_pct,
                open_positions=len(self._active_positions(daily, now)),
                emergency_stop=self._emergency_stop,
                emergency_reason=self._emergency_reason,
            )

    def metrics(self, now: float | None = None) -> dict:
        """Contadores completos para la API de operación."""
        now = time.time() if now is None else now
        snap = self.snapshot(now)
        with self._lock:
            daily = self._daily
            per_series = {}
            for (instrument, horizon), count in daily.signals_by_day.items():
                key = f"{instrument}:{horizon}"
                per_series[key] = {
                    "signals_today": count,
                    "signals_this_hour": daily.signals_by_hour.get(
                        (instrument, horizon, self._hour(now)), 0
                    ),
                    "avg_strength": round(daily.strength_sum.get((instrument, horizon), 0.0) / count, 1),
                }
            positions = [
                {
                    "signal_id": p.signal_id,
                    "instrument": p.instrument,
                    "horizon": p.horizon,
                    "expires_at": p.expires_at,
                }
                for p in daily.positions
            ]
        data = snap.to_dict()
        data.update({
            "limits": {
                "max_signals_per_hour": self._max_per_hour,
                "max_signals_per_day": self._max_per_day,
            },
            "signals": per_series,
            "positions": positions,
            "rollovers": self._rollovers,
        })
        return data
