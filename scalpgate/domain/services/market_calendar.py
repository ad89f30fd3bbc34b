"""
ScalpGate – Domain Service: Market Calendar
=============================================
Reloj de sesión del mercado indio (NSE/BSE) en hora IST.

RESPONSABILIDADES:
- Mercado abierto/cerrado (lunes-viernes, 09:15–15:30 IST)
- Nombre de sesión: MORNING / MIDDAY / AFTERNOON / CLOSED
- Ventanas de alta liquidez (09:25–11:00 y 13:45–15:05)
- Ventanas de bloqueo (apertura/cierre de sesión) y calendario de
  eventos macro con ventanas asimétricas antes/después por tipo.

Todo se evalúa sobre un `now` explícito: el calendario no lee el reloj
salvo en `now()`, así que los tests pueden fijar cualquier instante.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

IST = ZoneInfo("Asia/Kolkata")

MARKET_OPEN = time(9, 15)
MARKET_CLOSE = time(15, 30)

LIQUID_WINDOWS: Tuple[Tuple[time, time], ...] = (
    (time(9, 25), time(11, 0)),
    (time(13, 45), time(15, 5)),
)

# Tipos de evento considerados de alto impacto
HIGH_IMPACT_EVENTS = frozenset({
    "RBI_POLICY", "CPI_DATA", "GDP_DATA", "FII_DII_DATA",
    "MAJOR_EARNINGS", "GLOBAL_EVENTS",
})

# Minutos de bloqueo (antes, después) por tipo de evento
EVENT_BLOCK_WINDOWS: Dict[str, Tuple[int, int]] = {
    "RBI_POLICY": (30, 60),
    "CPI_DATA": (15, 30),
    "GDP_DATA": (15, 30),
}
DEFAULT_BLOCK_WINDOW = (15, 15)

# Eventos de bajo impacto a menos de N minutos → aviso
LOW_IMPACT_CAUTION_MINUTES = 60


@dataclass(frozen=True, slots=True)
class SessionWindow:
    """Franja horaria diaria de bloqueo."""

    name: str
    start: time
    end: time

    def contains(self, t: time) -> bool:
        return self.start <= t < self.end


DEFAULT_BLACKOUTS: Tuple[SessionWindow, ...] = (
    SessionWindow("SESSION_OPEN", time(9, 15), time(9, 25)),
    SessionWindow("SESSION_CLOSE", time(15, 25), time(15, 35)),
)


@dataclass(frozen=True, slots=True)
class EconomicEvent:
    """Evento macro programado (hora IST)."""

    kind: str
    at: datetime
    impact: str = "HIGH"        # HIGH | MEDIUM | LOW
    description: str = ""

    @property
    def is_high_impact(self) -> bool:
        return self.impact == "HIGH" or self.kind in HIGH_IMPACT_EVENTS

    @property
    def block_window(self) -> Tuple[int, int]:
        return EVENT_BLOCK_WINDOWS.get(self.kind, DEFAULT_BLOCK_WINDOW)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "at": self.at.isoformat(),
            "impact": self.impact,
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class EventFilterStatus:
    """Resultado del filtro de eventos/sesión."""

    status: str                      # CLEAR | CAUTION | BLOCKED
    reason: Optional[str] = None
    next_event: Optional[str] = None

    def to_dict(self) -> dict:
        return {"status": self.status, "reason": self.reason, "next_event": self.next_event}


@dataclass(frozen=True, slots=True)
class MarketStatus:
    """Foto del estado de mercado en un instante."""

    is_open: bool
    session: str
    is_liquid_window: bool
    time_ist: str
    minutes_to_close: Optional[int]

    def to_dict(self) -> dict:
        return {
            "is_open": self.is_open,
            "session": self.session,
            "is_liquid_window": self.is_liquid_window,
            "time_ist": self.time_ist,
            "minutes_to_close": self.minutes_to_close,
        }


@dataclass
class MarketCalendar:
    """
    Calendario de sesión + eventos.

    Se construye explícitamente al arranque (no es un global) y se
    comparte por referencia entre el generador de candidatos y los gates.
    """

    blackouts: Tuple[SessionWindow, ...] = DEFAULT_BLACKOUTS
    caution_minutes: int = 10
    events: List[EconomicEvent] = field(default_factory=list)

    # ════════════════════════════════════════════════════════════════
    #  RELOJ
    # ════════════════════════════════════════════════════════════════

    @staticmethod
    def now() -> datetime:
        return datetime.now(IST)

    @staticmethod
    def to_ist(value: "datetime | float") -> datetime:
        """epoch o datetime (naive = IST) → datetime IST."""
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=IST)
            return value.astimezone(IST)
        return datetime.fromtimestamp(value, IST)

    # ════════════════════════════════════════════════════════════════
    #  SESIÓN
    # ════════════════════════════════════════════════════════════════

    def is_market_open(self, when: "datetime | float") -> bool:
        dt = self.to_ist(when)
        if dt.weekday() >= 5:
            return False
        return MARKET_OPEN <= dt.time() <= MARKET_CLOSE

    def session(self, when: "datetime | float") -> str:
        dt = self.to_ist(when)
        if not self.is_market_open(dt):
            return "CLOSED"
        t = dt.time()
        if t < time(11, 30):
            return "MORNING"
        if t < time(13, 45):
            return "MIDDAY"
        return "AFTERNOON"

    def is_liquid_window(self, when: "datetime | float") -> bool:
        dt = self.to_ist(when)
        if not self.is_market_open(dt):
            return False
        t = dt.time()
        return any(start <= t <= end for start, end in LIQUID_WINDOWS)

    def status(self, when: "datetime | float | None" = None) -> MarketStatus:
        dt = self.to_ist(when) if when is not None else self.now()
        is_open = self.is_market_open(dt)
        minutes_to_close = None
        if is_open:
            close_dt = dt.replace(
                hour=MARKET_CLOSE.hour, minute=MARKET_CLOSE.minute, second=0, microsecond=0
            )
            minutes_to_close = int((close_dt - dt).total_seconds() // 60)
        return MarketStatus(
            is_open=is_open,
            session=self.session(dt),
            is_liquid_window=self.is_liquid_window(dt),
            time_ist=dt.strftime("%Y-%m-%d %H:%M:%S"),
            minutes_to_close=minutes_to_close,
        )

    # ════════════════════════════════════════════════════════════════
    #  FILTRO DE EVENTOS / BLACKOUT
    # ════════════════════════════════════════════════════════════════

    def add_event(self, event: EconomicEvent) -> None:
        self.events.append(event)
        self.events.sort(key=lambda e: e.at)

    def upcoming_events(self, when: "datetime | float", horizon_minutes: int = 24 * 60) -> List[EconomicEvent]:
        dt = self.to_ist(when)
        limit = dt + timedelta(minutes=horizon_minutes)
        return [e for e in self.events if dt <= self.to_ist(e.at) <= limit]

    def event_filter(
        self,
        when: "datetime | float",
        events: Optional[Iterable[EconomicEvent]] = None,
    ) -> EventFilterStatus:
        """
        BLOCKED dentro de una ventana de bloqueo, CAUTION en el margen
        inmediatamente exterior (o evento de bajo impacto cercano),
        CLEAR en otro caso. BLOCKED tiene prioridad sobre CAUTION.
        """
        dt = self.to_ist(when)
        margin = timedelta(minutes=self.caution_minutes)
        caution: Optional[EventFilterStatus] = None

        # ── 1. Ventanas de sesión ──
        for window in self.blackouts:
            start = dt.replace(hour=window.start.hour, minute=window.start.minute, second=0, microsecond=0)
            end = dt.replace(hour=window.end.hour, minute=window.end.minute, second=0, microsecond=0)
            if start <= dt < end:
                return EventFilterStatus("BLOCKED", f"Ventana de bloqueo {window.name}", window.name)
            if caution is None and (start - margin <= dt < start or end <= dt < end + margin):
                caution = EventFilterStatus("CAUTION", f"Cerca de ventana {window.name}", window.name)

        # ── 2. Eventos macro ──
        pool = list(events) if events is not None else self.events
        for event in sorted(pool, key=lambda e: self.to_ist(e.at)):
            at = self.to_ist(event.at)
            label = event.description or event.kind
            if event.is_high_impact:
                before, after = event.block_window
                start = at - timedelta(minutes=before)
                end = at + timedelta(minutes=after)
                if start <= dt < end:
                    minutes = int((at - dt).total_seconds() // 60)
                    return EventFilterStatus(
                        "BLOCKED", f"{label} ({minutes:+d} min)", event.kind,
                    )
                if caution is None and (start - margin <= dt < start or end <= dt < end + margin):
                    caution = EventFilterStatus("CAUTION", f"{label} próximo", event.kind)
            elif caution is None and abs((at - dt).total_seconds()) < LOW_IMPACT_CAUTION_MINUTES * 60:
                caution = EventFilterStatus("CAUTION", f"{label} próximo", event.kind)

        return caution or EventFilterStatus("CLEAR")

    # ════════════════════════════════════════════════════════════════
    #  UTILIDADES
    # ════════════════════════════════════════════════════════════════

    def trading_date(self, when: "datetime | float") -> str:
        """Fecha IST (YYYY-MM-DD) de un instante."""
        return self.to_ist(when).strftime("%Y-%m-%d")

    def next_weekly_expiry(self, when: "datetime | float") -> datetime:
        """Próximo jueves 15:30 IST (vencimiento semanal)."""
        dt = self.to_ist(when)
        days_ahead = (3 - dt.weekday()) % 7
        expiry = (dt + timedelta(days=days_ahead)).replace(
            hour=MARKET_CLOSE.hour, minute=MARKET_CLOSE.minute, second=0, microsecond=0
        )
        if expiry <= dt:
            expiry += timedelta(days=7)
        return expiry
