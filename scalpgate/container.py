"""
Dependency Injection Container.

Contenedor que construye cada componente a partir de un Settings y
gestiona sus instancias únicas.

Clean Architecture: este contenedor vive en la capa más externa y es el
único lugar donde se crean dependencias concretas (httpx, numpy,
asyncio.Queue). Las capas internas reciben sus colaboradores ya hechos.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

# Domain
from scalpgate.domain.services.candidate_rules import CandidateRules, ConfluenceConfig
from scalpgate.domain.services.cost_model import SlippageModel
from scalpgate.domain.services.gate_pipeline import GatePipeline
from scalpgate.domain.services.gates import RiskLimits, ValidationRules
from scalpgate.domain.services.indicator_engine import IndicatorEngine
from scalpgate.domain.services.market_calendar import MarketCalendar
from scalpgate.domain.services.option_pricing import OptionPricer
from scalpgate.domain.services.trade_planner import PlannerConfig, TradePlanner

# Application
from scalpgate.application.use_cases.generate_candidate_usecase import CandidateGenerator
from scalpgate.application.use_cases.scheduler_usecase import SignalScheduler

# Infrastructure
from scalpgate.infrastructure.event_bus import EventBus
from scalpgate.infrastructure.feed.feed_adapter import FeedAdapter
from scalpgate.infrastructure.feed.synthetic_feed import SyntheticMarketGenerator
from scalpgate.infrastructure.feed.yahoo_client import YahooChartClient

# State
from scalpgate.state.indicator_state import IndicatorStateManager
from scalpgate.state.risk_state import RiskStateStore

# Shared
from scalpgate.shared.config.settings import Settings


@dataclass
class Container:
    """
    Contenedor de Inyección de Dependencias.

    Cada propiedad crea su instancia la primera vez y la reutiliza.
    `override()` permite sustituir cualquiera por un doble de test.
    """

    settings: Settings = field(default_factory=Settings)

    _instances: Dict[str, Any] = field(default_factory=dict)

    def _get(self, name: str, factory) -> Any:
        instance = self._instances.get(name)
        if instance is None:
            instance = factory()
            self._instances[name] = instance
        return instance

    # ==================== Shared state ====================

    @property
    def calendar(self) -> MarketCalendar:
        return self._get(
            "calendar",
            lambda: MarketCalendar(caution_minutes=self.settings.event_caution_minutes),
        )

    @property
    def event_bus(self) -> EventBus:
        return self._get(
            "event_bus",
            lambda: EventBus(max_queue_size=self.settings.event_bus_max_queue_size),
        )

    @property
    def risk_store(self) -> RiskStateStore:
        return self._get(
            "risk_store",
            lambda: RiskStateStore(
                self.settings.capital,
                max_signals_per_hour=self.settings.max_signals_per_hour,
                max_signals_per_day=self.settings.max_signals_per_day,
                calendar=self.calendar,
            ),
        )

    @property
    def indicator_state(self) -> IndicatorStateManager:
        return self._get(
            "indicator_state",
            lambda: IndicatorStateManager(IndicatorEngine(calendar=self.calendar)),
        )

    # ==================== Feed ====================

    @property
    def feed(self) -> FeedAdapter:
        def build() -> FeedAdapter:
            s = self.settings
            client = YahooChartClient(
                base_url=s.feed_base_url,
                timeout=s.feed_timeout_seconds,
                user_agent=s.feed_user_agent,
            )
            generator = SyntheticMarketGenerator(seed=s.feed_seed, calendar=self.calendar)
            return FeedAdapter(
                client,
                generator,
                self.event_bus,
                live=s.feed_live_enabled,
                quote_ttl=s.feed_quote_ttl_seconds,
                series_ttl=s.feed_series_ttl_seconds,
                min_series_length=s.feed_min_series_length,
            )

        return self._get("feed", build)

    # ==================== Signal pipeline ====================

    @property
    def slippage_model(self) -> SlippageModel:
        return self._get("slippage_model", SlippageModel)

    @property
    def trade_planner(self) -> TradePlanner:
        def build() -> TradePlanner:
            config = PlannerConfig(
                capital=self.settings.capital,
                sizing_risk_pct=self.settings.sizing_risk_pct,
            )
            pricer = OptionPricer(self.calendar, self.slippage_model)
            return TradePlanner(config, pricer, self.calendar)

        return self._get("trade_planner", build)

    @property
    def validation_rules(self) -> ValidationRules:
        s = self.settings
        return self._get(
            "validation_rules",
            lambda: ValidationRules(
                risk=RiskLimits(
                    max_risk_per_trade_pct=s.max_risk_per_trade_pct,
                    max_daily_loss_pct=s.max_daily_loss_pct,
                    max_trades_per_day=s.max_trades_per_day,
                    max_open_positions=s.max_open_positions,
                ),
            ),
        )

    @property
    def gate_pipeline(self) -> GatePipeline:
        return self._get(
            "gate_pipeline",
            lambda: GatePipeline(
                self.trade_planner, self.validation_rules, self.risk_store, self.calendar,
            ),
        )

    @property
    def candidate_generator(self) -> CandidateGenerator:
        s = self.settings
        return self._get(
            "candidate_generator",
            lambda: CandidateGenerator(
                self.feed,
                self.indicator_state,
                CandidateRules(ConfluenceConfig(
                    strictness=s.confluence_strictness,
                    min_rules=s.confluence_min_rules,
                    target1_r=s.target1_r_multiple,
                    target2_r=s.target2_r_multiple,
                )),
                self.risk_store,
                self.calendar,
                min_series_length=s.feed_min_series_length,
            ),
        )

    @property
    def scheduler(self) -> SignalScheduler:
        s = self.settings
        return self._get(
            "scheduler",
            lambda: SignalScheduler(
                self.feed,
                self.indicator_state,
                self.candidate_generator,
                self.gate_pipeline,
                self.event_bus,
                self.calendar,
                symbols=s.symbols,
                horizons=s.horizons,
                short_tick_seconds=s.short_tick_seconds,
                long_tick_seconds=s.long_tick_seconds,
                liquid_windows_only=s.liquid_windows_only,
                default_vix=s.default_vix,
                min_series_length=s.feed_min_series_length,
            ),
        )

    # ==================== Presentation ====================

    @property
    def ws_manager(self):
        from scalpgate.presentation.websocket.websocket_manager import WebSocketManager
        return self._get("ws_manager", lambda: WebSocketManager(self.event_bus))

    # ==================== Lifecycle ====================

    def reset(self) -> None:
        """Resetea todas las instancias (útil para tests)."""
        self._instances.clear()

    def override(self, name: str, instance: Any) -> None:
        """
        Sustituir una dependencia (útil para tests con mocks).

        Args:
            name: Nombre de la propiedad (ej: 'feed')
            instance: Instancia a usar
        """
        if not isinstance(getattr(type(self), name, None), property):
            raise ValueError(f"Unknown dependency: {name}")
        self._instances[name] = instance


# ==================== Global Container ====================

_container: Optional[Container] = None


def get_container() -> Container:
    """Instancia global del contenedor (se crea con Settings por defecto)."""
    global _container
    if _container is None:
        _container = Container()
    return _container


def reset_container() -> None:
    """Resetea el contenedor global."""
    global _container
    if _container is not None:
        _container.reset()
    _container = None


def init_container(settings: Optional[Settings] = None) -> Container:
    """
    Inicializa el contenedor con configuración específica.

    Args:
        settings: Configuración opcional. Si es None, usa valores por defecto.
    """
    global _container
    _container = Container(settings=settings or Settings())
    return _container
