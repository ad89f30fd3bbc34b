"""
ScalpGate – Domain Service: Candidate Rules
=============================================
Reglas de confluencia que sintetizan un CandidateSignal.

Lógica pura: recibe velas e IndicatorSet ya calculados, no conoce el
feed ni el reloj. La frecuencia de señales la decide el use case.

REGLAS (BUY; SELL es el espejo):
1. Trend filter      precio ≥ VWAP·(1−0.001)  ó  EMA9 > EMA21
2. Momentum trigger  RSI > 30  ó  histograma MACD ≥ 0
3. Estructura        bb_lower < precio < bb_upper·1.01  y  precio > S1
4. Final check       hook configurable (por defecto deja pasar)

STRICTNESS:
  permissive → no exige reglas
  standard   → exige `min_rules`
  strict     → exige las cuatro

STRENGTH SCORE (tope 100):
  trend 25 · rsi 25 · macd 20 · band breakout 20 · cpr 15 · swing 10
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Sequence

from scalpgate.domain.entities.candle import Candle
from scalpgate.domain.value_objects.indicator_set import IndicatorSet

VWAP_TOLERANCE = 0.001
VWAP_AT_BAND = 0.0005
HTF_NEUTRAL_BAND = 0.0001
VOLUME_LOOKBACK = 10

STRENGTH_WEIGHTS = {
    "trend": 25,
    "rsi": 25,
    "macd": 20,
    "band_breakout": 20,
    "cpr_support": 15,
    "swing_support": 10,
}

FinalCheck = Callable[[str, Sequence[Candle], IndicatorSet], bool]


def _always(direction: str, candles: Sequence[Candle], indicators: IndicatorSet) -> bool:
    return True


@dataclass
class ConfluenceConfig:
    """Configuración de las reglas de confluencia."""

    strictness: str = "standard"        # permissive | standard | strict
    min_rules: int = 3
    target1_r: float = 1.0
    target2_r: float = 1.5
    fallback_stop_pct: float = 0.005
    final_check: FinalCheck = field(default=_always)

    def required_rules(self) -> int:
        if self.strictness == "permissive":
            return 0
        if self.strictness == "strict":
            return 4
        return self.min_rules


@dataclass(frozen=True)
class RuleOutcome:
    """Resultado de evaluar las reglas en una dirección."""

    direction: str
    rules: Dict[str, bool]
    components: Dict[str, bool]

    @property
    def passed_count(self) -> int:
        return sum(1 for ok in self.rules.values() if ok)

    @property
    def flags(self) -> tuple:
        names = [k for k, ok in self.rules.items() if ok]
        names += [k for k, ok in self.components.items() if ok]
        return tuple(names)


@dataclass(frozen=True)
class SignalLevels:
    entry: float
    stop_loss: float
    target1: float
    target2: float


class CandidateRules:
    """
    Evaluación de confluencia, niveles y fuerza de un candidato.

    USO:
        rules = CandidateRules(ConfluenceConfig(strictness="standard"))
        outcome = rules.evaluate(candles, indicators)
        if outcome:
            levels = rules.levels(outcome.direction, candles[-1], indicators)
    """

    def __init__(self, config: ConfluenceConfig | None = None) -> None:
        self._config = config or ConfluenceConfig()

    @property
    def config(self) -> ConfluenceConfig:
        return self._config

    # ════════════════════════════════════════════════════════════════
    #  REGLAS
    # ════════════════════════════════════════════════════════════════

    def evaluate(self, candles: Sequence[Candle], indicators: IndicatorSet) -> Optional[RuleOutcome]:
        """
        Elegir dirección y comprobar la confluencia exigida.

        BUY si el trend filter alcista se cumple; en otro caso se
        evalúan las reglas SELL espejadas.
        """
        price = candles[-1].close
        bullish_trend = self._trend_filter("BUY", price, indicators)
        direction = "BUY" if bullish_trend else "SELL"
        outcome = self._outcome(direction, candles, indicators)
        if outcome.passed_count < self._config.required_rules():
            return None
        return outcome

    def _outcome(self, direction: str, candles: Sequence[Candle], ind: IndicatorSet) -> RuleOutcome:
        price = candles[-1].close
        bull = direction == "BUY"

        rsi = ind.rsi.latest
        hist = ind.macd_hist.latest
        rsi_ok = rsi is not None and (rsi > 30 if bull else rsi < 70)
        macd_ok = hist is not None and (hist >= 0 if bull else hist <= 0)

        rules = {
            "trend_filter": self._trend_filter(direction, price, ind),
            "momentum_trigger": rsi_ok or macd_ok,
            "structure_filter": self._structure_filter(direction, price, ind),
            "final_check": bool(self._config.final_check(direction, candles, ind)),
        }

        middle = ind.bb_middle.latest
        swing = ind.nearest_swing_low if bull else ind.nearest_swing_high
        components = {
            "rsi": rsi_ok,
            "macd": macd_ok,
            "band_breakout": middle is not None and (price > middle if bull else price < middle),
            "cpr_support": price > ind.cpr.tc if bull else price < ind.cpr.bc,
            "swing_support": swing is not None and (swing < price if bull else swing > price),
        }
        return RuleOutcome(direction=direction, rules=rules, components=components)

    @staticmethod
    def _trend_filter(direction: str, price: float, ind: IndicatorSet) -> bool:
        vwap = ind.vwap.latest
        fast = ind.ema_fast.latest
        slow = ind.ema_slow.latest
        if direction == "BUY":
            near_vwap = vwap is not None and price >= vwap * (1 - VWAP_TOLERANCE)
            aligned = fast is not None and slow is not None and fast > slow
        else:
            near_vwap = vwap is not None and price <= vwap * (1 + VWAP_TOLERANCE)
            aligned = fast is not None and slow is not None and fast < slow
        return near_vwap or aligned

    @staticmethod
    def _structure_filter(direction: str, price: float, ind: IndicatorSet) -> bool:
        upper = ind.bb_upper.latest
        lower = ind.bb_lower.latest
        if upper is None or lower is None:
            return False
        if direction == "BUY":
            return lower < price < upper * 1.01 and price > ind.cpr.s1
        return lower * 0.99 < price < upper and price < ind.cpr.r1

    # ════════════════════════════════════════════════════════════════
    #  NIVELES Y FUERZA
    # ════════════════════════════════════════════════════════════════

    def stop_loss(self, direction: str, candle: Candle, ind: IndicatorSet) -> float:
        """
        BUY: el mayor de {low de la vela, VWAP, pivot} estrictamente por
        debajo de la entrada; si no hay ninguno, entry·(1−0.5%).
        SELL: el menor de {high, VWAP, pivot} por encima de la entrada.
        """
        entry = candle.close
        vwap = ind.vwap.latest
        if direction == "BUY":
            levels = [v for v in (candle.low, vwap, ind.cpr.pivot) if v is not None and v < entry]
            return max(levels) if levels else entry * (1 - self._config.fallback_stop_pct)
        levels = [v for v in (candle.high, vwap, ind.cpr.pivot) if v is not None and v > entry]
        return min(levels) if levels else entry * (1 + self._config.fallback_stop_pct)

    def levels(self, direction: str, candle: Candle, ind: IndicatorSet) -> SignalLevels:
        entry = candle.close
        stop = self.stop_loss(direction, candle, ind)
        risk = abs(entry - stop)
        sign = 1 if direction == "BUY" else -1
        return SignalLevels(
            entry=entry,
            stop_loss=stop,
            target1=entry + sign * risk * self._config.target1_r,
            target2=entry + sign * risk * self._config.target2_r,
        )

    @staticmethod
    def strength(outcome: RuleOutcome) -> int:
        score = STRENGTH_WEIGHTS["trend"] if outcome.rules["trend_filter"] else 0
        for key in ("rsi", "macd", "band_breakout", "cpr_support", "swing_support"):
            if outcome.components[key]:
                score += STRENGTH_WEIGHTS[key]
        return min(100, score)

    # ════════════════════════════════════════════════════════════════
    #  CONTEXTO PARA LOS GATES
    # ════════════════════════════════════════════════════════════════

    @staticmethod
    def htf_trend(htf: Optional[IndicatorSet]) -> str:
        """UP / DOWN según EMA9 vs EMA21 del horizonte superior; NEUTRAL si están a <0.01%."""
        if htf is None:
            return "NEUTRAL"
        fast, slow = htf.ema_fast.latest, htf.ema_slow.latest
        if fast is None or slow is None or slow == 0:
            return "NEUTRAL"
        if abs(fast - slow) / slow < HTF_NEUTRAL_BAND:
            return "NEUTRAL"
        return "UP" if fast > slow else "DOWN"

    @staticmethod
    def vwap_position(price: float, ind: IndicatorSet) -> str:
        vwap = ind.vwap.latest
        if vwap is None or vwap == 0 or abs(price - vwap) / vwap <= VWAP_AT_BAND:
            return "AT"
        return "ABOVE" if price > vwap else "BELOW"

    @staticmethod
    def structure_break(direction: str, candles: Sequence[Candle]) -> bool:
        if len(candles) < 2:
            return False
        last, prev = candles[-1], candles[-2]
        return last.close > prev.high if direction == "BUY" else last.close < prev.low

    @staticmethod
    def rsi_reset(direction: str, ind: IndicatorSet) -> bool:
        rsi = ind.rsi.latest
        if rsi is None:
            return False
        return 40 <= rsi <= 70 if direction == "BUY" else 30 <= rsi <= 60

    @staticmethod
    def ema_alignment(direction: str, ind: IndicatorSet) -> bool:
        fast, slow = ind.ema_fast.latest, ind.ema_slow.latest
        if fast is None or slow is None:
            return False
        return fast > slow if direction == "BUY" else fast < slow

    @staticmethod
    def volume_expansion(candles: Sequence[Candle]) -> bool:
        if len(candles) <= VOLUME_LOOKBACK:
            return False
        window = candles[-VOLUME_LOOKBACK - 1:-1]
        average = sum(c.volume for c in window) / len(window)
        return candles[-1].volume > average
