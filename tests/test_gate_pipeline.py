"""Tests de la máquina de estados del Validation Gate Pipeline."""

from datetime import datetime

import pytest

from scalpgate.domain.services.gate_pipeline import GatePipeline, gate_score
from scalpgate.domain.services.gates import GATE_EVENTS, GATE_RISK, GATE_TIMEFRAME
from scalpgate.domain.services.market_calendar import IST, EconomicEvent
from scalpgate.domain.services.trade_planner import PlannerConfig, TradePlanner
from scalpgate.domain.value_objects.validation import (
    BLOCKED,
    FAIL,
    PASS,
    PASSED,
    REJECTED,
    REWRITE,
    REWRITTEN,
    GateVerdict,
    MarketContext,
)
from scalpgate.state.risk_state import RiskSnapshot, RiskStateStore


@pytest.fixture
def risk_store(calendar) -> RiskStateStore:
    return RiskStateStore(1_000_000.0, calendar=calendar)


@pytest.fixture
def pipeline(planner, risk_store, calendar) -> GatePipeline:
    return GatePipeline(planner, risk_store=risk_store, calendar=calendar)


def test_gate_score_counts_passes() -> None:
    verdicts = (
        GateVerdict("a", PASS),
        GateVerdict("b", PASS),
        GateVerdict("c", FAIL),
        GateVerdict("d", PASS),
        GateVerdict("e", BLOCKED),
    )
    assert gate_score(verdicts) == 60


class TestPipelineDecisions:
    def test_clean_candidate_passes(self, pipeline, candidate_factory, market, risk_store) -> None:
        result = pipeline.validate(candidate_factory(), market)

        assert result.decision == PASSED
        assert result.gate_score == 100
        assert result.corrections == ()
        signal = result.final_signal
        assert signal is not None
        assert signal.decision == PASSED
        assert signal.event_status == "CLEAR"
        assert signal.session == "MORNING"
        assert "Confluencia 3/4" in signal.warnings
        assert risk_store.snapshot(market.now).trades_count == 1
        assert risk_store.snapshot(market.now).open_positions == 1

    def test_target_too_far_is_rewritten(self, pipeline, candidate_factory, market) -> None:
        candidate = candidate_factory(stop_atr=1.0, target_atr=4.0)
        result = pipeline.validate(candidate, market)

        assert result.decision == REWRITTEN
        assert result.first_pass[0].gate == GATE_TIMEFRAME
        assert result.first_pass[0].status == REWRITE
        assert all(v.status == PASS for v in result.verdicts)
        assert result.gate_score == 100

        signal = result.final_signal
        assert signal.risk.target_atr_multiple == 3.0
        assert signal.risk.risk_reward == pytest.approx(3.0)
        assert signal.candidate.target2 == pytest.approx(candidate.entry_price + 60.0)
        assert signal.corrections == ("Target ajustado a 3.0 ATR",)
        # el candidato original no cambia
        assert candidate.target2 == pytest.approx(candidate.entry_price + 80.0)

    def test_blackout_window_rejects(self, pipeline, candidate_factory, risk_store) -> None:
        opening = datetime(2024, 3, 12, 9, 20, tzinfo=IST).timestamp()
        result = pipeline.validate(
            candidate_factory(), MarketContext(spot=21500.0, now=opening, vix=15.0)
        )

        assert result.decision == REJECTED
        assert result.final_signal is None
        assert result.verdict(GATE_EVENTS).status == BLOCKED
        assert result.gate_score == 80
        assert risk_store.snapshot(opening).trades_count == 0

    def test_high_impact_event_rejects(self, pipeline, candidate_factory, market) -> None:
        rbi = EconomicEvent("RBI_POLICY", datetime(2024, 3, 12, 10, 45, tzinfo=IST))
        context = MarketContext(spot=market.spot, now=market.now, vix=15.0, events=(rbi,))
        result = pipeline.validate(candidate_factory(), context)
        assert result.decision == REJECTED
        assert any("RBI_POLICY" in r for r in result.reasons)

    def test_trade_cap_rejects(self, pipeline, candidate_factory, market) -> None:
        snapshot = RiskSnapshot(
            day="2024-03-12",
            capital=1_000_000.0,
            trades_count=8,
            total_loss_pct=0.0,
            open_positions=0,
            emergency_stop=False,
        )
        result = pipeline.validate(candidate_factory(), market, risk_state=snapshot)
        assert result.decision == REJECTED
        assert result.verdict(GATE_RISK).status == FAIL

    def test_failure_is_not_corrected_even_with_rewrite(self, pipeline, candidate_factory, market) -> None:
        candidate = candidate_factory(stop_atr=1.0, target_atr=4.0, htf_trend="NEUTRAL")
        result = pipeline.validate(candidate, market)
        assert result.decision == REJECTED
        assert result.corrections == ()

    def test_oversized_position_is_scaled_down(self, calendar, candidate_factory, market) -> None:
        planner = TradePlanner(PlannerConfig(capital=1_000_000.0, sizing_risk_pct=5.0), calendar=calendar)
        pipeline = GatePipeline(planner, calendar=calendar)

        result = pipeline.validate(candidate_factory(), market)

        assert result.decision == REWRITTEN
        assert result.verdict(GATE_RISK).status == PASS
        risk = result.final_signal.risk
        assert risk.max_risk_amount <= 20_000.0
        assert sum(result.final_signal.execution.slices) == risk.position_size
        assert any(c.startswith("Posición reducida") for c in result.corrections)

    def test_accepted_signals_fill_position_limit(self, pipeline, candidate_factory, market) -> None:
        decisions = [pipeline.validate(candidate_factory(), market).decision for _ in range(4)]
        assert decisions == [PASSED, PASSED, PASSED, REJECTED]
        assert pipeline.stats == {"validated": 4, "passed": 3, "rewritten": 0, "rejected": 1}

    def test_positions_expire_after_hold_time(self, pipeline, candidate_factory, market, risk_store) -> None:
        for _ in range(3):
            pipeline.validate(candidate_factory(), market)
        later = MarketContext(spot=market.spot, now=market.now + 13 * 60, vix=15.0)
        assert risk_store.snapshot(later.now).open_positions == 0
        assert pipeline.validate(candidate_factory(), later).decision == PASSED


class TestRiskRecording:
    def test_stale_snapshot_cannot_overfill_positions(self, pipeline, candidate_factory, market, risk_store) -> None:
        for _ in range(3):
            assert pipeline.validate(candidate_factory(), market).decision == PASSED
        stale = RiskSnapshot(
            day="2024-03-12",
            capital=1_000_000.0,
            trades_count=0,
            total_loss_pct=0.0,
            open_positions=0,
            emergency_stop=False,
        )

        result = pipeline.validate(candidate_factory(), market, risk_state=stale)

        assert result.decision == REJECTED
        assert result.final_signal is None
        assert result.verdict(GATE_RISK).status == FAIL
        assert any("posiciones abiertas" in r for r in result.reasons)
        assert risk_store.snapshot(market.now).trades_count == 3
        assert pipeline.stats["rejected"] == 1


def test_zero_vix_is_validated_without_raising(pipeline, candidate_factory, market) -> None:
    calm = MarketContext(spot=21490.0, now=market.now, vix=0.0)
    result = pipeline.validate(candidate_factory(), calm)
    assert result.decision in (PASSED, REWRITTEN, REJECTED)
    assert 0 <= result.gate_score <= 100
