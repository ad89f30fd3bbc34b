"""Tests de los cinco gates y sus correcciones."""

import dataclasses

import pytest

from scalpgate.domain.services import gates
from scalpgate.domain.services.gates import ValidationRules
from scalpgate.domain.services.market_calendar import EventFilterStatus
from scalpgate.domain.value_objects.validation import BLOCKED, FAIL, PASS, REWRITE
from scalpgate.state.risk_state import RiskSnapshot


def _snapshot(**overrides) -> RiskSnapshot:
    fields = dict(
        day="2024-03-12",
        capital=1_000_000.0,
        trades_count=0,
        total_loss_pct=0.0,
        open_positions=0,
        emergency_stop=False,
    )
    fields.update(overrides)
    return RiskSnapshot(**fields)


@pytest.fixture
def rules() -> ValidationRules:
    return ValidationRules()


class TestTimeframeGate:
    def test_in_bounds_passes(self, plan_factory, rules) -> None:
        verdict = gates.check_timeframe_rr(plan_factory(), rules)
        assert verdict.status == PASS

    def test_target_beyond_max_requests_rewrite(self, plan_factory, rules) -> None:
        plan = plan_factory(stop_atr=1.0, target_atr=4.0)
        verdict = gates.check_timeframe_rr(plan, rules)
        assert verdict.status == REWRITE
        assert any("Target" in r for r in verdict.reasons)

    def test_correction_clamps_target_and_keeps_rr_consistent(self, plan_factory, rules) -> None:
        plan = plan_factory(stop_atr=1.0, target_atr=4.0)
        corrected, corrections = gates.correct_timeframe_rr(plan, rules)

        risk = corrected.risk
        assert risk.target_atr_multiple == 3.0
        assert risk.stop_atr_multiple == 1.0
        assert risk.target_distance == pytest.approx(60.0)
        assert risk.risk_reward == pytest.approx(risk.target_distance / risk.stop_distance)
        assert corrected.candidate.target2 == pytest.approx(plan.candidate.entry_price + 60.0)
        assert corrections == ["Target ajustado a 3.0 ATR"]
        assert gates.check_timeframe_rr(corrected, rules).status == PASS

    def test_correction_never_mutates_original(self, plan_factory, rules) -> None:
        plan = plan_factory(stop_atr=1.0, target_atr=4.0)
        original_target = plan.candidate.target2
        gates.correct_timeframe_rr(plan, rules)
        assert plan.candidate.target2 == original_target
        assert plan.risk.target_atr_multiple == pytest.approx(4.0)

    def test_sell_correction_moves_levels_below_entry(self, plan_factory, rules) -> None:
        plan = plan_factory(
            stop_atr=-3.0,
            target_atr=-1.0,
            direction="SELL",
            htf_trend="DOWN",
            vwap_position="BELOW",
        )
        corrected, _ = gates.correct_timeframe_rr(plan, rules)
        entry = corrected.candidate.entry_price
        assert corrected.risk.stop_atr_multiple == 2.0
        assert corrected.candidate.stop_loss == pytest.approx(entry + 40.0)
        assert corrected.candidate.target2 == pytest.approx(entry - 20.0)

    def test_hold_over_limit_is_capped(self, plan_factory, rules) -> None:
        plan = plan_factory()
        plan = dataclasses.replace(
            plan, management=dataclasses.replace(plan.management, max_hold_minutes=30)
        )
        assert gates.check_timeframe_rr(plan, rules).status == REWRITE
        corrected, corrections = gates.correct_timeframe_rr(plan, rules)
        assert corrected.management.max_hold_minutes == 15
        assert "Hold recortado a 15m" in corrections

    def test_unknown_horizon_fails(self, plan_factory, rules) -> None:
        verdict = gates.check_timeframe_rr(plan_factory(horizon="1h"), rules)
        assert verdict.status == FAIL


class TestOptionGate:
    def test_liquid_atm_leg_passes(self, plan_factory, rules) -> None:
        assert gates.check_option_executability(plan_factory(), rules).status == PASS

    def test_wide_spread_fails(self, plan_factory, rules) -> None:
        plan = plan_factory()
        plan = dataclasses.replace(plan, option=dataclasses.replace(plan.option, spread_pct=3.5))
        verdict = gates.check_option_executability(plan, rules)
        assert verdict.status == FAIL
        assert any("Spread" in r for r in verdict.reasons)

    def test_low_delta_and_heavy_theta_fail_together(self, plan_factory, rules) -> None:
        plan = plan_factory()
        plan = dataclasses.replace(
            plan, option=dataclasses.replace(plan.option, delta=0.1, theta=-80.0)
        )
        verdict = gates.check_option_executability(plan, rules)
        assert verdict.status == FAIL
        assert len(verdict.reasons) == 2


class TestConfluenceGate:
    def test_full_confluence_passes_with_count_warning(self, plan_factory, rules) -> None:
        verdict = gates.check_confluence(plan_factory(), rules)
        assert verdict.status == PASS
        assert verdict.warnings == ("Confluencia 3/4",)

    def test_neutral_htf_trend_fails(self, plan_factory, rules) -> None:
        verdict = gates.check_confluence(plan_factory(htf_trend="NEUTRAL"), rules)
        assert verdict.status == FAIL

    def test_two_factors_fail(self, plan_factory, rules) -> None:
        plan = plan_factory(ema_alignment=False, rsi_reset=False, structure_break=True)
        assert gates.check_confluence(plan, rules).status == FAIL

    def test_htf_and_vwap_contradiction_fails(self, plan_factory, rules) -> None:
        plan = plan_factory(vwap_position="BELOW", structure_break=True)
        verdict = gates.check_confluence(plan, rules)
        assert verdict.status == FAIL
        assert any("contradictorias" in r for r in verdict.reasons)


class TestRiskGate:
    def test_within_limits_passes(self, plan_factory, rules) -> None:
        assert gates.check_risk_limits(plan_factory(), rules, _snapshot()).status == PASS

    @pytest.mark.parametrize(
        "overrides",
        [
            {"emergency_stop": True, "emergency_reason": "manual"},
            {"trades_count": 8},
            {"open_positions": 3},
            {"total_loss_pct": 6.0},
        ],
    )
    def test_hard_limits_fail(self, plan_factory, rules, overrides) -> None:
        verdict = gates.check_risk_limits(plan_factory(), rules, _snapshot(**overrides))
        assert verdict.status == FAIL

    def test_zero_position_size_fails(self, plan_factory, rules) -> None:
        plan = plan_factory()
        plan = dataclasses.replace(
            plan, risk=dataclasses.replace(plan.risk, position_size=0, max_risk_amount=0.0)
        )
        assert gates.check_risk_limits(plan, rules, _snapshot()).status == FAIL

    def test_only_per_trade_risk_requests_rewrite(self, plan_factory, rules) -> None:
        plan = plan_factory()
        plan = dataclasses.replace(
            plan, risk=dataclasses.replace(plan.risk, max_risk_amount=35_000.0)
        )
        verdict = gates.check_risk_limits(plan, rules, _snapshot())
        assert verdict.status == REWRITE

    def test_position_size_correction_respects_limit(self, plan_factory, rules) -> None:
        plan = plan_factory()
        oversized = dataclasses.replace(
            plan,
            risk=dataclasses.replace(
                plan.risk,
                position_size=plan.risk.position_size * 4,
                max_risk_amount=plan.risk.position_size * 4 * plan.risk_per_unit,
            ),
        )
        assert gates.check_risk_limits(oversized, rules, _snapshot()).status == REWRITE

        corrected, corrections = gates.correct_position_size(oversized, rules, 1_000_000.0)
        assert corrected.risk.max_risk_amount <= 20_000.0
        assert corrected.risk.position_size < oversized.risk.position_size
        assert corrected.execution.quantity == corrected.risk.position_size
        assert sum(corrected.execution.slices) == corrected.risk.position_size
        assert corrections and corrections[0].startswith("Posición reducida")
        assert gates.check_risk_limits(corrected, rules, _snapshot()).status == PASS


class TestEventGate:
    def test_blocked_window(self, plan_factory) -> None:
        plan = dataclasses.replace(
            plan_factory(), event_filter=EventFilterStatus("BLOCKED", "RBI", "RBI_POLICY")
        )
        assert gates.check_event_filter(plan).status == BLOCKED

    def test_caution_passes_with_warning(self, plan_factory) -> None:
        plan = dataclasses.replace(
            plan_factory(), event_filter=EventFilterStatus("CAUTION", "CPI próximo", "CPI_DATA")
        )
        verdict = gates.check_event_filter(plan)
        assert verdict.status == PASS
        assert verdict.warnings

    def test_run_all_evaluates_every_gate(self, plan_factory, rules) -> None:
        plan = dataclasses.replace(
            plan_factory(htf_trend="NEUTRAL"),
            event_filter=EventFilterStatus("BLOCKED", "apertura", "SESSION_OPEN"),
        )
        verdicts = gates.run_all(plan, rules, _snapshot())
        assert tuple(v.gate for v in verdicts) == gates.GATE_ORDER
        assert [v.status for v in verdicts] == [PASS, PASS, FAIL, PASS, BLOCKED]
