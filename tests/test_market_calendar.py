"""Tests del calendario de sesión IST y del filtro de eventos."""

from datetime import datetime

import pytest

from scalpgate.domain.services.market_calendar import IST, EconomicEvent, MarketCalendar


def at(hour: int, minute: int = 0, day: int = 12) -> float:
    """Instante IST de marzo 2024 (el 12 es martes, el 16 sábado)."""
    return datetime(2024, 3, day, hour, minute, tzinfo=IST).timestamp()


@pytest.fixture
def calendar() -> MarketCalendar:
    return MarketCalendar(caution_minutes=10)


class TestSession:
    def test_market_hours(self, calendar) -> None:
        assert not calendar.is_market_open(at(9, 14))
        assert calendar.is_market_open(at(9, 15))
        assert calendar.is_market_open(at(15, 30))
        assert not calendar.is_market_open(at(15, 31))

    def test_weekend_is_closed(self, calendar) -> None:
        assert not calendar.is_market_open(at(11, 0, day=16))
        assert calendar.session(at(11, 0, day=16)) == "CLOSED"

    @pytest.mark.parametrize(
        "hour, minute, expected",
        [(9, 30, "MORNING"), (12, 0, "MIDDAY"), (14, 0, "AFTERNOON"), (16, 0, "CLOSED")],
    )
    def test_session_names(self, calendar, hour, minute, expected) -> None:
        assert calendar.session(at(hour, minute)) == expected

    def test_liquid_windows(self, calendar) -> None:
        assert calendar.is_liquid_window(at(9, 25))
        assert calendar.is_liquid_window(at(11, 0))
        assert not calendar.is_liquid_window(at(12, 30))
        assert calendar.is_liquid_window(at(14, 0))
        assert not calendar.is_liquid_window(at(15, 10))

    def test_status_reports_minutes_to_close(self, calendar) -> None:
        status = calendar.status(at(15, 0))
        assert status.is_open
        assert status.minutes_to_close == 30
        assert calendar.status(at(16, 0)).minutes_to_close is None

    def test_naive_datetime_is_ist(self, calendar) -> None:
        naive = datetime(2024, 3, 12, 10, 0)
        assert calendar.to_ist(naive).hour == 10
        assert calendar.trading_date(naive) == "2024-03-12"

    def test_next_weekly_expiry_is_thursday_close(self, calendar) -> None:
        expiry = calendar.next_weekly_expiry(at(10, 0))
        assert expiry.weekday() == 3
        assert (expiry.day, expiry.hour, expiry.minute) == (14, 15, 30)

    def test_expiry_rolls_after_thursday_close(self, calendar) -> None:
        expiry = calendar.next_weekly_expiry(at(15, 45, day=14))
        assert expiry.day == 21


class TestEventFilter:
    def test_session_open_blackout(self, calendar) -> None:
        status = calendar.event_filter(at(9, 20))
        assert status.status == "BLOCKED"
        assert status.next_event == "SESSION_OPEN"

    def test_caution_margin_after_blackout(self, calendar) -> None:
        assert calendar.event_filter(at(9, 30)).status == "CAUTION"
        assert calendar.event_filter(at(9, 35)).status == "CLEAR"

    def test_session_close_blackout(self, calendar) -> None:
        assert calendar.event_filter(at(15, 26)).status == "BLOCKED"
        assert calendar.event_filter(at(15, 20)).status == "CAUTION"

    def test_asymmetric_window_for_policy_event(self, calendar) -> None:
        calendar.add_event(EconomicEvent("RBI_POLICY", datetime(2024, 3, 12, 12, 0, tzinfo=IST)))
        assert calendar.event_filter(at(11, 25)).status == "CAUTION"
        assert calendar.event_filter(at(11, 45)).status == "BLOCKED"
        assert calendar.event_filter(at(12, 50)).status == "BLOCKED"
        assert calendar.event_filter(at(13, 5)).status == "CAUTION"
        assert calendar.event_filter(at(13, 20)).status == "CLEAR"

    def test_low_impact_event_only_warns(self, calendar) -> None:
        event = EconomicEvent(
            "AUCTION", datetime(2024, 3, 12, 12, 0, tzinfo=IST), impact="LOW", description="Subasta T-bill"
        )
        status = calendar.event_filter(at(11, 30), events=[event])
        assert status.status == "CAUTION"
        assert "Subasta" in status.reason

    def test_blocked_has_priority_over_caution(self, calendar) -> None:
        low = EconomicEvent("AUCTION", datetime(2024, 3, 12, 9, 30, tzinfo=IST), impact="LOW")
        assert calendar.event_filter(at(9, 20), events=[low]).status == "BLOCKED"

    def test_upcoming_events(self, calendar) -> None:
        cpi = EconomicEvent("CPI_DATA", datetime(2024, 3, 12, 17, 30, tzinfo=IST))
        calendar.add_event(cpi)
        assert calendar.upcoming_events(at(10, 0)) == [cpi]
        assert calendar.upcoming_events(at(18, 0)) == []
