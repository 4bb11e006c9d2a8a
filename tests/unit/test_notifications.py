from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import Mock

import pytest

from py_holdings.config_loader import AppConfig
from py_holdings.notifications import (
    NotificationDispatcher, build_portfolio_notification, format_inr, is_market_hours
)
from py_holdings.portfolio import PortfolioSummary

# 2024-01-08 is a Monday
MONDAY_0930_IST = datetime(2024, 1, 8, 4, 0, tzinfo=timezone.utc)
MONDAY_1600_IST = datetime(2024, 1, 8, 10, 30, tzinfo=timezone.utc)
SATURDAY_1100_IST = datetime(2024, 1, 6, 5, 30, tzinfo=timezone.utc)


@pytest.fixture
def summary():
    return PortfolioSummary(
        total_invested=Decimal("9876543"),
        total_market_value=Decimal("1010000"),
        total_profit=Decimal("1234567.4"),
        profit_percent=Decimal("12.5"),
        day_change=Decimal("10000"),
        day_change_percent=Decimal("1"),
    )


class TestFormatting:

    @pytest.mark.parametrize("value,expected", [
        (Decimal("0"), "0"),
        (Decimal("999"), "999"),
        (Decimal("1000"), "1,000"),
        (Decimal("100000"), "1,00,000"),
        (Decimal("1234567.4"), "12,34,567"),
        (Decimal("-1234.6"), "-1,235"),
    ])
    def test_indian_grouping(self, value, expected):
        assert format_inr(value) == expected

    def test_payload_shape(self, summary):
        payload = build_portfolio_notification(summary)

        assert payload["title"] == "Portfolio Update"
        assert payload["body"] == "Profit: ₹12,34,567 (12.50%)\nDay: ₹10,000 (1.00%)"
        assert payload["icon"] == "/mainphoto.png"
        assert payload["badge"] == "/logo192.png"
        assert payload["data"] == {"url": "/"}

    def test_payload_uses_config(self, summary):
        config = AppConfig(notification_icon="/i.png", notification_badge="/b.png", notification_url="/dash")

        payload = build_portfolio_notification(summary, config)

        assert (payload["icon"], payload["badge"], payload["data"]["url"]) == ("/i.png", "/b.png", "/dash")


class TestMarketHours:

    def test_inside_hours(self):
        assert is_market_hours(MONDAY_0930_IST)

    def test_after_close(self):
        assert not is_market_hours(MONDAY_1600_IST)

    def test_weekend(self):
        assert not is_market_hours(SATURDAY_1100_IST)

    def test_boundaries_are_inclusive(self):
        assert is_market_hours(datetime(2024, 1, 8, 3, 45, tzinfo=timezone.utc))   # 09:15 IST
        assert is_market_hours(datetime(2024, 1, 8, 10, 0, tzinfo=timezone.utc))   # 15:30 IST
        assert not is_market_hours(datetime(2024, 1, 8, 3, 44, tzinfo=timezone.utc))


class TestDispatcher:

    def test_skips_outside_market_hours(self, summary):
        sender = Mock()

        result = NotificationDispatcher(sender).dispatch(summary, now=SATURDAY_1100_IST)

        assert result.status == "skipped"
        assert result.reason == "outside_market_hours"
        sender.send.assert_not_called()

    def test_force_sends_anyway(self, summary):
        sender = Mock()

        result = NotificationDispatcher(sender).dispatch(summary, force=True, now=SATURDAY_1100_IST)

        assert result.status == "sent"
        sender.send.assert_called_once_with(result.payload)

    def test_sends_during_market_hours(self, summary):
        sender = Mock()

        result = NotificationDispatcher(sender).dispatch(summary, now=MONDAY_0930_IST)

        assert result.status == "sent"
        assert sender.send.call_count == 1
