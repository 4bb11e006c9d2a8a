"""
Portfolio update notifications.

Builds the {title, body, icon, badge, data} payload from a report summary and
hands it to an injected sender. Delivery itself (push services, subscription
storage) lives outside this package.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional, Protocol

from .config_loader import AppConfig
from .domain import ZERO
from .portfolio import PortfolioSummary

IST = timezone(timedelta(hours=5, minutes=30), "IST")
MARKET_OPEN = time(9, 15)
MARKET_CLOSE = time(15, 30)


class INotificationSender(Protocol):
    def send(self, payload: Dict[str, Any]) -> None: ...


@dataclass
class DispatchResult:
    status: str  # "sent" | "skipped"
    reason: str = ""
    payload: Optional[Dict[str, Any]] = None


def format_inr(value: Decimal) -> str:
    """ Whole rupees with Indian digit grouping: 1234567 -> 12,34,567. """
    rounded = int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    sign = "-" if rounded < 0 else ""
    digits = str(abs(rounded))
    if len(digits) <= 3:
        return sign + digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return sign + ",".join(groups + [tail])


def is_market_hours(now: Optional[datetime] = None) -> bool:
    """ Mon-Fri, 09:15-15:30 IST inclusive. Naive datetimes are taken as UTC. """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(IST)
    if local.weekday() >= 5:
        return False
    return MARKET_OPEN <= local.time().replace(second=0, microsecond=0) <= MARKET_CLOSE


def build_portfolio_notification(summary: PortfolioSummary, config: Optional[AppConfig] = None) -> Dict[str, Any]:
    config = config or AppConfig()
    previous_value = summary.total_market_value - summary.day_change
    day_percent = summary.day_change / previous_value * 100 if previous_value > 0 else ZERO

    body = (
        f"Profit: ₹{format_inr(summary.total_profit)} ({summary.profit_percent:.2f}%)\n"
        f"Day: ₹{format_inr(summary.day_change)} ({day_percent:.2f}%)"
    )
    return {
        "title": "Portfolio Update",
        "body": body,
        "icon": config.notification_icon,
        "badge": config.notification_badge,
        "data": {"url": config.notification_url},
    }


class NotificationDispatcher:
    def __init__(self, sender: INotificationSender, config: Optional[AppConfig] = None):
        self.sender = sender
        self.config = config or AppConfig()

    def dispatch(self, summary: PortfolioSummary, force: bool = False,
                 now: Optional[datetime] = None) -> DispatchResult:
        if not force and not is_market_hours(now):
            logging.info("Outside market hours. Skipping notification.")
            return DispatchResult(status="skipped", reason="outside_market_hours")

        payload = build_portfolio_notification(summary, self.config)
        self.sender.send(payload)
        logging.info(f"Notification sent: {payload['title']}")
        return DispatchResult(status="sent", payload=payload)
