"""Order confirmation notifier.

Email delivery is owned by an external provider; this module only renders the
confirmation text and hands it to a notifier. `LogNotifier` is the shipped
implementation and just logs the rendered message.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from src.models.database import Order

logger = logging.getLogger(__name__)


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"


def render_order_confirmation(order: Order) -> str:
    lines = [
        f"Hi {order.customer_name},",
        "",
        f"Thanks for your order! Your tracking ID is {order.tracking_id}.",
        "",
    ]
    for item in order.items or []:
        lines.append(
            f"  {item['quantity']} x {item['name']} @ {float(item['price']):.2f}")
    lines.extend([
        "",
        f"Total: {float(order.total_amount):.2f}",
        f"Delivering to: {order.delivery_address}",
    ])
    return "\n".join(lines)


class BaseNotifier(ABC):
    """Abstract base class for order notifiers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""

    @abstractmethod
    async def send_order_confirmation(self, order: Order) -> NotificationResult:
        """Send the order confirmation for a freshly created order."""


class LogNotifier(BaseNotifier):
    """Logs the rendered confirmation instead of delivering it."""

    @property
    def provider_name(self) -> str:
        return "log"

    async def send_order_confirmation(self, order: Order) -> NotificationResult:
        body = render_order_confirmation(order)
        logger.info("Order confirmation for %s to %s:\n%s",
                    order.tracking_id, order.customer_email, body)
        return NotificationResult(success=True, message_id=order.tracking_id, provider=self.provider_name)


def get_notifier() -> BaseNotifier:
    """FastAPI dependency returning the configured notifier."""
    return LogNotifier()
