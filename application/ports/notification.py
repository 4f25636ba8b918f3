"""
Order notification port.

The application layer hands a template name plus structured data to the
notifier; delivery (email, queue) belongs to infrastructure. From the
engine's point of view dispatch is fire-and-forget.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


ORDER_CONFIRMATION = "order_confirmation"
ORDER_STATUS_UPDATE = "order_status_update"
ORDER_SHIPPED = "order_shipped"
PAYMENT_ALERT = "payment_alert"
CHECKOUT_RECOVERY = "checkout_recovery"


@runtime_checkable
class OrderNotifier(Protocol):
    async def notify(self, template: str, data: dict[str, Any]) -> None: ...

