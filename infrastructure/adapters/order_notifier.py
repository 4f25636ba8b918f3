"""Infrastructure adapter that implements the application OrderNotifier
by handing notifications to the Celery email task.
"""
from __future__ import annotations

from typing import Any, Optional

from application.ports.notification import OrderNotifier
from core.logging_config import get_logger
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


logger = get_logger(__name__)


class CeleryOrderNotifier(OrderNotifier):
    def __init__(self, dispatcher: Optional[TaskDispatcher] = None):
        self.dispatcher = dispatcher or TaskDispatcher()

    async def notify(self, template: str, data: dict[str, Any]) -> None:
        self.dispatcher.send_order_notification(template, data)
        logger.debug("order_notification_enqueued", template=template, order_id=data.get("order_id"))
