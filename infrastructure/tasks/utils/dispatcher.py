"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from ..config.celery import celery_app


class TaskDispatcher:
    """Internal facade used by adapters to schedule tasks."""

    def send_order_notification(self, template: str, data: Dict[str, Any]) -> None:
        """Fire-and-forget order email (confirmation, status update, alerts)."""
        kwargs = {"template": template, "data": data}
        if celery_app.conf.task_always_eager:
            # send_task bypasses eager mode, so run the registered task in-process
            from ..tasks.notifications import send_order_email

            send_order_email.apply(kwargs=kwargs)
            return
        celery_app.send_task("notifications.send_order_email", kwargs=kwargs)

