"""Order notification Celery tasks"""
from __future__ import annotations

from typing import Any, Dict

from celery import shared_task

from ..utils.base_task import BaseTask
from core.logging_config import get_logger

logger = get_logger(__name__)


@shared_task(
    bind=True,
    base=BaseTask,
    name="notifications.send_order_email",
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def send_order_email(self, template: str, data: Dict[str, Any]) -> None:
    """Send an order email (confirmation, status update, payment alert, cart recovery).

    Replace the body with real email integration (SMTP/ESP).
    """
    logger.info(
        "order_email_sent",
        template=template,
        order_id=data.get("order_id"),
        order_number=data.get("order_number"),
        checkout_id=data.get("checkout_id"),
        recipient=data.get("email"),
    )
