"""Checkout maintenance tasks"""
from __future__ import annotations

from celery import shared_task

from ..utils.base_task import BaseTask
from ..utils.runner import run_async
from core.logging_config import bind_log_context, get_logger

logger = get_logger(__name__)


@shared_task(bind=True, base=BaseTask, name="checkout.expire_overdue")
def expire_overdue(self, limit: int = 100) -> int:
    """Expire active checkouts whose ``expires_at`` has passed."""
    from infrastructure.dependencies import get_checkout_service

    async def _run() -> int:
        bind_log_context(task_id=self.request.id, task_name=self.name)
        return await get_checkout_service().expire_overdue(limit=limit)

    expired = run_async(_run)
    logger.info("checkout_expiry_sweep_done", expired=expired)
    return expired


@shared_task(bind=True, base=BaseTask, name="checkout.recover_abandoned")
def recover_abandoned(self, limit: int = 100) -> int:
    """Mark expired carts that left an email as abandoned and send a recovery email."""
    from core.config import settings
    from infrastructure.dependencies import get_checkout_service

    if not settings.store.checkout_recovery_enabled:
        return 0

    async def _run() -> int:
        bind_log_context(task_id=self.request.id, task_name=self.name)
        return await get_checkout_service().recover_abandoned(limit=limit)

    sent = run_async(_run)
    logger.info("checkout_recovery_sweep_done", sent=sent)
    return sent
