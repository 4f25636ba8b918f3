"""Payment reconciliation tasks"""
from __future__ import annotations

from celery import shared_task

from ..utils.base_task import BaseTask
from ..utils.runner import run_async
from core.logging_config import bind_log_context, get_logger

logger = get_logger(__name__)


@shared_task(bind=True, base=BaseTask, name="payments.reconcile_pending")
def reconcile_pending(self, older_than_minutes: int | None = None, limit: int = 100) -> int:
    """Re-check pending ledger rows against their providers."""
    from infrastructure.dependencies import get_payment_service

    async def _run() -> int:
        bind_log_context(task_id=self.request.id, task_name=self.name)
        service = get_payment_service()
        try:
            return await service.reconcile_pending(older_than_minutes=older_than_minutes, limit=limit)
        finally:
            # provider HTTP clients are bound to this task's event loop
            await service.gateway.aclose()

    resolved = run_async(_run)
    logger.info("payment_reconcile_done", resolved=resolved)
    return resolved
