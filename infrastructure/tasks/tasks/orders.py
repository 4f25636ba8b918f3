"""Order maintenance tasks"""
from __future__ import annotations

from celery import shared_task

from ..utils.base_task import BaseTask
from ..utils.runner import run_async
from core.logging_config import bind_log_context, get_logger

logger = get_logger(__name__)


@shared_task(bind=True, base=BaseTask, name="orders.repair_numbers")
def repair_numbers(self, limit: int = 100) -> int:
    """Assign final order numbers to orders still carrying a provisional one."""
    from infrastructure.dependencies import get_order_service

    async def _run() -> int:
        bind_log_context(task_id=self.request.id, task_name=self.name)
        return await get_order_service().repair_order_numbers(limit=limit)

    repaired = run_async(_run)
    logger.info("order_number_repair_done", repaired=repaired)
    return repaired
