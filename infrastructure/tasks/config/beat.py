"""Celery beat schedule for the periodic maintenance jobs.

Intervals come from ``settings.store`` so deployments tune them through
STORE__* environment variables instead of editing this module.
"""
from __future__ import annotations

from core.config import settings

CELERY_BEAT_SCHEDULE = {
    "checkout-expire-overdue": {
        "task": "checkout.expire_overdue",
        "schedule": settings.store.expiry_sweep_interval_seconds,
    },
    "checkout-recover-abandoned": {
        "task": "checkout.recover_abandoned",
        "schedule": settings.store.recovery_interval_seconds,
    },
    "orders-repair-numbers": {
        "task": "orders.repair_numbers",
        "schedule": settings.store.order_number_repair_interval_seconds,
    },
    "payments-reconcile-pending": {
        "task": "payments.reconcile_pending",
        "schedule": settings.store.reconcile_interval_seconds,
    },
}
