import pytest

from core.config import settings
import infrastructure.dependencies as dependencies
from infrastructure.adapters.order_notifier import CeleryOrderNotifier
from infrastructure.tasks.config.beat import CELERY_BEAT_SCHEDULE
from infrastructure.tasks.config.celery import celery_app
from infrastructure.tasks.tasks.checkout import expire_overdue, recover_abandoned
from infrastructure.tasks.tasks.orders import repair_numbers
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


class RecordingDispatcher:
    def __init__(self):
        self.calls = []

    def send_order_notification(self, template, data):
        self.calls.append((template, data))


class FakeService:
    def __init__(self, result):
        self.result = result
        self.calls = []

    async def expire_overdue(self, limit=100):
        self.calls.append(limit)
        return self.result

    async def recover_abandoned(self, limit=100):
        self.calls.append(limit)
        return self.result

    async def repair_order_numbers(self, limit=100):
        self.calls.append(limit)
        return self.result


@pytest.mark.asyncio
async def test_notifier_hands_off_to_dispatcher():
    dispatcher = RecordingDispatcher()
    await CeleryOrderNotifier(dispatcher).notify("order_confirmation", {"order_id": 1, "email": "a@b.c"})
    assert dispatcher.calls == [("order_confirmation", {"order_id": 1, "email": "a@b.c"})]


def test_dispatcher_sends_by_name_when_not_eager(monkeypatch):
    sent = []
    monkeypatch.setattr(celery_app.conf, "task_always_eager", False)
    monkeypatch.setattr(celery_app, "send_task", lambda name, **kwargs: sent.append((name, kwargs)))
    TaskDispatcher().send_order_notification("order_shipped", {"order_id": 2})
    assert sent == [("notifications.send_order_email", {"kwargs": {"template": "order_shipped", "data": {"order_id": 2}}})]


def test_dispatcher_runs_in_process_when_eager(monkeypatch):
    monkeypatch.setattr(celery_app.conf, "task_always_eager", True)
    monkeypatch.setattr(celery_app, "send_task", lambda *a, **k: pytest.fail("broker must not be used"))
    TaskDispatcher().send_order_notification("order_status_update", {"order_id": 3})


def test_expiry_sweep_task(monkeypatch):
    service = FakeService(4)
    monkeypatch.setattr(dependencies, "get_checkout_service", lambda: service)
    result = expire_overdue.apply(kwargs={"limit": 25})
    assert result.get() == 4
    assert service.calls == [25]


def test_order_number_repair_task(monkeypatch):
    service = FakeService(0)
    monkeypatch.setattr(dependencies, "get_order_service", lambda: service)
    assert repair_numbers.apply().get() == 0
    assert service.calls == [100]


def test_recovery_sweep_task(monkeypatch):
    service = FakeService(2)
    monkeypatch.setattr(dependencies, "get_checkout_service", lambda: service)
    assert recover_abandoned.apply(kwargs={"limit": 10}).get() == 2
    assert service.calls == [10]
    assert CELERY_BEAT_SCHEDULE["checkout-recover-abandoned"]["task"] == recover_abandoned.name


def test_recovery_sweep_task_disabled(monkeypatch):
    service = FakeService(2)
    monkeypatch.setattr(dependencies, "get_checkout_service", lambda: service)
    monkeypatch.setattr(settings.store, "checkout_recovery_enabled", False)
    assert recover_abandoned.apply().get() == 0
    assert service.calls == []
