"""
Payment ledger domain events.

Dataclass events record payment lifecycle facts for downstream handling
(e.g., notifications, alerting). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PaymentEvent:
    order_id: int
    provider: str
    transaction_id: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentTransactionRecorded(PaymentEvent):
    transaction_type: str = ""
    status: str = ""
    amount: int = 0
    currency: str = "USD"


@dataclass
class PaymentTransactionConfirmed(PaymentEvent):
    transaction_type: str = ""
    previous_status: str = ""
    new_status: str = ""


@dataclass
class PaymentReconciliationRequired(PaymentEvent):
    transaction_type: str = ""
    reason: Optional[str] = None
