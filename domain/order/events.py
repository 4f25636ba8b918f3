"""
Order domain events.

Dataclass events record order lifecycle facts for downstream handling
(e.g., customer notifications). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class OrderEvent:
    order_id: int
    order_number: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OrderPlaced(OrderEvent):
    user_id: Optional[int] = None
    email: Optional[str] = None
    final_amount: int = 0
    currency: str = "USD"


@dataclass
class OrderStatusChanged(OrderEvent):
    previous_status: str = ""
    new_status: str = ""
    email: Optional[str] = None


@dataclass
class OrderNumberRepaired(OrderEvent):
    provisional_number: str = ""
