"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings, and provide an
in-memory unit of work so application services run without a database.
"""
import copy
import dataclasses
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PAYMENT__ENABLED_PROVIDERS", '["mock"]')

from domain.checkout.entity import CheckoutStatus  # noqa: E402
from domain.checkout.repository import CheckoutRepository  # noqa: E402
from domain.common.exceptions import (  # noqa: E402
    CheckoutNotFoundException,
    DiscountCodeAlreadyExistsException,
    DiscountNotFoundException,
    OrderNotFoundException,
    PaymentTransactionNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork  # noqa: E402
from domain.common.value_objects import GuestOwner, RegisteredOwner  # noqa: E402
from domain.discount.entity import Discount, DiscountMethod, DiscountType  # noqa: E402
from domain.discount.repository import DiscountRepository  # noqa: E402
from domain.order.repository import OrderRepository  # noqa: E402
from domain.payment.entity import TransactionStatus  # noqa: E402
from domain.payment.repository import PaymentTransactionRepository  # noqa: E402
from domain.shipping.repository import (  # noqa: E402
    ShippingMethodRepository,
    ShippingRateRepository,
    ShippingZoneRepository,
)


class InMemoryStore:
    """Tables keyed by id; repositories hand out copies so only update() persists changes."""

    TABLES = ("checkouts", "orders", "discounts", "methods", "zones", "rates", "transactions")

    def __init__(self):
        for name in self.TABLES:
            setattr(self, name, {})
        self._seq = 0
        self.commits = 0
        self.rollbacks = 0

    def next_id(self) -> int:
        self._seq += 1
        return self._seq

    def snapshot(self) -> dict:
        return {name: copy.deepcopy(getattr(self, name)) for name in self.TABLES}

    def restore(self, snapshot: dict) -> None:
        for name, rows in snapshot.items():
            setattr(self, name, rows)


class _Repo:
    table = ""

    def __init__(self, store: InMemoryStore):
        self.store = store

    @property
    def rows(self) -> dict:
        return getattr(self.store, self.table)

    def _save(self, entity):
        if entity.id is None:
            entity.id = self.store.next_id()
        self.rows[entity.id] = copy.deepcopy(entity)
        return copy.deepcopy(entity)

    def _get(self, entity_id):
        row = self.rows.get(entity_id)
        return copy.deepcopy(row) if row is not None else None


class InMemoryCheckoutRepository(_Repo, CheckoutRepository):
    table = "checkouts"

    def _save(self, checkout):
        for item in checkout.items:
            if item.id is None:
                item.id = self.store.next_id()
        return super()._save(checkout)

    async def create(self, checkout):
        return self._save(checkout)

    async def get_by_id(self, checkout_id, *, for_update=False):
        return self._get(checkout_id)

    def _active(self, predicate):
        matches = [
            c for c in self.rows.values() if c.status == CheckoutStatus.ACTIVE and predicate(c.owner)
        ]
        return copy.deepcopy(max(matches, key=lambda c: c.id)) if matches else None

    async def get_active_by_user(self, user_id, *, for_update=False):
        return self._active(lambda o: isinstance(o, RegisteredOwner) and o.user_id == user_id)

    async def get_active_by_session(self, session_id, *, for_update=False):
        return self._active(lambda o: isinstance(o, GuestOwner) and o.session_id == session_id)

    async def update(self, checkout):
        if checkout.id not in self.rows:
            raise CheckoutNotFoundException(checkout.id)
        return self._save(checkout)

    async def delete(self, checkout_id):
        return self.rows.pop(checkout_id, None) is not None

    async def list_expired_active(self, now, limit=100):
        rows = [c for c in self.rows.values() if c.status == CheckoutStatus.ACTIVE and c.expires_at < now]
        return [copy.deepcopy(c) for c in rows[:limit]]


class InMemoryOrderRepository(_Repo, OrderRepository):
    table = "orders"

    async def create(self, order):
        order.id = self.store.next_id()
        order.items = [dataclasses.replace(i, id=self.store.next_id()) for i in order.items]
        return self._save(order)

    async def get_by_id(self, order_id, *, for_update=False):
        return self._get(order_id)

    def _first(self, predicate):
        for order in self.rows.values():
            if predicate(order):
                return copy.deepcopy(order)
        return None

    async def get_by_order_number(self, order_number):
        return self._first(lambda o: o.order_number == order_number)

    async def list_by_user(self, user_id, skip=0, limit=100, status=None):
        rows = [
            o for o in self.rows.values()
            if o.user_id == user_id and (status is None or o.status == status)
        ]
        rows.sort(key=lambda o: o.created_at, reverse=True)
        return [copy.deepcopy(o) for o in rows[skip:skip + limit]]

    async def list_with_provisional_number(self, limit=100):
        rows = [o for o in self.rows.values() if o.is_number_provisional()]
        return [copy.deepcopy(o) for o in rows[:limit]]

    async def update(self, order):
        if order.id not in self.rows:
            raise OrderNotFoundException(order.id)
        return self._save(order)


class InMemoryDiscountRepository(_Repo, DiscountRepository):
    table = "discounts"

    async def create(self, discount):
        if await self.get_by_code(discount.code) is not None:
            raise DiscountCodeAlreadyExistsException(discount.code)
        discount.code = discount.code.upper()
        return self._save(discount)

    async def get_by_id(self, discount_id):
        return self._get(discount_id)

    async def get_by_code(self, code):
        for discount in self.rows.values():
            if discount.code.upper() == (code or "").upper():
                return copy.deepcopy(discount)
        return None

    async def update(self, discount):
        if discount.id not in self.rows:
            raise DiscountNotFoundException(discount.id)
        return self._save(discount)

    async def delete(self, discount_id):
        return self.rows.pop(discount_id, None) is not None

    async def list_valid(self, now, skip=0, limit=100):
        rows = [d for d in self.rows.values() if d.is_valid(now)]
        return [copy.deepcopy(d) for d in rows[skip:skip + limit]]

    async def try_increment_usage(self, discount_id):
        discount = self.rows.get(discount_id)
        if discount is None:
            return False
        if discount.usage_limit and discount.current_usage >= discount.usage_limit:
            return False
        discount.current_usage += 1
        return True


class InMemoryShippingMethodRepository(_Repo, ShippingMethodRepository):
    table = "methods"

    async def create(self, method):
        return self._save(method)

    async def get_by_id(self, method_id):
        return self._get(method_id)

    async def get_by_ids(self, method_ids):
        return [copy.deepcopy(self.rows[i]) for i in method_ids if i in self.rows]

    async def update(self, method):
        return self._save(method)


class InMemoryShippingZoneRepository(_Repo, ShippingZoneRepository):
    table = "zones"

    async def create(self, zone):
        return self._save(zone)

    async def get_by_id(self, zone_id):
        return self._get(zone_id)

    async def list_active(self):
        return [copy.deepcopy(z) for z in self.rows.values() if z.active]

    async def update(self, zone):
        return self._save(zone)


class InMemoryShippingRateRepository(_Repo, ShippingRateRepository):
    table = "rates"

    async def create(self, rate):
        return self._save(rate)

    async def get_by_id(self, rate_id):
        return self._get(rate_id)

    async def list_by_zone_ids(self, zone_ids, active_only=True):
        zone_ids = set(zone_ids)
        return [
            copy.deepcopy(r) for r in self.rows.values()
            if r.shipping_zone_id in zone_ids and (r.active or not active_only)
        ]

    async def update(self, rate):
        return self._save(rate)


class InMemoryPaymentTransactionRepository(_Repo, PaymentTransactionRepository):
    table = "transactions"

    async def create(self, transaction):
        return self._save(transaction)

    async def get_by_id(self, transaction_pk):
        return self._get(transaction_pk)

    async def get_by_transaction_id(self, transaction_id, *, provider=None, transaction_type=None):
        rows = [
            t for t in self.rows.values()
            if t.transaction_id == transaction_id
            and (provider is None or t.provider == provider)
            and (transaction_type is None or t.transaction_type == transaction_type)
        ]
        return copy.deepcopy(max(rows, key=lambda t: t.id)) if rows else None

    async def list_by_order(self, order_id):
        return [copy.deepcopy(t) for t in sorted(self.rows.values(), key=lambda t: t.id) if t.order_id == order_id]

    async def update(self, transaction):
        if transaction.id not in self.rows:
            raise PaymentTransactionNotFoundException(transaction.id)
        return self._save(transaction)

    async def latest_by_order_and_type(self, order_id, transaction_type):
        rows = [
            t for t in self.rows.values()
            if t.order_id == order_id and t.transaction_type == transaction_type
        ]
        return copy.deepcopy(max(rows, key=lambda t: t.id)) if rows else None

    def _successful(self, order_id, transaction_type):
        return [
            t for t in self.rows.values()
            if t.order_id == order_id
            and t.transaction_type == transaction_type
            and t.status == TransactionStatus.SUCCESSFUL
        ]

    async def count_successful_by_order_and_type(self, order_id, transaction_type):
        return len(self._successful(order_id, transaction_type))

    async def sum_successful_amount_by_order_and_type(self, order_id, transaction_type):
        return sum(t.amount for t in self._successful(order_id, transaction_type))

    async def list_pending_older_than(self, cutoff, limit=100):
        rows = [
            t for t in sorted(self.rows.values(), key=lambda t: t.id)
            if t.status == TransactionStatus.PENDING and t.created_at < cutoff
        ]
        return [copy.deepcopy(t) for t in rows[:limit]]


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: InMemoryStore, *, readonly: bool = False):
        super().__init__(readonly=readonly)
        self.store = store
        self._snapshot = None

    async def __aenter__(self):
        self._committed = False
        self._snapshot = self.store.snapshot()
        self.checkout_repository = InMemoryCheckoutRepository(self.store)
        self.order_repository = InMemoryOrderRepository(self.store)
        self.discount_repository = InMemoryDiscountRepository(self.store)
        self.shipping_method_repository = InMemoryShippingMethodRepository(self.store)
        self.shipping_zone_repository = InMemoryShippingZoneRepository(self.store)
        self.shipping_rate_repository = InMemoryShippingRateRepository(self.store)
        self.payment_transaction_repository = InMemoryPaymentTransactionRepository(self.store)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await super().__aexit__(exc_type, exc, tb)
        if self._readonly and not exc:
            # read-only work never persists
            self.store.restore(self._snapshot)

    async def commit(self):
        self._committed = True
        self.store.commits += 1

    async def rollback(self):
        self.store.restore(self._snapshot)
        self.store.rollbacks += 1


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def notify(self, template, data):
        self.sent.append((template, data))

    def templates(self):
        return [template for template, _ in self.sent]


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    def factory(readonly: bool = False):
        return InMemoryUnitOfWork(store, readonly=readonly)

    return factory


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def make_discount(now):
    def factory(**overrides):
        values = dict(
            id=None,
            code="SAVE20",
            discount_type=DiscountType.BASKET,
            method=DiscountMethod.PERCENTAGE,
            value=Decimal("20"),
            start_date=now - timedelta(days=1),
            end_date=now + timedelta(days=30),
        )
        values.update(overrides)
        return Discount(**values)

    return factory
