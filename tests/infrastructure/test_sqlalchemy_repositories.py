from datetime import datetime, timedelta, timezone
from functools import partial

import pytest

pytest.importorskip("aiosqlite")

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from application.dto import AddCheckoutItemDTO, AddressDTO, CustomerDetailsDTO  # noqa: E402
from application.dtos.payments import CardDetails  # noqa: E402
from application.services.checkout_service import CheckoutApplicationService  # noqa: E402
from application.services.payment_service import PaymentApplicationService  # noqa: E402
from domain.checkout.entity import CheckoutStatus  # noqa: E402
from domain.common.exceptions import DiscountCodeAlreadyExistsException  # noqa: E402
from domain.common.value_objects import GuestOwner, RegisteredOwner  # noqa: E402
from domain.order.entity import OrderStatus  # noqa: E402
from domain.payment.entity import PaymentTransaction, TransactionStatus, TransactionType  # noqa: E402
from infrastructure.external.payments.gateway import MultiProviderPaymentGateway  # noqa: E402
from infrastructure.external.payments.mock_client import MockPaymentClient  # noqa: E402
from infrastructure.models import Base  # noqa: E402
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork  # noqa: E402


async def _database():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    sessions = async_sessionmaker(bind=engine, expire_on_commit=False)
    return engine, partial(SQLAlchemyUnitOfWork, sessions)


@pytest.mark.asyncio
async def test_checkout_to_paid_order_roundtrip():
    engine, uow_factory = await _database()
    try:
        payments = PaymentApplicationService(uow_factory, MultiProviderPaymentGateway([MockPaymentClient()]))
        service = CheckoutApplicationService(uow_factory, payment_service=payments)
        owner = GuestOwner("sql-guest")
        address = AddressDTO(street="Strøget 1", city="København", country="DK")

        await service.add_item(owner, AddCheckoutItemDTO(product_id=1, quantity=1, price=1000, sku="A"))
        await service.add_item(owner, AddCheckoutItemDTO(product_id=1, quantity=2, price=1000, sku="A"))
        current = await service.add_item(owner, AddCheckoutItemDTO(product_id=2, quantity=1, price=250))
        assert [(i.product_id, i.quantity) for i in current.items] == [(1, 3), (2, 1)]
        assert current.total_amount == 3250

        await service.set_shipping_address(owner, address)
        await service.set_billing_address(owner, address)
        await service.set_customer_details(owner, CustomerDetailsDTO(email="guest@example.com", full_name="Guest"))
        card = CardDetails(card_number="4242424242424242", expiry_month=1, expiry_year=2031, cvv="123")
        completion = await service.complete(owner, payment_provider="mock", card_details=card)

        assert completion.payment.success
        assert completion.order.order_number.startswith("GS-")
        assert completion.order.order_number.endswith(f"{completion.order.id:06d}")

        async with uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(completion.order.id)
            assert order.status == OrderStatus.PAID
            assert order.owner.email == "guest@example.com"
            assert [i.quantity for i in order.items] == [3, 1]
            assert await uow.checkout_repository.get_active_by_session("sql-guest") is None
            [row] = await uow.payment_transaction_repository.list_by_order(order.id)
            assert row.status == TransactionStatus.SUCCESSFUL
            assert row.metadata["idempotency_key"]
            assert await uow.order_repository.list_with_provisional_number() == []
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_discount_usage_is_conditional(make_discount):
    engine, uow_factory = await _database()
    try:
        async with uow_factory() as uow:
            discount = await uow.discount_repository.create(make_discount(code="once", usage_limit=1))
        assert discount.code == "ONCE"

        async with uow_factory() as uow:
            assert await uow.discount_repository.try_increment_usage(discount.id) is True
            assert await uow.discount_repository.try_increment_usage(discount.id) is False

        async with uow_factory(readonly=True) as uow:
            stored = await uow.discount_repository.get_by_code("Once")
            assert stored.current_usage == 1

        with pytest.raises(DiscountCodeAlreadyExistsException):
            async with uow_factory() as uow:
                await uow.discount_repository.create(make_discount(code="ONCE"))
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_ledger_queries_and_rollback():
    engine, uow_factory = await _database()
    try:
        def txn(kind, status, amount, transaction_id="pi_1"):
            return PaymentTransaction(
                order_id=1,
                transaction_id=transaction_id,
                transaction_type=kind,
                status=status,
                amount=amount,
                provider="mock",
                metadata={"attempt": amount},
            )

        async with uow_factory() as uow:
            repo = uow.payment_transaction_repository
            await repo.create(txn(TransactionType.REFUND, TransactionStatus.SUCCESSFUL, 300))
            await repo.create(txn(TransactionType.REFUND, TransactionStatus.FAILED, 900))
            await repo.create(txn(TransactionType.REFUND, TransactionStatus.SUCCESSFUL, 200))
            pending = await repo.create(txn(TransactionType.CAPTURE, TransactionStatus.PENDING, 1000))

        with pytest.raises(RuntimeError):
            async with uow_factory() as uow:
                await uow.payment_transaction_repository.create(
                    txn(TransactionType.CANCEL, TransactionStatus.SUCCESSFUL, 0)
                )
                raise RuntimeError("boom")

        async with uow_factory(readonly=True) as uow:
            repo = uow.payment_transaction_repository
            assert await repo.sum_successful_amount_by_order_and_type(1, TransactionType.REFUND) == 500
            assert await repo.count_successful_by_order_and_type(1, TransactionType.REFUND) == 2
            latest = await repo.latest_by_order_and_type(1, TransactionType.REFUND)
            assert latest.amount == 200 and latest.metadata == {"attempt": 200}
            assert len(await repo.list_by_order(1)) == 4

            later = datetime.now(timezone.utc) + timedelta(minutes=1)
            assert [t.id for t in await repo.list_pending_older_than(later)] == [pending.id]
            assert await repo.list_pending_older_than(later - timedelta(hours=1)) == []
            found = await repo.get_by_transaction_id("pi_1", transaction_type=TransactionType.CAPTURE)
            assert found.id == pending.id
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_active_checkout_lookup_by_owner():
    engine, uow_factory = await _database()
    try:
        service = CheckoutApplicationService(uow_factory)
        user = await service.get_or_create(RegisteredOwner(42))
        async with uow_factory(readonly=True) as uow:
            found = await uow.checkout_repository.get_active_by_user(42)
            assert found.id == user.id
            assert await uow.checkout_repository.get_active_by_user(43) is None
    finally:
        await engine.dispose()


async def _expire_unswept(uow_factory, checkout_id):
    async with uow_factory() as uow:
        checkout = await uow.checkout_repository.get_by_id(checkout_id)
        checkout.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        await uow.checkout_repository.update(checkout)


@pytest.mark.asyncio
async def test_unswept_expired_checkout_is_replaced():
    engine, uow_factory = await _database()
    try:
        service = CheckoutApplicationService(uow_factory)
        owner = RegisteredOwner(7)
        stale = await service.add_item(owner, AddCheckoutItemDTO(product_id=1, quantity=1, price=100))
        await _expire_unswept(uow_factory, stale.id)

        fresh = await service.add_item(owner, AddCheckoutItemDTO(product_id=2, quantity=1, price=300))
        assert fresh.id != stale.id
        assert [i.product_id for i in fresh.items] == [2]

        async with uow_factory(readonly=True) as uow:
            old = await uow.checkout_repository.get_by_id(stale.id)
            assert old.status == CheckoutStatus.EXPIRED
            assert (await uow.checkout_repository.get_active_by_user(7)).id == fresh.id
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_guest_takes_over_when_user_checkout_expired_unswept():
    engine, uow_factory = await _database()
    try:
        service = CheckoutApplicationService(uow_factory)
        stale = await service.add_item(RegisteredOwner(8), AddCheckoutItemDTO(product_id=1, quantity=1, price=100))
        await _expire_unswept(uow_factory, stale.id)
        guest = await service.add_item(GuestOwner("g1"), AddCheckoutItemDTO(product_id=3, quantity=2, price=400))

        converted = await service.convert_guest("g1", 8)
        assert converted.id == guest.id
        assert [(i.product_id, i.quantity) for i in converted.items] == [(3, 2)]

        async with uow_factory(readonly=True) as uow:
            assert (await uow.checkout_repository.get_by_id(stale.id)).status == CheckoutStatus.EXPIRED
            assert (await uow.checkout_repository.get_active_by_user(8)).id == guest.id
            assert await uow.checkout_repository.get_active_by_session("g1") is None
    finally:
        await engine.dispose()
