import pytest

from domain.common.exceptions import (
    DomainValidationException,
    DuplicatePaymentOperationException,
    PaymentAmountExceededException,
    PaymentTransactionNotFoundException,
)
from domain.payment.entity import PaymentTransaction, TransactionStatus, TransactionType
from domain.payment.events import PaymentReconciliationRequired, PaymentTransactionConfirmed
from domain.payment.service import RECONCILIATION_FLAG, PaymentLedgerService


def _txn(**overrides):
    values = dict(
        order_id=1,
        transaction_id="pi_1",
        transaction_type=TransactionType.AUTHORIZE,
        status=TransactionStatus.PENDING,
        amount=1000,
        provider="mock",
    )
    values.update(overrides)
    return PaymentTransaction(**values)


@pytest.mark.parametrize(
    "overrides",
    [{"order_id": 0}, {"transaction_id": ""}, {"provider": ""}, {"amount": -1}, {"amount": 10.5}, {"amount": True}],
)
def test_transaction_validation(overrides):
    with pytest.raises(DomainValidationException):
        _txn(**overrides)


def test_currency_defaults_and_status_moves_once():
    txn = _txn()
    assert txn.currency == "USD"
    assert txn.update_status(TransactionStatus.SUCCESSFUL) is True
    assert txn.update_status(TransactionStatus.SUCCESSFUL) is False
    with pytest.raises(DomainValidationException):
        txn.update_status(TransactionStatus.FAILED)


@pytest.mark.asyncio
async def test_guards_block_duplicates_and_over_refunds(uow_factory):
    async with uow_factory() as uow:
        ledger = PaymentLedgerService(uow.payment_transaction_repository)
        await ledger.record(1, "pi_1", TransactionType.CAPTURE, TransactionStatus.FAILED, 1000, "mock")
        await ledger.ensure_not_succeeded(1, TransactionType.CAPTURE)
        await ledger.record(1, "pi_1", TransactionType.CAPTURE, TransactionStatus.SUCCESSFUL, 1000, "mock")
        with pytest.raises(DuplicatePaymentOperationException):
            await ledger.ensure_not_succeeded(1, TransactionType.CAPTURE)

        await ledger.record(1, "pi_1", TransactionType.REFUND, TransactionStatus.SUCCESSFUL, 600, "mock")
        assert await ledger.refundable_amount(1, 1000) == 400
        assert await ledger.ensure_refundable(1, 1000, 400) == 1000
        with pytest.raises(PaymentAmountExceededException):
            await ledger.ensure_refundable(1, 1000, 401)


@pytest.mark.asyncio
async def test_confirm_updates_latest_row_in_place(uow_factory, store):
    async with uow_factory() as uow:
        ledger = PaymentLedgerService(uow.payment_transaction_repository, default_currency="NOK")
        first = await ledger.record(
            1, "pi_1", TransactionType.AUTHORIZE, TransactionStatus.PENDING, 1000, "mock",
            metadata={RECONCILIATION_FLAG: True, "error": "timeout"},
        )
        assert first.currency == "NOK"
        assert any(isinstance(e, PaymentReconciliationRequired) for e in ledger.get_domain_events())

        confirmed = await ledger.confirm("pi_1", TransactionStatus.SUCCESSFUL, provider="mock", raw_response="{}")
        assert confirmed.id == first.id
        assert RECONCILIATION_FLAG not in confirmed.metadata
        assert "confirmed_at" in confirmed.metadata
        assert isinstance(ledger.get_domain_events()[-1], PaymentTransactionConfirmed)

        with pytest.raises(PaymentTransactionNotFoundException):
            await ledger.confirm("missing", TransactionStatus.SUCCESSFUL)
    assert len(store.transactions) == 1
