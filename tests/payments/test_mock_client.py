import pytest

from application.dtos.payments import CardDetails, PaymentMethod, PaymentRequest
from domain.common.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.mock_client import MockPaymentClient


def _request(card_number=None, **kwargs):
    card = None
    if card_number:
        card = CardDetails(card_number=card_number, expiry_month=6, expiry_year=2030, cvv="123")
    return PaymentRequest(order_id=1, amount=1000, card_details=card, **kwargs)


@pytest.mark.asyncio
async def test_approve_capture_refund_cycle():
    client = MockPaymentClient()
    result = await client.process_payment(_request("4242 4242 4242 4242"))
    assert result.success and result.status == "successful"
    assert await client.verify_payment(result.transaction_id) is True

    captured = await client.capture_payment(result.transaction_id, 600)
    assert captured.raw == {"captured": 600}
    over = await client.capture_payment(result.transaction_id, 500)
    assert over.success is False

    assert (await client.refund_payment(result.transaction_id, 1000)).success is False
    refunded = await client.refund_payment(result.transaction_id, 600)
    assert refunded.success and refunded.raw == {"refunded": 600}
    assert (await client.refund_payment(result.transaction_id, 1)).success is False


@pytest.mark.asyncio
async def test_card_driven_scenarios():
    client = MockPaymentClient()
    declined = await client.process_payment(_request("4000000000000002"))
    assert declined.success is False and declined.transaction_id

    action = await client.process_payment(_request("4000000000003220"))
    assert action.requires_action and action.action_url.endswith(action.transaction_id)
    assert await client.verify_payment(action.transaction_id) is False

    with pytest.raises(PaymentRecoverableError):
        await client.process_payment(_request("4000000000000119"))


@pytest.mark.asyncio
async def test_idempotent_replay_returns_same_result():
    client = MockPaymentClient()
    first = await client.process_payment(_request("4242424242424242", idempotency_key="k1"))
    again = await client.process_payment(_request("4242424242424242", idempotency_key="k1"))
    assert first.transaction_id == again.transaction_id


@pytest.mark.asyncio
async def test_wallet_requires_phone_and_unknown_ids_fail():
    client = MockPaymentClient()
    assert (await client.process_payment(_request(payment_method=PaymentMethod.WALLET))).success is False
    wallet = await client.process_payment(_request(payment_method=PaymentMethod.WALLET, phone_number="+4712345678"))
    assert wallet.success
    with pytest.raises(PaymentProviderError):
        await client.verify_payment("mock_missing")


@pytest.mark.asyncio
async def test_cancel_only_before_capture():
    client = MockPaymentClient()
    pending = await client.process_payment(_request("4000000000003220"))
    assert (await client.cancel_payment(pending.transaction_id)).success
    assert (await client.force_approve(pending.transaction_id)).success is False

    paid = await client.process_payment(_request("4242424242424242"))
    await client.capture_payment(paid.transaction_id, 1000)
    assert (await client.cancel_payment(paid.transaction_id)).success is False
