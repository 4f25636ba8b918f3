import pytest

from application.dtos.payments import CardDetails, PaymentRequest, PaymentResult
from domain.common.exceptions import PaymentProviderUnavailableError
from infrastructure.external.payments import build_payment_gateway, create_provider
from infrastructure.external.payments.gateway import MultiProviderPaymentGateway
from infrastructure.external.payments.mock_client import MockPaymentClient


class SecondMock(MockPaymentClient):
    provider = "second"

    async def process_payment(self, request):
        # leave provider unset so the gateway has to stamp it
        return PaymentResult(success=True, transaction_id="second_1", status="successful")


def _request(provider):
    card = CardDetails(card_number="4242424242424242", expiry_month=1, expiry_year=2031, cvv="999")
    return PaymentRequest(order_id=1, amount=1000, provider=provider, card_details=card)


def test_factory_builds_enabled_providers():
    gateway = build_payment_gateway(["mock"])
    assert gateway.provider_keys == ["mock"]
    assert [p.key for p in gateway.available_providers()] == ["mock"]
    with pytest.raises(ValueError):
        create_provider("paypal")


def test_missing_credentials_fail_fast(monkeypatch):
    from core.settings import payment_settings

    monkeypatch.setattr(payment_settings.stripe, "secret_key", None)
    with pytest.raises(RuntimeError):
        create_provider("stripe")


@pytest.mark.asyncio
async def test_routes_by_key_and_stamps_provider():
    gateway = MultiProviderPaymentGateway([MockPaymentClient(), SecondMock()])
    first = await gateway.process_payment(_request("MOCK"))
    second = await gateway.process_payment(_request("second"))
    assert first.provider == "mock"
    assert second.provider == "second" and second.transaction_id == "second_1"


@pytest.mark.asyncio
async def test_unknown_provider_never_falls_back():
    gateway = MultiProviderPaymentGateway([MockPaymentClient()])
    with pytest.raises(PaymentProviderUnavailableError) as exc_info:
        await gateway.process_payment(_request("stripe"))
    assert exc_info.value.details["available"] == ["mock"]
    with pytest.raises(PaymentProviderUnavailableError):
        await gateway.capture_payment("tx", 100, "")
