import json

import httpx
import pytest

from application.dtos.payments import PaymentMethod, PaymentRequest
from core.settings import MobilePaySettings
from domain.common.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.mobilepay_client import MobilePayClient
from shared.codes.payment_codes import PaymentCode

FAST = dict(
    timeouts={"connect": 1.0, "read": 1.0, "write": 1.0, "total": 2.0},
    retry={"max": 1, "base": 0.0},
)


class AcmeClient(BasePaymentClient):
    provider = "acme"


def _acme(handler):
    return AcmeClient(transport=httpx.MockTransport(handler), **FAST)


@pytest.mark.asyncio
async def test_retries_then_succeeds():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"ok": True})

    client = _acme(handler)
    assert await client._request("GET", "https://acme.test/ping") == {"ok": True}
    assert len(calls) == 2
    await client.aclose()


@pytest.mark.asyncio
async def test_exhausted_5xx_is_recoverable():
    client = _acme(lambda request: httpx.Response(502))
    with pytest.raises(PaymentRecoverableError) as exc_info:
        await client._request("GET", "https://acme.test/ping")
    assert exc_info.value.provider_code == "502"


@pytest.mark.asyncio
async def test_rate_limit_is_recoverable():
    client = _acme(lambda request: httpx.Response(429))
    with pytest.raises(PaymentRecoverableError) as exc_info:
        await client._request("GET", "https://acme.test/ping")
    assert exc_info.value.code == PaymentCode.RATE_LIMITED


@pytest.mark.asyncio
async def test_timeout_is_recoverable():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(PaymentRecoverableError) as exc_info:
        await _acme(handler)._request("GET", "https://acme.test/ping")
    assert exc_info.value.code == PaymentCode.TIMEOUT


@pytest.mark.asyncio
async def test_client_error_is_a_rejection():
    client = _acme(lambda request: httpx.Response(400, json={"error": "bad card"}))
    with pytest.raises(PaymentProviderError) as exc_info:
        await client._request("POST", "https://acme.test/pay", json={})
    assert exc_info.value.provider_code == "400"


@pytest.mark.asyncio
async def test_unsupported_operations_raise():
    with pytest.raises(PaymentProviderError):
        await _acme(lambda request: httpx.Response(200)).capture_payment("tx", 100)


def _mobilepay(handler, **overrides):
    config = MobilePaySettings(
        client_id="id",
        client_secret="secret",
        subscription_key="sub",
        merchant_serial_number="123456",
        return_url="https://shop.test/return",
        **overrides,
    )
    return MobilePayClient(config, transport=httpx.MockTransport(handler), **FAST)


class FakeVipps:
    def __init__(self):
        self.token_calls = 0
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if request.url.path == "/accesstoken/get":
            self.token_calls += 1
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        if request.method == "POST" and request.url.path == "/epayment/v1/payments":
            body = json.loads(request.content)
            return httpx.Response(201, json={"redirectUrl": f"https://vipps.test/{body['reference']}"})
        if request.method == "GET":
            return httpx.Response(200, json={"state": "AUTHORIZED"})
        if request.url.path.endswith("/capture"):
            return httpx.Response(200, json={"aggregate": {"capturedAmount": json.loads(request.content)["modificationAmount"]}})
        return httpx.Response(404)


def _wallet_request():
    return PaymentRequest(
        order_id=7,
        amount=19900,
        currency="NOK",
        provider="mobilepay",
        payment_method=PaymentMethod.WALLET,
        phone_number="4712345678",
        idempotency_key="a" * 64,
    )


@pytest.mark.asyncio
async def test_mobilepay_payment_flow_reuses_token():
    vipps = FakeVipps()
    client = _mobilepay(vipps)

    result = await client.process_payment(_wallet_request())
    assert result.success and result.requires_action and result.status == "pending"
    assert result.transaction_id == "order-7-" + "a" * 24
    assert result.action_url.endswith(result.transaction_id)

    assert await client.verify_payment(result.transaction_id) is True
    captured = await client.capture_payment(result.transaction_id, 19900, idempotency_key="cap-1")
    assert captured.success
    assert vipps.token_calls == 1

    create = vipps.requests[1]
    assert create.headers["Authorization"] == "Bearer tok"
    assert create.headers["Idempotency-Key"] == "a" * 64
    assert json.loads(create.content)["customer"] == {"phoneNumber": "4712345678"}
    assert vipps.requests[-1].headers["Idempotency-Key"] == "cap-1"
    await client.aclose()


@pytest.mark.asyncio
async def test_mobilepay_rejects_cards_and_force_approve_outside_test_mode():
    client = _mobilepay(FakeVipps(), test_mode=False)
    card_request = _wallet_request().model_copy(update={"payment_method": PaymentMethod.CREDIT_CARD})
    assert (await client.process_payment(card_request)).success is False
    with pytest.raises(PaymentProviderError):
        await client.force_approve("order-7-x", "4712345678")


def test_mobilepay_requires_credentials():
    with pytest.raises(RuntimeError):
        MobilePayClient(MobilePaySettings())
