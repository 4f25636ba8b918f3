"""
MobilePay (Vipps ePayment API) adapter over httpx.

Payments are wallet-only and always require the customer to approve in the
app, so ``process_payment`` returns ``requires_action`` with the redirect URL.
The payment ``reference`` is used as the transaction id for every later call.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any, Optional

from application.dtos.payments import PaymentMethod, PaymentRequest, PaymentResult, ProviderInfo
from core.settings import MobilePaySettings, payment_settings
from domain.common.exceptions import PaymentProviderError
from infrastructure.external.payments.base import BasePaymentClient
from shared.codes.payment_codes import PaymentCode


TEST_BASE_URL = "https://apitest.vipps.no"
PROD_BASE_URL = "https://api.vipps.no"
ACCESS_TOKEN_PATH = "/accesstoken/get"
PAYMENTS_PATH = "/epayment/v1/payments"
# refresh the token this many seconds before it expires
TOKEN_EXPIRY_MARGIN = 300


class MobilePayClient(BasePaymentClient):
    provider = "mobilepay"

    def __init__(self, config: Optional[MobilePaySettings] = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.config = config or payment_settings.mobilepay
        if not (self.config.client_id and self.config.client_secret and self.config.subscription_key):
            raise RuntimeError("PAYMENT__MOBILEPAY__* credentials not configured")
        self.base_url = TEST_BASE_URL if self.config.test_mode else PROD_BASE_URL
        self._access_token: Optional[str] = None
        self._expires_at = 0.0
        self._token_lock = asyncio.Lock()

    def info(self) -> ProviderInfo:
        return ProviderInfo(
            key=self.provider,
            name="MobilePay",
            description="Pay with MobilePay app",
            icon_url="/assets/images/mobilepay-logo.png",
            methods=[PaymentMethod.WALLET],
        )

    def _base_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Ocp-Apim-Subscription-Key": self.config.subscription_key or "",
            "Merchant-Serial-Number": self.config.merchant_serial_number or "",
            "Vipps-System-Name": self.config.payment_description,
            "Vipps-System-Version": "1.0.0",
        }

    async def _ensure_access_token(self) -> str:
        async with self._token_lock:
            if self._access_token and time.monotonic() < self._expires_at:
                return self._access_token
            headers = {
                **self._base_headers(),
                "client_id": self.config.client_id or "",
                "client_secret": self.config.client_secret or "",
            }
            data = await self._request("POST", self.base_url + ACCESS_TOKEN_PATH, headers=headers, expected=(200,))
            token = data.get("access_token")
            if not token:
                raise PaymentProviderError("missing access_token in token response", provider=self.provider)
            expires_in = int(data.get("expires_in") or 0)
            self._access_token = token
            self._expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN, 0)
            self._log("mobilepay_token_refreshed", expires_in=expires_in)
            return token

    async def _headers(self, idempotency_key: Optional[str] = None) -> dict[str, str]:
        headers = {**self._base_headers(), "Authorization": f"Bearer {await self._ensure_access_token()}"}
        headers["Idempotency-Key"] = idempotency_key or uuid.uuid4().hex
        return headers

    def _payment_url(self, reference: str, action: str = "") -> str:
        path = f"{PAYMENTS_PATH}/{self._require_transaction_id(reference, self.provider)}"
        return self.base_url + path + (f"/{action}" if action else "")

    def _modification(self, amount: int) -> dict[str, Any]:
        return {"modificationAmount": {"currency": self.config.market, "value": self._require_amount(amount, self.provider)}}

    async def process_payment(self, request: PaymentRequest) -> PaymentResult:
        if request.payment_method != PaymentMethod.WALLET:
            return self._declined("unsupported payment method for MobilePay, only wallet is supported")

        suffix = request.idempotency_key[:24] if request.idempotency_key else uuid.uuid4().hex
        reference = f"order-{request.order_id}-{suffix}"
        body: dict[str, Any] = {
            "amount": {"currency": request.currency, "value": request.amount},
            "paymentMethod": {"type": "WALLET"},
            "reference": reference,
            "returnUrl": request.return_url or self.config.return_url,
            "userFlow": "WEB_REDIRECT",
            "paymentDescription": self.config.payment_description,
        }
        if request.phone_number:
            body["customer"] = {"phoneNumber": request.phone_number}

        try:
            data = await self._request(
                "POST",
                self.base_url + PAYMENTS_PATH,
                headers=await self._headers(request.idempotency_key),
                json=body,
                expected=(201,),
            )
        except PaymentProviderError as exc:
            return self._declined(exc.message, reference)

        redirect_url = data.get("redirectUrl")
        if not redirect_url:
            return self._declined("missing redirect URL in response", reference, raw=data)
        self._log("mobilepay_payment_created", transaction_id=reference)
        return PaymentResult(
            success=True,
            transaction_id=reference,
            status="pending",
            provider=self.provider,
            requires_action=True,
            action_url=redirect_url,
            raw=data,
        )

    async def verify_payment(self, transaction_id: str) -> bool:
        data = await self._request("GET", self._payment_url(transaction_id), headers=await self._headers(), expected=(200,))
        return self._map_status(str(data.get("state", ""))) == "successful"

    async def capture_payment(
        self, transaction_id: str, amount: int, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult:
        data = await self._request(
            "POST",
            self._payment_url(transaction_id, "capture"),
            headers=await self._headers(idempotency_key),
            json=self._modification(amount),
            expected=(200,),
        )
        return PaymentResult(
            success=True, transaction_id=transaction_id, status="successful", provider=self.provider, raw=data
        )

    async def refund_payment(
        self, transaction_id: str, amount: int, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult:
        data = await self._request(
            "POST",
            self._payment_url(transaction_id, "refund"),
            headers=await self._headers(idempotency_key),
            json=self._modification(amount),
            expected=(200,),
        )
        return PaymentResult(
            success=True, transaction_id=transaction_id, status="successful", provider=self.provider, raw=data
        )

    async def cancel_payment(
        self, transaction_id: str, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult:
        data = await self._request(
            "POST",
            self._payment_url(transaction_id, "cancel"),
            headers=await self._headers(idempotency_key),
            expected=(200,),
        )
        return PaymentResult(
            success=True, transaction_id=transaction_id, status="successful", provider=self.provider, raw=data
        )

    async def force_approve(self, transaction_id: str, phone_number: Optional[str] = None) -> PaymentResult:
        """Test environment only: approve the payment on behalf of the customer."""
        if not self.config.test_mode:
            raise PaymentProviderError(
                "force approve is only available in test mode",
                provider=self.provider,
                code=PaymentCode.UNSUPPORTED_OPERATION,
            )
        if not phone_number:
            raise PaymentProviderError("phone number is required", provider=self.provider)
        url = f"{self.base_url}/epayment/v1/test/payments/{self._require_transaction_id(transaction_id, self.provider)}/approve"
        await self._request(
            "POST",
            url,
            headers=await self._headers(),
            json={"customer": {"phoneNumber": phone_number}},
            expected=(200, 204),
        )
        self._log("mobilepay_payment_force_approved", transaction_id=transaction_id)
        return PaymentResult(success=True, transaction_id=transaction_id, status="successful", provider=self.provider)
