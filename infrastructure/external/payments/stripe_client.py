"""
Stripe PaymentIntents adapter using the official stripe-python SDK.

Notes on SDK usage:
- Authorization uses ``capture_method="manual"`` so capture is a separate
  step; partial capture passes ``amount_to_capture``.
- The ``*_async`` resource methods are used so calls do not block the loop.
- Idempotency keys are passed through the ``idempotency_key`` kwarg.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

import stripe

from application.dtos.payments import (
    CardDetails,
    PaymentMethod,
    PaymentRequest,
    PaymentResult,
    ProviderInfo,
)
from core.settings import payment_settings
from domain.common.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.base import BasePaymentClient
from shared.codes.payment_codes import PaymentCode


AUTHORIZED_STATUSES = {"requires_capture", "succeeded"}


class StripeClient(BasePaymentClient):
    provider = "stripe"

    def __init__(self, secret_key: Optional[str] = None):
        super().__init__()
        key = secret_key or payment_settings.stripe.secret_key
        if not key:
            raise RuntimeError("PAYMENT__STRIPE__SECRET_KEY not configured")
        # Configure module-level key for compatibility across SDK variants
        stripe.api_key = key
        stripe.max_network_retries = int(self._retry_cfg["max"])

    def info(self) -> ProviderInfo:
        return ProviderInfo(
            key=self.provider,
            name="Stripe",
            description="Pay with credit or debit card",
            icon_url="/assets/images/stripe-logo.png",
            methods=[PaymentMethod.CREDIT_CARD],
        )

    async def _call(self, operation: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        """Translate SDK errors: card errors are rejections, network/rate/5xx are recoverable."""
        try:
            return await fn()
        except stripe.CardError as exc:
            raise PaymentProviderError(
                exc.user_message or str(exc),
                provider=self.provider,
                provider_code=exc.code,
            ) from exc
        except (stripe.APIConnectionError, stripe.RateLimitError) as exc:
            raise PaymentRecoverableError(
                f"stripe {operation} failed: {exc}",
                provider=self.provider,
                code=PaymentCode.RATE_LIMITED if isinstance(exc, stripe.RateLimitError) else PaymentCode.TIMEOUT,
            ) from exc
        except stripe.APIError as exc:
            raise PaymentRecoverableError(
                f"stripe {operation} failed: {exc}", provider=self.provider, provider_code=exc.code
            ) from exc
        except stripe.StripeError as exc:
            raise PaymentProviderError(
                f"stripe {operation} failed: {exc}", provider=self.provider, provider_code=exc.code
            ) from exc

    async def _payment_method_id(self, card: CardDetails) -> str:
        if card.token:
            return card.token
        billing = {"name": card.cardholder_name} if card.cardholder_name else None
        pm = await self._call(
            "payment_method",
            lambda: stripe.PaymentMethod.create_async(
                type="card",
                card={
                    "number": card.card_number,
                    "exp_month": card.expiry_month,
                    "exp_year": card.expiry_year,
                    "cvc": card.cvv,
                },
                billing_details=billing,
            ),
        )
        return pm.id

    def _intent_result(self, intent: Any) -> PaymentResult:
        status = intent.status
        raw = {"id": intent.id, "status": status}
        if status in AUTHORIZED_STATUSES:
            return PaymentResult(
                success=True,
                transaction_id=intent.id,
                status=self._map_status(status),
                provider=self.provider,
                raw=raw,
            )
        if status == "requires_action":
            next_action = getattr(intent, "next_action", None)
            redirect = getattr(next_action, "redirect_to_url", None) if next_action else None
            return PaymentResult(
                success=True,
                transaction_id=intent.id,
                status="pending",
                provider=self.provider,
                requires_action=True,
                action_url=getattr(redirect, "url", None),
                raw=raw,
            )
        return self._declined(f"payment status: {status}", intent.id, raw=raw)

    async def process_payment(self, request: PaymentRequest) -> PaymentResult:
        if request.payment_method != PaymentMethod.CREDIT_CARD or request.card_details is None:
            return self._declined("card details are required for credit card payment")
        try:
            payment_method = await self._payment_method_id(request.card_details)
        except PaymentProviderError as exc:
            return self._declined(exc.message)

        params: dict[str, Any] = {
            "amount": request.amount,
            "currency": request.currency.lower(),
            "payment_method": payment_method,
            "payment_method_types": ["card"],
            "capture_method": "manual",
            "confirm": True,
            "metadata": {"order_id": str(request.order_id), **(request.metadata or {})},
        }
        if request.customer_email:
            params["receipt_email"] = request.customer_email
        if request.return_url:
            params["return_url"] = request.return_url

        try:
            intent = await self._call(
                "process",
                lambda: stripe.PaymentIntent.create_async(idempotency_key=request.idempotency_key, **params),
            )
        except PaymentProviderError as exc:
            return self._declined(exc.message, raw={"code": exc.provider_code})
        result = self._intent_result(intent)
        self._log("stripe_intent_created", transaction_id=result.transaction_id, status=intent.status)
        return result

    async def verify_payment(self, transaction_id: str) -> bool:
        intent = await self._call(
            "verify",
            lambda: stripe.PaymentIntent.retrieve_async(self._require_transaction_id(transaction_id, self.provider)),
        )
        return intent.status in AUTHORIZED_STATUSES

    async def capture_payment(
        self, transaction_id: str, amount: int, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult:
        self._require_amount(amount, self.provider)
        intent = await self._call(
            "capture",
            lambda: stripe.PaymentIntent.capture_async(
                self._require_transaction_id(transaction_id, self.provider),
                amount_to_capture=amount,
                idempotency_key=idempotency_key,
            ),
        )
        if intent.status != "succeeded":
            return self._declined(f"capture resulted in status: {intent.status}", intent.id)
        return PaymentResult(
            success=True,
            transaction_id=intent.id,
            status="successful",
            provider=self.provider,
            raw={"id": intent.id, "status": intent.status, "amount_received": getattr(intent, "amount_received", None)},
        )

    async def refund_payment(
        self, transaction_id: str, amount: int, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult:
        self._require_amount(amount, self.provider)
        refund = await self._call(
            "refund",
            lambda: stripe.Refund.create_async(
                payment_intent=self._require_transaction_id(transaction_id, self.provider),
                amount=amount,
                idempotency_key=idempotency_key,
            ),
        )
        status = self._map_status(refund.status)
        if status == "failed":
            return self._declined(f"refund resulted in status: {refund.status}", transaction_id)
        return PaymentResult(
            success=True,
            transaction_id=transaction_id,
            status=status,
            provider=self.provider,
            raw={"refund_id": refund.id, "status": refund.status},
        )

    async def cancel_payment(
        self, transaction_id: str, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult:
        intent = await self._call(
            "cancel",
            lambda: stripe.PaymentIntent.cancel_async(
                self._require_transaction_id(transaction_id, self.provider),
                idempotency_key=idempotency_key,
            ),
        )
        if intent.status != "canceled":
            return self._declined(f"cancel resulted in status: {intent.status}", intent.id)
        return PaymentResult(
            success=True,
            transaction_id=intent.id,
            status="successful",
            provider=self.provider,
            raw={"id": intent.id, "status": intent.status},
        )
