"""
In-process mock provider for development and tests.

Behaviour is driven by the card number so scenarios are reproducible:
- ending ``0002``: declined
- ending ``3220``: requires customer action (redirect)
- ending ``0119``: provider unreachable (raises ``PaymentRecoverableError``)
Anything else authorizes. Wallet payments authorize when a phone number is given.
"""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Optional

from application.dtos.payments import PaymentMethod, PaymentRequest, PaymentResult, ProviderInfo
from domain.common.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.base import BasePaymentClient
from shared.codes.payment_codes import PaymentCode

DECLINE_SUFFIX = "0002"
ACTION_SUFFIX = "3220"
UNREACHABLE_SUFFIX = "0119"


@dataclass
class _MockPayment:
    amount: int
    state: str  # approved / pending / declined / cancelled
    captured: int = 0
    refunded: int = 0


class MockPaymentClient(BasePaymentClient):
    provider = "mock"

    def __init__(self, *, latency: float = 0.0, action_base_url: str = "https://mock-pay.local/approve") -> None:
        super().__init__()
        self._latency = latency
        self._action_base_url = action_base_url
        self._payments: dict[str, _MockPayment] = {}
        self._idempotent: dict[str, PaymentResult] = {}

    def info(self) -> ProviderInfo:
        return ProviderInfo(
            key=self.provider,
            name="Test Payment",
            description="For testing purposes only",
            methods=[PaymentMethod.CREDIT_CARD, PaymentMethod.WALLET],
        )

    async def _simulate(self) -> None:
        if self._latency:
            await asyncio.sleep(self._latency)

    def _get(self, transaction_id: str) -> _MockPayment:
        payment = self._payments.get(self._require_transaction_id(transaction_id, self.provider))
        if payment is None:
            raise PaymentProviderError(
                f"unknown transaction {transaction_id}", provider=self.provider, provider_code="not_found"
            )
        return payment

    def _remember(self, key: Optional[str], result: PaymentResult) -> PaymentResult:
        if key:
            self._idempotent[key] = result
        return result

    async def process_payment(self, request: PaymentRequest) -> PaymentResult:
        await self._simulate()
        if request.idempotency_key and request.idempotency_key in self._idempotent:
            return self._idempotent[request.idempotency_key]

        if request.payment_method == PaymentMethod.CREDIT_CARD:
            card = request.card_details
            if card is None:
                return self._declined("card details are required for credit card payment")
            if card.card_number.endswith(UNREACHABLE_SUFFIX):
                raise PaymentRecoverableError(
                    "mock provider timed out", provider=self.provider, code=PaymentCode.TIMEOUT
                )
            if card.card_number.endswith(DECLINE_SUFFIX):
                transaction_id = f"mock_{uuid.uuid4().hex}"
                self._payments[transaction_id] = _MockPayment(request.amount, "declined")
                return self._remember(
                    request.idempotency_key,
                    self._declined("card declined", transaction_id, raw={"state": "declined"}),
                )
            requires_action = card.card_number.endswith(ACTION_SUFFIX)
        elif request.payment_method == PaymentMethod.WALLET:
            if not request.phone_number:
                return self._declined("phone number is required for wallet payment")
            requires_action = False
        else:
            return self._declined("unsupported payment method")

        transaction_id = f"mock_{uuid.uuid4().hex}"
        state = "pending" if requires_action else "approved"
        self._payments[transaction_id] = _MockPayment(request.amount, state)
        self._log("mock_payment_created", transaction_id=transaction_id, state=state, amount=request.amount)
        result = PaymentResult(
            success=True,
            transaction_id=transaction_id,
            status=self._map_status(state),
            provider=self.provider,
            requires_action=requires_action,
            action_url=f"{self._action_base_url}/{transaction_id}" if requires_action else None,
            raw={"state": state, "amount": request.amount},
        )
        return self._remember(request.idempotency_key, result)

    async def verify_payment(self, transaction_id: str) -> bool:
        await self._simulate()
        return self._get(transaction_id).state == "approved"

    async def capture_payment(
        self, transaction_id: str, amount: int, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult:
        await self._simulate()
        if idempotency_key and idempotency_key in self._idempotent:
            return self._idempotent[idempotency_key]
        self._require_amount(amount, self.provider)
        payment = self._get(transaction_id)
        if payment.state != "approved":
            return self._declined(f"cannot capture a {payment.state} payment", transaction_id)
        if payment.captured + amount > payment.amount:
            return self._declined("capture exceeds authorized amount", transaction_id)
        payment.captured += amount
        return self._remember(
            idempotency_key,
            PaymentResult(
                success=True,
                transaction_id=transaction_id,
                status="successful",
                provider=self.provider,
                raw={"captured": payment.captured},
            ),
        )

    async def refund_payment(
        self, transaction_id: str, amount: int, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult:
        await self._simulate()
        if idempotency_key and idempotency_key in self._idempotent:
            return self._idempotent[idempotency_key]
        self._require_amount(amount, self.provider)
        payment = self._get(transaction_id)
        if payment.state != "approved":
            return self._declined(f"cannot refund a {payment.state} payment", transaction_id)
        # captured funds bound the refund; an uncaptured authorization can be released in full
        refundable = payment.captured or payment.amount
        if payment.refunded + amount > refundable:
            return self._declined("refund exceeds captured amount", transaction_id)
        payment.refunded += amount
        return self._remember(
            idempotency_key,
            PaymentResult(
                success=True,
                transaction_id=transaction_id,
                status="successful",
                provider=self.provider,
                raw={"refunded": payment.refunded},
            ),
        )

    async def cancel_payment(
        self, transaction_id: str, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult:
        await self._simulate()
        payment = self._get(transaction_id)
        if payment.captured:
            return self._declined("cannot cancel a captured payment", transaction_id)
        payment.state = "cancelled"
        return PaymentResult(success=True, transaction_id=transaction_id, status="successful", provider=self.provider)

    async def force_approve(self, transaction_id: str, phone_number: Optional[str] = None) -> PaymentResult:
        payment = self._get(transaction_id)
        if payment.state not in ("pending", "approved"):
            return self._declined(f"cannot approve a {payment.state} payment", transaction_id)
        payment.state = "approved"
        self._log("mock_payment_force_approved", transaction_id=transaction_id)
        return PaymentResult(success=True, transaction_id=transaction_id, status="successful", provider=self.provider)
