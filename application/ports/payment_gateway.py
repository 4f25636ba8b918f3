"""
Payment gateway ports (application/ports) exposing replaceable protocols.

Application depends on these Protocols; infrastructure implements adapters.
A provider that rejects an operation returns ``PaymentResult(success=False)``
or raises ``PaymentProviderError``; a provider that cannot be reached raises
``PaymentRecoverableError``.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from application.dtos.payments import PaymentRequest, PaymentResult, ProviderInfo


@runtime_checkable
class PaymentProvider(Protocol):
    """Capability set every provider implementation exposes."""

    provider: str

    def info(self) -> ProviderInfo: ...

    async def process_payment(self, request: PaymentRequest) -> PaymentResult: ...

    async def verify_payment(self, transaction_id: str) -> bool: ...

    async def capture_payment(
        self, transaction_id: str, amount: int, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult: ...

    async def refund_payment(
        self, transaction_id: str, amount: int, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult: ...

    async def cancel_payment(
        self, transaction_id: str, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult: ...

    async def force_approve(self, transaction_id: str, phone_number: Optional[str] = None) -> PaymentResult: ...


@runtime_checkable
class PaymentGateway(Protocol):
    """Routes the capability set to a provider selected by key."""

    def available_providers(self) -> list[ProviderInfo]: ...

    async def process_payment(self, request: PaymentRequest) -> PaymentResult: ...

    async def verify_payment(self, transaction_id: str, provider: str) -> bool: ...

    async def capture_payment(
        self, transaction_id: str, amount: int, provider: str, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult: ...

    async def refund_payment(
        self, transaction_id: str, amount: int, provider: str, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult: ...

    async def cancel_payment(
        self, transaction_id: str, provider: str, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult: ...

    async def force_approve(
        self, transaction_id: str, provider: str, phone_number: Optional[str] = None
    ) -> PaymentResult: ...
