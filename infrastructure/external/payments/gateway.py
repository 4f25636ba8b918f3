"""
Multi-provider payment gateway: routes every operation to the provider
registered under the requested key. Unknown or disabled keys fail with
``PaymentProviderUnavailableError``; there is never a silent fallback.
"""
from __future__ import annotations

from typing import Iterable, Optional

from application.dtos.payments import PaymentRequest, PaymentResult, ProviderInfo
from application.ports.payment_gateway import PaymentProvider
from core.logging_config import get_logger
from domain.common.exceptions import PaymentProviderError, PaymentProviderUnavailableError


logger = get_logger(__name__)


class MultiProviderPaymentGateway:
    def __init__(self, providers: Iterable[PaymentProvider] = ()) -> None:
        self._providers: dict[str, PaymentProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: PaymentProvider) -> None:
        key = provider.provider.lower()
        self._providers[key] = provider
        logger.info("payment_provider_registered", provider=key)

    @property
    def provider_keys(self) -> list[str]:
        return list(self._providers)

    def get(self, provider: Optional[str]) -> PaymentProvider:
        key = (provider or "").strip().lower()
        found = self._providers.get(key)
        if found is None:
            logger.warning("payment_provider_unavailable", provider=key, available=self.provider_keys)
            raise PaymentProviderUnavailableError(key, self.provider_keys)
        return found

    def available_providers(self) -> list[ProviderInfo]:
        return [p.info() for p in self._providers.values()]

    @staticmethod
    def _stamp(result: PaymentResult, provider: str) -> PaymentResult:
        return result.model_copy(update={"provider": provider})

    async def process_payment(self, request: PaymentRequest) -> PaymentResult:
        client = self.get(request.provider)
        try:
            result = await client.process_payment(request)
        except PaymentProviderError:
            logger.error("payment_process_error", provider=client.provider, order_id=request.order_id, exc_info=True)
            raise
        return self._stamp(result, client.provider)

    async def verify_payment(self, transaction_id: str, provider: str) -> bool:
        return await self.get(provider).verify_payment(transaction_id)

    async def capture_payment(
        self, transaction_id: str, amount: int, provider: str, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult:
        client = self.get(provider)
        result = await client.capture_payment(transaction_id, amount, idempotency_key=idempotency_key)
        return self._stamp(result, client.provider)

    async def refund_payment(
        self, transaction_id: str, amount: int, provider: str, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult:
        client = self.get(provider)
        result = await client.refund_payment(transaction_id, amount, idempotency_key=idempotency_key)
        return self._stamp(result, client.provider)

    async def cancel_payment(
        self, transaction_id: str, provider: str, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult:
        client = self.get(provider)
        result = await client.cancel_payment(transaction_id, idempotency_key=idempotency_key)
        return self._stamp(result, client.provider)

    async def force_approve(
        self, transaction_id: str, provider: str, phone_number: Optional[str] = None
    ) -> PaymentResult:
        client = self.get(provider)
        result = await client.force_approve(transaction_id, phone_number)
        return self._stamp(result, client.provider)

    async def aclose(self) -> None:
        for provider in self._providers.values():
            close = getattr(provider, "aclose", None)
            if close is not None:
                await close()
