"""
Base payment client implementing shared concerns: http, retry, logging, mapping.

Concrete providers should subclass and implement provider-specific logic.
Error contract: a definite rejection raises ``PaymentProviderError`` (or returns
``success=False`` from ``process_payment``); timeouts, transport failures,
429 and 5xx responses raise ``PaymentRecoverableError`` after retries.
"""
from __future__ import annotations

from typing import Any, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from core.settings import payment_settings
from application.dtos.payments import PaymentRequest, PaymentResult, ProviderInfo
from domain.common.exceptions import PaymentProviderError, PaymentRecoverableError
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL, PaymentCode


logger = get_logger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class _RetryableResponse(Exception):
    def __init__(self, response: httpx.Response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or payment_settings.timeouts.model_dump()
        self._retry_cfg = retry or {
            "max": payment_settings.retry.max,
            "base": payment_settings.retry.base_backoff,
        }
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        """Run ``fn`` with backoff; exhausted transient failures become recoverable errors."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
                wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
                retry=retry_if_exception_type(
                    (httpx.TimeoutException, httpx.TransportError, _RetryableResponse)
                ),
                reraise=True,
            ):
                with attempt:
                    return await fn()
        except httpx.TimeoutException as exc:
            raise PaymentRecoverableError(
                f"{self.provider} request timed out", provider=self.provider, code=PaymentCode.TIMEOUT
            ) from exc
        except httpx.TransportError as exc:
            raise PaymentRecoverableError(
                f"{self.provider} unreachable: {exc}", provider=self.provider
            ) from exc
        except _RetryableResponse as exc:
            status = exc.response.status_code
            raise PaymentRecoverableError(
                f"{self.provider} returned HTTP {status}",
                provider=self.provider,
                provider_code=str(status),
                code=PaymentCode.RATE_LIMITED if status == 429 else PaymentCode.PROVIDER_RECOVERABLE,
            ) from exc

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
        expected: tuple[int, ...] = (200, 201),
    ) -> dict[str, Any]:
        """HTTP call with retry; non-retryable error statuses raise ``PaymentProviderError``."""

        async def _send() -> httpx.Response:
            async with self.client() as c:
                response = await c.request(method, url, headers=headers, json=json)
            if response.status_code in RETRYABLE_STATUS:
                raise _RetryableResponse(response)
            return response

        response = await self._retry(_send)
        if response.status_code not in expected:
            raise PaymentProviderError(
                f"{self.provider} rejected request: {response.text[:500]}",
                provider=self.provider,
                provider_code=str(response.status_code),
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"body": response.text}

    # Default implementations raise to force override where needed
    def info(self) -> ProviderInfo:
        raise NotImplementedError

    async def process_payment(self, request: PaymentRequest) -> PaymentResult:
        raise NotImplementedError

    async def verify_payment(self, transaction_id: str) -> bool:
        raise NotImplementedError

    async def capture_payment(
        self, transaction_id: str, amount: int, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult:
        raise self._unsupported("capture")

    async def refund_payment(
        self, transaction_id: str, amount: int, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult:
        raise self._unsupported("refund")

    async def cancel_payment(
        self, transaction_id: str, *, idempotency_key: Optional[str] = None
    ) -> PaymentResult:
        raise self._unsupported("cancel")

    async def force_approve(self, transaction_id: str, phone_number: Optional[str] = None) -> PaymentResult:
        raise self._unsupported("force_approve")

    # Helpers
    def _unsupported(self, operation: str) -> PaymentProviderError:
        return PaymentProviderError(
            f"{operation} is not supported by {self.provider}",
            provider=self.provider,
            code=PaymentCode.UNSUPPORTED_OPERATION,
        )

    @staticmethod
    def _require_transaction_id(transaction_id: str, provider: str) -> str:
        if not transaction_id or not transaction_id.strip():
            raise PaymentProviderError("transaction id is required", provider=provider)
        return transaction_id.strip()

    @staticmethod
    def _require_amount(amount: int, provider: str) -> int:
        if amount <= 0:
            raise PaymentProviderError("amount must be greater than zero", provider=provider)
        return amount

    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(provider_status, provider_status)

    def _declined(self, message: str, transaction_id: str = "", raw: Optional[dict] = None) -> PaymentResult:
        return PaymentResult(
            success=False,
            transaction_id=transaction_id,
            status="failed",
            provider=self.provider,
            error_message=message,
            raw=raw,
        )

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
