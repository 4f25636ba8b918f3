"""
Application service orchestrating payment use-cases against the ledger.

Every provider call happens inside a unit of work that holds the order row
lock, after the ledger guard has been consulted, so two concurrent requests
cannot both observe "not yet captured" and both reach the provider.

Outcome handling:
  - rejected (``success=False`` or ``PaymentProviderError``): a Failed
    transaction is recorded, the order status is left untouched.
  - unreachable (``PaymentRecoverableError``, timeouts included): a Pending
    transaction flagged for reconciliation is recorded and the error is
    re-raised after commit; the engine never assumes success or failure.
"""
from __future__ import annotations

import hashlib
import json
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from application.dto import PaymentTransactionDTO
from application.dtos.payments import (
    CardDetails,
    PaymentMethod,
    PaymentRequest,
    PaymentResult,
    ProviderInfo,
)
from application.ports.notification import PAYMENT_ALERT, OrderNotifier
from application.ports.payment_gateway import PaymentGateway
from application.services.order_service import publish_order_events
from core.config import settings
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.exceptions import (
    BusinessException,
    DomainValidationException,
    DuplicatePaymentOperationException,
    PaymentAlreadyProcessedException,
    PaymentAmountExceededException,
    PaymentProviderError,
    PaymentRecoverableError,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderStatus
from domain.order.service import OrderDomainService
from domain.payment.entity import PaymentTransaction, TransactionStatus, TransactionType
from domain.payment.service import RECONCILIATION_FLAG, PaymentLedgerService
from shared.codes.payment_codes import PaymentCode


logger = get_logger(__name__)

REFUNDABLE_STATUSES = (OrderStatus.PAID, OrderStatus.CAPTURED, OrderStatus.DELIVERED)
CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.PENDING_ACTION)
PLACEHOLDER_FLAG = "placeholder_transaction_id"


def build_idempotency_key(order_id: int, operation: str, amount: int, sequence: int = 0) -> str:
    """Stable key per (order, operation, amount); ``sequence`` separates legitimate repeats."""
    base = f"{operation}|{order_id}|{amount}|{sequence}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def _raw(result: PaymentResult) -> Optional[str]:
    if not result.raw:
        return None
    return json.dumps(result.raw, default=str, sort_keys=True)


class PaymentApplicationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        notifier: Optional[OrderNotifier] = None,
        *,
        allow_force_approve: Optional[bool] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self._notifier = notifier
        self._allow_force_approve = (
            payment_settings.allow_force_approve if allow_force_approve is None else allow_force_approve
        )

    def _ledger(self, uow: AbstractUnitOfWork) -> PaymentLedgerService:
        return PaymentLedgerService(
            uow.payment_transaction_repository,
            default_currency=settings.store.default_currency,
        )

    @staticmethod
    def _provider_of(order: Order) -> str:
        if not order.payment_provider:
            raise DomainValidationException("payment provider not selected", field="payment_provider")
        return order.payment_provider

    @staticmethod
    def _payment_id_of(order: Order) -> str:
        if not order.payment_id:
            raise DomainValidationException("order has no provider payment id", field="payment_id")
        return order.payment_id

    @staticmethod
    async def _refund_basis(ledger: PaymentLedgerService, order: Order) -> int:
        """Amount a refund may return: the authorization while Paid, otherwise what was captured."""
        if order.status == OrderStatus.PAID:
            return order.final_amount
        return await ledger.successful_amount(order.id, TransactionType.CAPTURE)

    async def _alert(self, order: Order, operation: str, message: str) -> None:
        """Money may already have moved at the provider; surface it instead of regressing status."""
        logger.error(
            "payment_operation_alert",
            order_id=order.id,
            operation=operation,
            status=order.status.value,
            error=message,
        )
        if self._notifier is None:
            return
        try:
            await self._notifier.notify(
                PAYMENT_ALERT,
                {
                    "order_id": order.id,
                    "order_number": order.order_number,
                    "operation": operation,
                    "status": order.status.value,
                    "error": message,
                },
            )
        except Exception:
            logger.warning("payment_alert_failed", order_id=order.id, exc_info=True)

    async def _record_unreachable(
        self,
        ledger: PaymentLedgerService,
        order: Order,
        transaction_type: TransactionType,
        amount: int,
        provider: str,
        exc: PaymentRecoverableError,
        idempotency_key: str,
    ) -> PaymentTransaction:
        placeholder = not order.payment_id
        transaction_id = order.payment_id or f"unconfirmed-{idempotency_key[:24]}"
        logger.warning(
            "payment_provider_unreachable",
            order_id=order.id,
            provider=provider,
            operation=transaction_type.value,
            error=exc.message,
        )
        return await ledger.record(
            order.id,
            transaction_id,
            transaction_type,
            TransactionStatus.PENDING,
            amount,
            provider,
            order.currency,
            metadata={
                RECONCILIATION_FLAG: True,
                PLACEHOLDER_FLAG: placeholder,
                "idempotency_key": idempotency_key,
                "error": exc.message,
            },
        )

    async def _record_rejected(
        self,
        ledger: PaymentLedgerService,
        order: Order,
        transaction_type: TransactionType,
        amount: int,
        provider: str,
        message: str,
        idempotency_key: str,
        result: Optional[PaymentResult] = None,
    ) -> PaymentTransaction:
        transaction_id = (result.transaction_id if result else "") or order.payment_id or f"rejected-{idempotency_key[:24]}"
        logger.info(
            "payment_provider_rejected",
            order_id=order.id,
            provider=provider,
            operation=transaction_type.value,
            error=message,
        )
        return await ledger.record(
            order.id,
            transaction_id,
            transaction_type,
            TransactionStatus.FAILED,
            amount,
            provider,
            order.currency,
            raw_response=_raw(result) if result else None,
            metadata={"idempotency_key": idempotency_key, "error": message},
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def available_providers(self) -> list[ProviderInfo]:
        return self.gateway.available_providers()

    async def list_transactions(self, order_id: int) -> List[PaymentTransactionDTO]:
        async with self._uow_factory(readonly=True) as uow:
            await OrderDomainService(uow.order_repository).get_order(order_id)
            return [
                PaymentTransactionDTO.from_entity(t)
                for t in await uow.payment_transaction_repository.list_by_order(order_id)
            ]

    async def verify_payment(self, order_id: int) -> bool:
        async with self._uow_factory(readonly=True) as uow:
            order = await OrderDomainService(uow.order_repository).get_order(order_id)
        return await self.gateway.verify_payment(self._payment_id_of(order), self._provider_of(order))

    # ------------------------------------------------------------------
    # Authorize
    # ------------------------------------------------------------------

    async def process_payment(
        self,
        order_id: int,
        *,
        card_details: Optional[CardDetails] = None,
        phone_number: Optional[str] = None,
        return_url: Optional[str] = None,
    ) -> PaymentResult:
        """Authorize the order amount with its selected provider.

        Returns the provider result; a rejection comes back as ``success=False``.
        """
        failure: Optional[BusinessException] = None
        async with self._uow_factory() as uow:
            order_service = OrderDomainService(uow.order_repository)
            ledger = self._ledger(uow)
            order = await order_service.get_order(order_id, for_update=True)
            if order.status != OrderStatus.PENDING:
                raise PaymentAlreadyProcessedException(order.id, order.status.value)
            await ledger.ensure_not_succeeded(order.id, TransactionType.AUTHORIZE)

            provider = self._provider_of(order)
            attempts = len(
                [t for t in await uow.payment_transaction_repository.list_by_order(order.id)
                 if t.transaction_type == TransactionType.AUTHORIZE]
            )
            key = build_idempotency_key(order.id, TransactionType.AUTHORIZE.value, order.final_amount, attempts)
            request = PaymentRequest(
                order_id=order.id,
                amount=order.final_amount,
                currency=order.currency,
                payment_method=PaymentMethod.CREDIT_CARD if card_details else PaymentMethod.WALLET,
                provider=provider,
                card_details=card_details,
                phone_number=phone_number or order.customer_details.phone or None,
                customer_email=order.customer_details.email or None,
                return_url=return_url,
                idempotency_key=key,
            )
            logger.info(
                "payment_process_request",
                order_id=order.id,
                provider=provider,
                amount=order.final_amount,
                idempotency_key=key,
            )

            try:
                result = await self.gateway.process_payment(request)
            except PaymentRecoverableError as exc:
                await self._record_unreachable(
                    ledger, order, TransactionType.AUTHORIZE, order.final_amount, provider, exc, key
                )
                failure = exc
            except PaymentProviderError as exc:
                await self._record_rejected(
                    ledger, order, TransactionType.AUTHORIZE, order.final_amount, provider, exc.message, key
                )
                result = PaymentResult(success=False, status="failed", provider=provider, error_message=exc.message)
            else:
                if not result.success:
                    await self._record_rejected(
                        ledger,
                        order,
                        TransactionType.AUTHORIZE,
                        order.final_amount,
                        provider,
                        result.error_message or "payment declined",
                        key,
                        result,
                    )
                else:
                    order.set_payment_id(result.transaction_id)
                    if result.requires_action:
                        if result.action_url:
                            order.set_action_url(result.action_url)
                        await order_service.change_status(order, OrderStatus.PENDING_ACTION)
                        status = TransactionStatus.PENDING
                    else:
                        await order_service.change_status(order, OrderStatus.PAID)
                        status = TransactionStatus.SUCCESSFUL
                    await uow.order_repository.update(order)
                    await ledger.record(
                        order.id,
                        result.transaction_id,
                        TransactionType.AUTHORIZE,
                        status,
                        order.final_amount,
                        provider,
                        order.currency,
                        raw_response=_raw(result),
                        metadata={
                            "idempotency_key": key,
                            "requires_action": result.requires_action,
                            **({"action_url": result.action_url} if result.action_url else {}),
                        },
                    )
            events = order_service.get_domain_events()

        await publish_order_events(self._notifier, events)
        if failure is not None:
            raise failure
        logger.info(
            "payment_process_response",
            order_id=order_id,
            provider=result.provider,
            success=result.success,
            requires_action=result.requires_action,
        )
        return result

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    async def capture_payment(self, order_id: int, amount: Optional[int] = None) -> PaymentTransactionDTO:
        failure: Optional[BusinessException] = None
        alert: Optional[str] = None
        async with self._uow_factory() as uow:
            order_service = OrderDomainService(uow.order_repository)
            ledger = self._ledger(uow)
            order = await order_service.get_order(order_id, for_update=True)
            if order.status == OrderStatus.CAPTURED:
                raise DuplicatePaymentOperationException(order.id, TransactionType.CAPTURE.value)
            if order.status != OrderStatus.PAID:
                raise PaymentAlreadyProcessedException(order.id, order.status.value)
            amount = order.final_amount if amount is None else amount
            if amount <= 0:
                raise DomainValidationException("capture amount must be greater than zero", field="amount")
            if amount > order.final_amount:
                raise PaymentAmountExceededException(order.id, amount, order.final_amount)
            await ledger.ensure_not_succeeded(order.id, TransactionType.CAPTURE)

            provider = self._provider_of(order)
            payment_id = self._payment_id_of(order)
            key = build_idempotency_key(order.id, TransactionType.CAPTURE.value, amount)
            logger.info("payment_capture_request", order_id=order.id, provider=provider, amount=amount)

            try:
                result = await self.gateway.capture_payment(payment_id, amount, provider, idempotency_key=key)
            except PaymentRecoverableError as exc:
                transaction = await self._record_unreachable(
                    ledger, order, TransactionType.CAPTURE, amount, provider, exc, key
                )
                failure = exc
            except PaymentProviderError as exc:
                transaction = await self._record_rejected(
                    ledger, order, TransactionType.CAPTURE, amount, provider, exc.message, key
                )
                failure, alert = exc, exc.message
            else:
                if not result.success:
                    message = result.error_message or "capture declined"
                    transaction = await self._record_rejected(
                        ledger, order, TransactionType.CAPTURE, amount, provider, message, key, result
                    )
                    failure = PaymentProviderError(message, provider=provider)
                    alert = message
                else:
                    await order_service.change_status(order, OrderStatus.CAPTURED)
                    remaining = order.final_amount - amount
                    transaction = await ledger.record(
                        order.id,
                        result.transaction_id or payment_id,
                        TransactionType.CAPTURE,
                        TransactionStatus.SUCCESSFUL,
                        amount,
                        provider,
                        order.currency,
                        raw_response=_raw(result),
                        metadata={
                            "idempotency_key": key,
                            "full_capture": remaining == 0,
                            "remaining_amount": remaining,
                        },
                    )
            events = order_service.get_domain_events()

        await publish_order_events(self._notifier, events)
        if alert is not None:
            await self._alert(order, TransactionType.CAPTURE.value, alert)
        if failure is not None:
            raise failure
        logger.info("payment_captured", order_id=order_id, amount=amount)
        return PaymentTransactionDTO.from_entity(transaction)

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    async def cancel_payment(self, order_id: int) -> Optional[PaymentTransactionDTO]:
        """Cancel an unpaid order; the provider is only called when it holds a payment."""
        failure: Optional[BusinessException] = None
        transaction: Optional[PaymentTransaction] = None
        async with self._uow_factory() as uow:
            order_service = OrderDomainService(uow.order_repository)
            ledger = self._ledger(uow)
            order = await order_service.get_order(order_id, for_update=True)
            if order.status == OrderStatus.CANCELLED:
                raise DuplicatePaymentOperationException(order.id, TransactionType.CANCEL.value)
            if order.status not in CANCELLABLE_STATUSES:
                raise PaymentAlreadyProcessedException(order.id, order.status.value)

            if not order.payment_id:
                await order_service.change_status(order, OrderStatus.CANCELLED)
            else:
                await ledger.ensure_not_succeeded(order.id, TransactionType.CANCEL)
                provider = self._provider_of(order)
                key = build_idempotency_key(order.id, TransactionType.CANCEL.value, 0)
                logger.info("payment_cancel_request", order_id=order.id, provider=provider)
                try:
                    result = await self.gateway.cancel_payment(order.payment_id, provider, idempotency_key=key)
                except PaymentRecoverableError as exc:
                    transaction = await self._record_unreachable(
                        ledger, order, TransactionType.CANCEL, 0, provider, exc, key
                    )
                    failure = exc
                except PaymentProviderError as exc:
                    transaction = await self._record_rejected(
                        ledger, order, TransactionType.CANCEL, 0, provider, exc.message, key
                    )
                    failure = exc
                else:
                    if not result.success:
                        message = result.error_message or "cancel declined"
                        transaction = await self._record_rejected(
                            ledger, order, TransactionType.CANCEL, 0, provider, message, key, result
                        )
                        failure = PaymentProviderError(message, provider=provider)
                    else:
                        await order_service.change_status(order, OrderStatus.CANCELLED)
                        transaction = await ledger.record(
                            order.id,
                            result.transaction_id or order.payment_id,
                            TransactionType.CANCEL,
                            TransactionStatus.SUCCESSFUL,
                            0,
                            provider,
                            order.currency,
                            raw_response=_raw(result),
                            metadata={"idempotency_key": key},
                        )
            events = order_service.get_domain_events()

        await publish_order_events(self._notifier, events)
        if failure is not None:
            raise failure
        logger.info("payment_cancelled", order_id=order_id)
        return PaymentTransactionDTO.from_entity(transaction) if transaction else None

    # ------------------------------------------------------------------
    # Refund
    # ------------------------------------------------------------------

    async def refund_payment(self, order_id: int, amount: Optional[int] = None) -> PaymentTransactionDTO:
        """Refund part or all of a paid order; the order becomes Refunded once fully refunded."""
        failure: Optional[BusinessException] = None
        alert: Optional[str] = None
        async with self._uow_factory() as uow:
            order_service = OrderDomainService(uow.order_repository)
            ledger = self._ledger(uow)
            order = await order_service.get_order(order_id, for_update=True)
            if order.status not in REFUNDABLE_STATUSES:
                raise PaymentAlreadyProcessedException(order.id, order.status.value)
            paid = await self._refund_basis(ledger, order)
            available = await ledger.refundable_amount(order.id, paid)
            amount = available if amount is None else amount
            if amount <= 0:
                raise DomainValidationException("refund amount must be greater than zero", field="amount")
            refunded_after = await ledger.ensure_refundable(order.id, paid, amount)

            provider = self._provider_of(order)
            payment_id = self._payment_id_of(order)
            sequence = await ledger.successful_count(order.id, TransactionType.REFUND)
            key = build_idempotency_key(order.id, TransactionType.REFUND.value, amount, sequence)
            logger.info("payment_refund_request", order_id=order.id, provider=provider, amount=amount)

            try:
                result = await self.gateway.refund_payment(payment_id, amount, provider, idempotency_key=key)
            except PaymentRecoverableError as exc:
                transaction = await self._record_unreachable(
                    ledger, order, TransactionType.REFUND, amount, provider, exc, key
                )
                failure = exc
            except PaymentProviderError as exc:
                transaction = await self._record_rejected(
                    ledger, order, TransactionType.REFUND, amount, provider, exc.message, key
                )
                failure, alert = exc, exc.message
            else:
                if not result.success:
                    message = result.error_message or "refund declined"
                    transaction = await self._record_rejected(
                        ledger, order, TransactionType.REFUND, amount, provider, message, key, result
                    )
                    failure = PaymentProviderError(message, provider=provider)
                    alert = message
                else:
                    full_refund = refunded_after >= paid
                    if full_refund:
                        await order_service.change_status(order, OrderStatus.REFUNDED)
                    transaction = await ledger.record(
                        order.id,
                        result.transaction_id or payment_id,
                        TransactionType.REFUND,
                        TransactionStatus.SUCCESSFUL,
                        amount,
                        provider,
                        order.currency,
                        raw_response=_raw(result),
                        metadata={
                            "idempotency_key": key,
                            "full_refund": full_refund,
                            "total_refunded": refunded_after,
                        },
                    )
            events = order_service.get_domain_events()

        await publish_order_events(self._notifier, events)
        if alert is not None:
            await self._alert(order, TransactionType.REFUND.value, alert)
        if failure is not None:
            raise failure
        logger.info("payment_refunded", order_id=order_id, amount=amount)
        return PaymentTransactionDTO.from_entity(transaction)

    # ------------------------------------------------------------------
    # Sandbox
    # ------------------------------------------------------------------

    async def force_approve(self, order_id: int, phone_number: Optional[str] = None) -> PaymentResult:
        """Sandbox only: approve a pending provider payment without customer interaction."""
        if not self._allow_force_approve:
            raise PaymentProviderError(
                "force approve is disabled",
                provider="*",
                code=PaymentCode.UNSUPPORTED_OPERATION,
            )
        async with self._uow_factory() as uow:
            order_service = OrderDomainService(uow.order_repository)
            ledger = self._ledger(uow)
            order = await order_service.get_order(order_id, for_update=True)
            if order.status not in CANCELLABLE_STATUSES:
                raise PaymentAlreadyProcessedException(order.id, order.status.value)
            provider = self._provider_of(order)
            payment_id = self._payment_id_of(order)

            result = await self.gateway.force_approve(payment_id, provider, phone_number)
            if result.success:
                await order_service.change_status(order, OrderStatus.PAID)
                pending = await ledger.latest(order.id, TransactionType.AUTHORIZE)
                if pending is not None and pending.status == TransactionStatus.PENDING:
                    await ledger.confirm(
                        pending.transaction_id,
                        TransactionStatus.SUCCESSFUL,
                        provider=provider,
                        transaction_type=TransactionType.AUTHORIZE,
                    )
                else:
                    await ledger.record(
                        order.id,
                        payment_id,
                        TransactionType.AUTHORIZE,
                        TransactionStatus.SUCCESSFUL,
                        order.final_amount,
                        provider,
                        order.currency,
                        metadata={"force_approved": True},
                    )
            events = order_service.get_domain_events()

        await publish_order_events(self._notifier, events)
        logger.warning("payment_force_approved", order_id=order_id, provider=provider, success=result.success)
        return result

    # ------------------------------------------------------------------
    # Asynchronous confirmation / reconciliation
    # ------------------------------------------------------------------

    async def _apply_confirmation(
        self,
        order_service: OrderDomainService,
        ledger: PaymentLedgerService,
        order: Order,
        transaction: PaymentTransaction,
    ) -> None:
        """Move the order forward for a confirmed transaction; never moves it backwards."""
        if transaction.status != TransactionStatus.SUCCESSFUL:
            return
        kind = transaction.transaction_type
        if kind == TransactionType.AUTHORIZE and order.status in CANCELLABLE_STATUSES:
            if not order.payment_id and not transaction.metadata.get(PLACEHOLDER_FLAG):
                order.set_payment_id(transaction.transaction_id)
            await order_service.change_status(order, OrderStatus.PAID)
        elif kind == TransactionType.CAPTURE and order.status == OrderStatus.PAID:
            await order_service.change_status(order, OrderStatus.CAPTURED)
        elif kind == TransactionType.CANCEL and order.status in CANCELLABLE_STATUSES:
            await order_service.change_status(order, OrderStatus.CANCELLED)
        elif kind == TransactionType.REFUND and order.status in REFUNDABLE_STATUSES:
            refunded = await ledger.successful_amount(order.id, TransactionType.REFUND)
            if refunded >= await self._refund_basis(ledger, order):
                await order_service.change_status(order, OrderStatus.REFUNDED)

    async def confirm_transaction(
        self,
        transaction_id: str,
        status: TransactionStatus,
        *,
        provider: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
        raw_response: Optional[str] = None,
    ) -> PaymentTransactionDTO:
        """Provider confirmation arrived asynchronously: update the ledger row in place."""
        async with self._uow_factory() as uow:
            order_service = OrderDomainService(uow.order_repository)
            ledger = self._ledger(uow)
            existing = await uow.payment_transaction_repository.get_by_transaction_id(
                transaction_id, provider=provider, transaction_type=transaction_type
            )
            if existing is not None:
                # lock the order before touching the ledger row
                await order_service.get_order(existing.order_id, for_update=True)
            transaction = await ledger.confirm(
                transaction_id,
                TransactionStatus(status),
                provider=provider,
                transaction_type=transaction_type,
                raw_response=raw_response,
            )
            order = await order_service.get_order(transaction.order_id, for_update=True)
            await self._apply_confirmation(order_service, ledger, order, transaction)
            events = order_service.get_domain_events()

        await publish_order_events(self._notifier, events)
        logger.info(
            "payment_transaction_confirmed",
            transaction_id=transaction_id,
            order_id=transaction.order_id,
            status=transaction.status.value,
        )
        return PaymentTransactionDTO.from_entity(transaction)

    async def reconcile_pending(self, older_than_minutes: Optional[int] = None, limit: int = 100) -> int:
        """Resolve stale Pending authorizations by asking the provider; returns how many were resolved."""
        minutes = settings.store.pending_reconcile_after_minutes if older_than_minutes is None else older_than_minutes
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=minutes)
        async with self._uow_factory(readonly=True) as uow:
            pending = await self._ledger(uow).pending_older_than(cutoff, limit)

        resolved = 0
        for transaction in pending:
            if transaction.metadata.get(PLACEHOLDER_FLAG) or transaction.transaction_type != TransactionType.AUTHORIZE:
                logger.warning(
                    "payment_reconciliation_manual",
                    transaction_id=transaction.transaction_id,
                    order_id=transaction.order_id,
                    operation=transaction.transaction_type.value,
                )
                continue
            try:
                verified = await self.gateway.verify_payment(transaction.transaction_id, transaction.provider)
            except PaymentRecoverableError as exc:
                logger.warning(
                    "payment_reconciliation_deferred",
                    transaction_id=transaction.transaction_id,
                    error=exc.message,
                )
                continue
            if not verified:
                continue
            await self.confirm_transaction(
                transaction.transaction_id,
                TransactionStatus.SUCCESSFUL,
                provider=transaction.provider,
                transaction_type=TransactionType.AUTHORIZE,
            )
            resolved += 1
        if resolved:
            logger.info("payment_reconciliation_completed", resolved=resolved, scanned=len(pending))
        return resolved
