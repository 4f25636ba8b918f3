"""
支付流水领域服务 - 记账、幂等防护与异步确认
"""
from datetime import datetime, timezone
from typing import List, Optional

from .entity import DEFAULT_CURRENCY, PaymentTransaction, TransactionStatus, TransactionType
from .events import PaymentReconciliationRequired, PaymentTransactionConfirmed, PaymentTransactionRecorded
from .repository import PaymentTransactionRepository
from domain.common.exceptions import (
    DuplicatePaymentOperationException,
    PaymentAmountExceededException,
    PaymentTransactionNotFoundException,
)

RECONCILIATION_FLAG = "reconciliation_required"


class PaymentLedgerService:
    """
    支付流水领域服务

    职责：
    1. 追加流水并产生领域事件
    2. 调用渠道前基于成功流水做重复扣款/超额退款判断
    3. 渠道异步确认后原地更新流水状态
    """

    def __init__(
        self,
        transaction_repository: PaymentTransactionRepository,
        default_currency: str = DEFAULT_CURRENCY,
    ):
        self.transaction_repository = transaction_repository
        self.default_currency = default_currency
        self.events: List = []  # 领域事件收集

    async def record(
        self,
        order_id: int,
        transaction_id: str,
        transaction_type: TransactionType,
        status: TransactionStatus,
        amount: int,
        provider: str,
        currency: Optional[str] = None,
        *,
        raw_response: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> PaymentTransaction:
        transaction = PaymentTransaction(
            order_id=order_id,
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            status=status,
            amount=amount,
            provider=provider,
            currency=currency or self.default_currency,
            raw_response=raw_response or "",
            metadata=dict(metadata or {}),
        )
        created = await self.transaction_repository.create(transaction)
        self.events.append(
            PaymentTransactionRecorded(
                order_id=created.order_id,
                provider=created.provider,
                transaction_id=created.transaction_id,
                transaction_type=created.transaction_type.value,
                status=created.status.value,
                amount=created.amount,
                currency=created.currency,
            )
        )
        if created.status == TransactionStatus.PENDING and created.metadata.get(RECONCILIATION_FLAG):
            self.events.append(
                PaymentReconciliationRequired(
                    order_id=created.order_id,
                    provider=created.provider,
                    transaction_id=created.transaction_id,
                    transaction_type=created.transaction_type.value,
                    reason=created.metadata.get("error"),
                )
            )
        return created

    async def latest(self, order_id: int, transaction_type: TransactionType) -> Optional[PaymentTransaction]:
        return await self.transaction_repository.latest_by_order_and_type(order_id, transaction_type)

    async def successful_count(self, order_id: int, transaction_type: TransactionType) -> int:
        return await self.transaction_repository.count_successful_by_order_and_type(order_id, transaction_type)

    async def successful_amount(self, order_id: int, transaction_type: TransactionType) -> int:
        return await self.transaction_repository.sum_successful_amount_by_order_and_type(order_id, transaction_type)

    async def ensure_not_succeeded(self, order_id: int, transaction_type: TransactionType) -> None:
        """同一订单同类操作已有成功流水时拒绝再次调用渠道"""
        if await self.successful_count(order_id, transaction_type) > 0:
            raise DuplicatePaymentOperationException(order_id, transaction_type.value)

    async def refundable_amount(self, order_id: int, paid_amount: int) -> int:
        """paid_amount 为可退基数：已扣款订单取成功扣款合计，未扣款时取授权金额"""
        refunded = await self.successful_amount(order_id, TransactionType.REFUND)
        return max(paid_amount - refunded, 0)

    async def ensure_refundable(self, order_id: int, paid_amount: int, amount: int) -> int:
        """
        校验退款金额不超过剩余可退金额

        返回本次退款后的累计退款额
        """
        available = await self.refundable_amount(order_id, paid_amount)
        if amount > available:
            raise PaymentAmountExceededException(order_id, amount, available)
        return paid_amount - available + amount

    async def confirm(
        self,
        transaction_id: str,
        status: TransactionStatus,
        *,
        provider: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
        raw_response: Optional[str] = None,
    ) -> PaymentTransaction:
        """渠道异步确认：原地更新最近一条匹配流水的状态"""
        transaction = await self.transaction_repository.get_by_transaction_id(
            transaction_id,
            provider=provider,
            transaction_type=transaction_type,
        )
        if transaction is None:
            raise PaymentTransactionNotFoundException(transaction_id)

        previous = transaction.status
        changed = transaction.update_status(status)
        if raw_response is not None:
            transaction.set_raw_response(raw_response)
        if changed:
            transaction.add_metadata("confirmed_at", datetime.now(timezone.utc).isoformat())
            transaction.metadata.pop(RECONCILIATION_FLAG, None)
        if changed or raw_response is not None:
            transaction = await self.transaction_repository.update(transaction)
        if changed:
            self.events.append(
                PaymentTransactionConfirmed(
                    order_id=transaction.order_id,
                    provider=transaction.provider,
                    transaction_id=transaction.transaction_id,
                    transaction_type=transaction.transaction_type.value,
                    previous_status=previous.value,
                    new_status=transaction.status.value,
                )
            )
        return transaction

    async def pending_older_than(self, cutoff: datetime, limit: int = 100) -> List[PaymentTransaction]:
        return await self.transaction_repository.list_pending_older_than(cutoff, limit)

    def get_domain_events(self) -> List:
        events = self.events.copy()
        self.events.clear()
        return events
