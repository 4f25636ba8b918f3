"""
支付流水仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import PaymentTransactionNotFoundException
from domain.payment.entity import PaymentTransaction, TransactionStatus, TransactionType
from domain.payment.repository import PaymentTransactionRepository
from infrastructure.models.payment import PaymentTransactionModel


logger = get_logger(__name__)


class SQLAlchemyPaymentTransactionRepository(PaymentTransactionRepository):
    """支付流水仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentTransactionModel) -> PaymentTransaction:
        """将数据库模型转换为领域实体"""
        return PaymentTransaction(
            id=model.id,
            order_id=model.order_id,
            transaction_id=model.transaction_id,
            transaction_type=TransactionType(model.transaction_type),
            status=TransactionStatus(model.status),
            amount=model.amount,
            currency=model.currency,
            provider=model.provider,
            raw_response=model.raw_response or "",
            metadata=dict(model.extra_metadata or {}),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: PaymentTransaction) -> PaymentTransactionModel:
        """将领域实体转换为数据库模型"""
        return PaymentTransactionModel(
            id=entity.id,
            order_id=entity.order_id,
            transaction_id=entity.transaction_id,
            transaction_type=entity.transaction_type.value,
            status=entity.status.value,
            amount=entity.amount,
            currency=entity.currency,
            provider=entity.provider,
            raw_response=entity.raw_response,
            extra_metadata=entity.metadata,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, transaction: PaymentTransaction) -> PaymentTransaction:
        """追加一条支付流水"""
        db_transaction = self._to_model(transaction)
        self.session.add(db_transaction)
        await self.session.flush()
        await self.session.refresh(db_transaction)
        logger.info(
            "payment_transaction_created",
            transaction_pk=db_transaction.id,
            order_id=db_transaction.order_id,
            transaction_type=db_transaction.transaction_type,
            status=db_transaction.status,
            amount=db_transaction.amount,
        )
        return self._to_entity(db_transaction)

    async def get_by_id(self, transaction_pk: int) -> Optional[PaymentTransaction]:
        db_transaction = await self.session.get(PaymentTransactionModel, transaction_pk)
        return self._to_entity(db_transaction) if db_transaction else None

    async def get_by_transaction_id(
        self,
        transaction_id: str,
        *,
        provider: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
    ) -> Optional[PaymentTransaction]:
        """渠道支付ID会被多种操作复用，返回最新的一条"""
        query = select(PaymentTransactionModel).where(PaymentTransactionModel.transaction_id == transaction_id)
        if provider:
            query = query.where(PaymentTransactionModel.provider == provider)
        if transaction_type:
            query = query.where(PaymentTransactionModel.transaction_type == TransactionType(transaction_type).value)
        result = await self.session.execute(query.order_by(PaymentTransactionModel.id.desc()).limit(1))
        db_transaction = result.scalars().first()
        return self._to_entity(db_transaction) if db_transaction else None

    async def list_by_order(self, order_id: int) -> List[PaymentTransaction]:
        result = await self.session.execute(
            select(PaymentTransactionModel)
            .where(PaymentTransactionModel.order_id == order_id)
            .order_by(PaymentTransactionModel.id)
        )
        return [self._to_entity(t) for t in result.scalars().all()]

    async def update(self, transaction: PaymentTransaction) -> PaymentTransaction:
        """更新状态、原始响应与元数据（金额等不可变）"""
        db_transaction = await self.session.get(PaymentTransactionModel, transaction.id)
        if not db_transaction:
            raise PaymentTransactionNotFoundException(transaction.id)
        db_transaction.status = transaction.status.value
        db_transaction.raw_response = transaction.raw_response
        db_transaction.extra_metadata = dict(transaction.metadata)
        db_transaction.updated_at = transaction.updated_at
        await self.session.flush()
        await self.session.refresh(db_transaction)
        logger.info(
            "payment_transaction_updated",
            transaction_pk=db_transaction.id,
            status=db_transaction.status,
        )
        return self._to_entity(db_transaction)

    async def latest_by_order_and_type(
        self,
        order_id: int,
        transaction_type: TransactionType,
    ) -> Optional[PaymentTransaction]:
        result = await self.session.execute(
            select(PaymentTransactionModel)
            .where(
                PaymentTransactionModel.order_id == order_id,
                PaymentTransactionModel.transaction_type == TransactionType(transaction_type).value,
            )
            .order_by(PaymentTransactionModel.id.desc())
            .limit(1)
        )
        db_transaction = result.scalars().first()
        return self._to_entity(db_transaction) if db_transaction else None

    async def count_successful_by_order_and_type(self, order_id: int, transaction_type: TransactionType) -> int:
        result = await self.session.execute(
            select(func.count(PaymentTransactionModel.id)).where(
                PaymentTransactionModel.order_id == order_id,
                PaymentTransactionModel.transaction_type == TransactionType(transaction_type).value,
                PaymentTransactionModel.status == TransactionStatus.SUCCESSFUL.value,
            )
        )
        return result.scalar_one()

    async def sum_successful_amount_by_order_and_type(self, order_id: int, transaction_type: TransactionType) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(PaymentTransactionModel.amount), 0)).where(
                PaymentTransactionModel.order_id == order_id,
                PaymentTransactionModel.transaction_type == TransactionType(transaction_type).value,
                PaymentTransactionModel.status == TransactionStatus.SUCCESSFUL.value,
            )
        )
        return int(result.scalar_one())

    async def list_pending_older_than(self, cutoff: datetime, limit: int = 100) -> List[PaymentTransaction]:
        result = await self.session.execute(
            select(PaymentTransactionModel)
            .where(
                PaymentTransactionModel.status == TransactionStatus.PENDING.value,
                PaymentTransactionModel.created_at <= cutoff,
            )
            .order_by(PaymentTransactionModel.created_at)
            .limit(limit)
        )
        return [self._to_entity(t) for t in result.scalars().all()]
