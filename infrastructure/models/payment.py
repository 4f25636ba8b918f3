"""
支付流水数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    BigInteger, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
)
from datetime import datetime, timezone

from .base import Base


class PaymentTransactionModel(Base):
    """
    支付流水数据库模型

    每次与支付渠道的交互（授权/请款/退款/取消）一行，只追加
    transaction_id 是渠道侧的支付ID，同一笔支付的多种操作会复用，因此不唯一
    """
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="订单ID"
    )
    transaction_id = Column(String(200), nullable=False, index=True, comment="渠道支付ID")
    transaction_type = Column(String(20), nullable=False, comment="类型: authorize/capture/refund/cancel")
    status = Column(String(20), nullable=False, default="pending", index=True, comment="状态: pending/successful/failed")
    amount = Column(BigInteger, nullable=False, comment="金额（最小货币单位）")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码 ISO-4217")
    provider = Column(String(50), nullable=False, index=True, comment="支付渠道")
    raw_response = Column(Text, nullable=False, default="", comment="渠道原始响应")

    # 元数据（使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        Index("ix_payment_transactions_order_type_status", "order_id", "transaction_type", "status"),
        Index("ix_payment_transactions_provider_ref", "provider", "transaction_id"),
    )

    def __repr__(self):
        return (
            f"<PaymentTransactionModel(id={self.id}, order_id={self.order_id}, "
            f"type='{self.transaction_type}', amount={self.amount}, status='{self.status}')>"
        )
