"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    BigInteger, Column, DateTime, Float, ForeignKey, Index, Integer, JSON, String
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型

    归属以 owner_type 标记：user 时 user_id 有值，guest 时 guest_email 有值
    所有业务规则都在 domain.order.entity.Order 中
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    # 临时订单号在同一天内会重复，唯一性由正式订单号中的 id 保证
    order_number = Column(String(64), index=True, nullable=False, comment="订单号")

    # 归属
    owner_type = Column(String(10), nullable=False, comment="归属类型: user/guest")
    user_id = Column(Integer, nullable=True, index=True, comment="注册用户ID")
    guest_email = Column(String(255), nullable=True, comment="访客邮箱")
    guest_full_name = Column(String(255), nullable=True, comment="访客姓名")
    guest_phone = Column(String(50), nullable=True, comment="访客电话")

    status = Column(String(20), nullable=False, default="pending", index=True, comment="订单状态")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码 ISO-4217")

    # 金额（最小货币单位）
    total_amount = Column(BigInteger, nullable=False, default=0, comment="商品合计")
    shipping_cost = Column(BigInteger, nullable=False, default=0, comment="运费")
    discount_amount = Column(BigInteger, nullable=False, default=0, comment="折扣金额")
    final_amount = Column(BigInteger, nullable=False, default=0, comment="应付金额")
    total_weight = Column(Float, nullable=False, default=0.0, comment="总重量")

    shipping_address = Column(JSON, nullable=True, comment="收货地址")
    billing_address = Column(JSON, nullable=True, comment="账单地址")
    customer_details = Column(JSON, nullable=True, comment="客户信息")
    shipping_method_id = Column(Integer, nullable=True, comment="配送方式ID")
    discount_id = Column(Integer, nullable=True, comment="折扣ID")
    discount_code = Column(String(64), nullable=True, comment="折扣码")
    checkout_id = Column(Integer, nullable=True, index=True, comment="来源结算会话ID")

    # 支付与物流
    payment_id = Column(String(200), nullable=True, index=True, comment="支付渠道的支付ID")
    payment_provider = Column(String(50), nullable=True, comment="支付渠道")
    tracking_code = Column(String(100), nullable=True, comment="物流单号")
    action_url = Column(String(1024), nullable=True, comment="待用户操作的跳转地址")

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
    completed_at = Column(DateTime(timezone=True), nullable=True, comment="完成时间")

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_orders_user_status", "user_id", "status"),
    )

    def __repr__(self):
        return (
            f"<OrderModel(id={self.id}, order_number='{self.order_number}', "
            f"final_amount={self.final_amount}, status='{self.status}')>"
        )


class OrderItemModel(Base):
    """订单商品行（下单时的快照）"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="所属订单"
    )
    product_id = Column(Integer, nullable=False, comment="商品ID")
    variant_id = Column(Integer, nullable=True, comment="规格ID")
    quantity = Column(Integer, nullable=False, comment="数量")
    price = Column(BigInteger, nullable=False, comment="单价")
    subtotal = Column(BigInteger, nullable=False, comment="小计")
    weight = Column(Float, nullable=False, default=0.0, comment="单件重量")
    product_name = Column(String(255), nullable=False, default="", comment="商品名称快照")
    variant_name = Column(String(255), nullable=False, default="", comment="规格名称快照")
    sku = Column(String(100), nullable=False, default="", comment="SKU")

    order = relationship("OrderModel", back_populates="items")

    def __repr__(self):
        return f"<OrderItemModel(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"
