"""
结算会话数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    BigInteger, Column, DateTime, Float, ForeignKey, Index, Integer, JSON, String, text
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class CheckoutModel(Base):
    """
    结算会话数据库模型

    归属以 owner_type 标记：user 时 user_id 有值，guest 时 session_id 有值
    所有业务规则都在 domain.checkout.entity.Checkout 中
    """
    __tablename__ = "checkouts"

    id = Column(Integer, primary_key=True, index=True)

    # 归属
    owner_type = Column(String(10), nullable=False, comment="归属类型: user/guest")
    user_id = Column(Integer, nullable=True, index=True, comment="注册用户ID")
    session_id = Column(String(128), nullable=True, index=True, comment="访客会话ID")

    status = Column(String(20), nullable=False, default="active", index=True, comment="状态: active/completed/abandoned/expired")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码 ISO-4217")

    # 地址与客户信息（值对象整体存储）
    shipping_address = Column(JSON, nullable=True, comment="收货地址")
    billing_address = Column(JSON, nullable=True, comment="账单地址")
    customer_details = Column(JSON, nullable=True, comment="客户信息")

    shipping_method_id = Column(Integer, nullable=True, comment="配送方式ID")
    shipping_rate_id = Column(Integer, nullable=True, comment="运费费率ID")
    payment_provider = Column(String(50), nullable=True, comment="支付渠道")

    # 已应用折扣
    discount_id = Column(Integer, nullable=True, comment="折扣ID")
    discount_code = Column(String(64), nullable=True, comment="折扣码")

    # 金额（最小货币单位）
    total_amount = Column(BigInteger, nullable=False, default=0, comment="商品合计")
    shipping_cost = Column(BigInteger, nullable=False, default=0, comment="运费")
    discount_amount = Column(BigInteger, nullable=False, default=0, comment="折扣金额")
    final_amount = Column(BigInteger, nullable=False, default=0, comment="应付金额")
    total_weight = Column(Float, nullable=False, default=0.0, comment="总重量")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )
    last_activity_at = Column(DateTime(timezone=True), nullable=True, comment="最后活动时间")
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True, comment="过期时间")
    completed_at = Column(DateTime(timezone=True), nullable=True, comment="完成时间")
    converted_order_id = Column(Integer, nullable=True, comment="转换后的订单ID")

    items = relationship(
        "CheckoutItemModel",
        back_populates="checkout",
        cascade="all, delete-orphan",
        order_by="CheckoutItemModel.id",
        lazy="selectin",
    )

    __table_args__ = (
        # 每个归属同一时间最多一个 active 会话
        Index(
            "uq_checkouts_active_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'active' AND user_id IS NOT NULL"),
            sqlite_where=text("status = 'active' AND user_id IS NOT NULL"),
        ),
        Index(
            "uq_checkouts_active_session",
            "session_id",
            unique=True,
            postgresql_where=text("status = 'active' AND session_id IS NOT NULL"),
            sqlite_where=text("status = 'active' AND session_id IS NOT NULL"),
        ),
        Index("ix_checkouts_status_expires", "status", "expires_at"),
    )

    def __repr__(self):
        return f"<CheckoutModel(id={self.id}, owner_type='{self.owner_type}', status='{self.status}')>"


class CheckoutItemModel(Base):
    """结算会话商品行"""
    __tablename__ = "checkout_items"

    id = Column(Integer, primary_key=True, index=True)
    checkout_id = Column(
        Integer,
        ForeignKey("checkouts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="所属结算会话"
    )
    product_id = Column(Integer, nullable=False, comment="商品ID")
    variant_id = Column(Integer, nullable=True, comment="规格ID")
    quantity = Column(Integer, nullable=False, comment="数量")
    price = Column(BigInteger, nullable=False, comment="单价（最小货币单位）")
    weight = Column(Float, nullable=False, default=0.0, comment="单件重量")
    product_name = Column(String(255), nullable=False, default="", comment="商品名称快照")
    variant_name = Column(String(255), nullable=False, default="", comment="规格名称快照")
    sku = Column(String(100), nullable=False, default="", comment="SKU")
    created_at = Column(DateTime(timezone=True), nullable=True, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), nullable=True, comment="更新时间")

    checkout = relationship("CheckoutModel", back_populates="items")

    def __repr__(self):
        return f"<CheckoutItemModel(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"
