"""
折扣数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, JSON, Numeric, String
from datetime import datetime, timezone

from .base import Base


class DiscountModel(Base):
    """
    折扣数据库模型

    所有业务规则都在 domain.discount.entity.Discount 中
    """
    __tablename__ = "discounts"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), unique=True, index=True, nullable=False, comment="折扣码（大写存储）")
    discount_type = Column(String(20), nullable=False, comment="适用范围: order/product/shipping")
    method = Column(String(20), nullable=False, comment="计算方式: percentage/fixed")
    # 百分比允许小数，固定金额为最小货币单位整数
    value = Column(Numeric(precision=15, scale=4), nullable=False, comment="折扣值")

    start_date = Column(DateTime(timezone=True), nullable=False, comment="生效时间")
    end_date = Column(DateTime(timezone=True), nullable=False, comment="失效时间")
    min_order_value = Column(BigInteger, nullable=False, default=0, comment="最低订单金额")
    max_discount_value = Column(BigInteger, nullable=False, default=0, comment="最高折扣金额，0 表示不限")

    product_ids = Column(JSON, nullable=True, comment="适用商品ID")
    category_ids = Column(JSON, nullable=True, comment="适用分类ID")

    usage_limit = Column(Integer, nullable=False, default=0, comment="使用上限，0 表示不限")
    current_usage = Column(Integer, nullable=False, default=0, comment="已使用次数")
    active = Column(Boolean, nullable=False, default=True, index=True, comment="是否启用")

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

    def __repr__(self):
        return f"<DiscountModel(id={self.id}, code='{self.code}', method='{self.method}', value={self.value})>"
