"""
运费数据库模型 - 配送方式、配送区域、费率及阶梯
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    BigInteger, Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class ShippingMethodModel(Base):
    __tablename__ = "shipping_methods"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, comment="名称")
    description = Column(Text, nullable=False, default="", comment="描述")
    estimated_delivery_days = Column(Integer, nullable=False, default=0, comment="预计送达天数")
    active = Column(Boolean, nullable=False, default=True, comment="是否启用")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, comment="更新时间")


class ShippingZoneModel(Base):
    """配送区域；countries/states/zip_codes 为空表示该维度不限"""
    __tablename__ = "shipping_zones"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, comment="名称")
    description = Column(Text, nullable=False, default="", comment="描述")
    countries = Column(JSON, nullable=True, comment="国家代码列表")
    states = Column(JSON, nullable=True, comment="州/省列表")
    zip_codes = Column(JSON, nullable=True, comment="邮编列表")
    active = Column(Boolean, nullable=False, default=True, index=True, comment="是否启用")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, comment="更新时间")


class ShippingRateModel(Base):
    __tablename__ = "shipping_rates"

    id = Column(Integer, primary_key=True, index=True)
    shipping_method_id = Column(
        Integer, ForeignKey("shipping_methods.id", ondelete="CASCADE"), nullable=False, index=True
    )
    shipping_zone_id = Column(
        Integer, ForeignKey("shipping_zones.id", ondelete="CASCADE"), nullable=False, index=True
    )
    base_rate = Column(BigInteger, nullable=False, comment="基础运费")
    min_order_value = Column(BigInteger, nullable=False, default=0, comment="最低订单金额")
    free_shipping_threshold = Column(BigInteger, nullable=True, comment="免运费门槛")
    active = Column(Boolean, nullable=False, default=True, comment="是否启用")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, comment="更新时间")

    # 阶梯按 id 顺序保存，命中时取第一个
    weight_tiers = relationship(
        "WeightBasedRateModel",
        cascade="all, delete-orphan",
        order_by="WeightBasedRateModel.id",
        lazy="selectin",
    )
    value_tiers = relationship(
        "ValueBasedRateModel",
        cascade="all, delete-orphan",
        order_by="ValueBasedRateModel.id",
        lazy="selectin",
    )


class WeightBasedRateModel(Base):
    __tablename__ = "shipping_weight_tiers"

    id = Column(Integer, primary_key=True, index=True)
    shipping_rate_id = Column(
        Integer, ForeignKey("shipping_rates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    min_weight = Column(Float, nullable=False, comment="最小重量（含）")
    max_weight = Column(Float, nullable=False, comment="最大重量（含）")
    rate = Column(BigInteger, nullable=False, comment="附加运费")


class ValueBasedRateModel(Base):
    __tablename__ = "shipping_value_tiers"

    id = Column(Integer, primary_key=True, index=True)
    shipping_rate_id = Column(
        Integer, ForeignKey("shipping_rates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    min_order_value = Column(BigInteger, nullable=False, comment="最小订单金额（含）")
    max_order_value = Column(BigInteger, nullable=False, comment="最大订单金额（含）")
    rate = Column(BigInteger, nullable=False, comment="附加运费")
