"""
运费领域实体 - 配送方式、配送区域、费率与阶梯规则
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.common.value_objects import Address


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _normalize_codes(values) -> list[str]:
    return [str(v).strip().upper() for v in (values or []) if str(v).strip()]


@dataclass
class ShippingMethod:
    """配送方式（如标准快递、次日达）"""

    id: Optional[int]
    name: str
    description: str = ""
    estimated_delivery_days: int = 0
    active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise DomainValidationException("配送方式名称不能为空", field="name")
        if self.estimated_delivery_days < 0:
            raise DomainValidationException("预计送达天数不能为负数", field="estimated_delivery_days")
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    def deactivate(self) -> None:
        if self.active:
            self.active = False
            self.updated_at = datetime.now(timezone.utc)

    def activate(self) -> None:
        if not self.active:
            self.active = True
            self.updated_at = datetime.now(timezone.utc)


@dataclass
class ShippingZone:
    """
    配送区域

    匹配规则（逐级短路）：国家 -> 州/省 -> 邮编，某一级为空集时视为通配
    """

    id: Optional[int]
    name: str
    description: str = ""
    countries: list[str] = field(default_factory=list)
    states: list[str] = field(default_factory=list)
    zip_codes: list[str] = field(default_factory=list)
    active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise DomainValidationException("配送区域名称不能为空", field="name")
        self.countries = _normalize_codes(self.countries)
        self.states = _normalize_codes(self.states)
        self.zip_codes = _normalize_codes(self.zip_codes)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    def matches(self, address: Address) -> bool:
        if self.countries and address.country.strip().upper() not in self.countries:
            return False
        if self.states and address.state.strip().upper() not in self.states:
            return False
        if self.zip_codes and address.postal_code.strip().upper() not in self.zip_codes:
            return False
        return True

    def set_countries(self, countries: list[str]) -> None:
        self.countries = _normalize_codes(countries)
        self.updated_at = datetime.now(timezone.utc)

    def set_states(self, states: list[str]) -> None:
        self.states = _normalize_codes(states)
        self.updated_at = datetime.now(timezone.utc)

    def set_zip_codes(self, zip_codes: list[str]) -> None:
        self.zip_codes = _normalize_codes(zip_codes)
        self.updated_at = datetime.now(timezone.utc)


@dataclass(frozen=True)
class WeightBasedRate:
    """重量阶梯：min_weight <= weight <= max_weight 时追加 rate"""
    min_weight: float
    max_weight: float
    rate: int
    id: Optional[int] = None

    def __post_init__(self):
        if self.min_weight < 0 or self.max_weight < self.min_weight:
            raise DomainValidationException("重量区间无效", field="weight_based_rates")
        if self.rate < 0:
            raise DomainValidationException("阶梯费用不能为负数", field="weight_based_rates")

    def covers(self, weight: float) -> bool:
        return self.min_weight <= weight <= self.max_weight


@dataclass(frozen=True)
class ValueBasedRate:
    """金额阶梯：min_order_value <= order_value <= max_order_value 时追加 rate"""
    min_order_value: int
    max_order_value: int
    rate: int
    id: Optional[int] = None

    def __post_init__(self):
        if self.min_order_value < 0 or self.max_order_value < self.min_order_value:
            raise DomainValidationException("金额区间无效", field="value_based_rates")
        if self.rate < 0:
            raise DomainValidationException("阶梯费用不能为负数", field="value_based_rates")

    def covers(self, order_value: int) -> bool:
        return self.min_order_value <= order_value <= self.max_order_value


@dataclass
class ShippingRate:
    """
    运费费率 - 关联一个配送方式与一个配送区域

    业务规则：
    1. 达到免运费门槛时运费为0
    2. 订单金额低于 min_order_value 时该费率不适用
    3. 基础运费 + 第一个命中的重量阶梯 + 第一个命中的金额阶梯
    """

    id: Optional[int]
    shipping_method_id: int
    shipping_zone_id: int
    base_rate: int
    min_order_value: int = 0
    free_shipping_threshold: Optional[int] = None
    weight_based_rates: list[WeightBasedRate] = field(default_factory=list)
    value_based_rates: list[ValueBasedRate] = field(default_factory=list)
    active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.shipping_method_id:
            raise DomainValidationException("配送方式ID不能为空", field="shipping_method_id")
        if not self.shipping_zone_id:
            raise DomainValidationException("配送区域ID不能为空", field="shipping_zone_id")
        if self.base_rate < 0:
            raise DomainValidationException("基础运费不能为负数", field="base_rate")
        if self.min_order_value < 0:
            raise DomainValidationException("最低订单金额不能为负数", field="min_order_value")
        if self.free_shipping_threshold is not None and self.free_shipping_threshold < 0:
            raise DomainValidationException("免运费门槛不能为负数", field="free_shipping_threshold")
        self.weight_based_rates = list(self.weight_based_rates or [])
        self.value_based_rates = list(self.value_based_rates or [])
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    def is_free_for(self, order_value: int) -> bool:
        return self.free_shipping_threshold is not None and order_value >= self.free_shipping_threshold

    def accepts(self, order_value: int) -> bool:
        return self.active and order_value >= self.min_order_value

    def calculate_cost(self, order_value: int, weight: float) -> int:
        if self.is_free_for(order_value):
            return 0
        if order_value < self.min_order_value:
            return 0

        cost = self.base_rate
        for tier in self.weight_based_rates:
            if tier.covers(weight):
                cost += tier.rate
                break
        for tier in self.value_based_rates:
            if tier.covers(order_value):
                cost += tier.rate
                break
        return cost

    def update(self, base_rate: int, min_order_value: int) -> None:
        if base_rate < 0:
            raise DomainValidationException("基础运费不能为负数", field="base_rate")
        if min_order_value < 0:
            raise DomainValidationException("最低订单金额不能为负数", field="min_order_value")
        self.base_rate = base_rate
        self.min_order_value = min_order_value
        self.updated_at = datetime.now(timezone.utc)

    def set_free_shipping_threshold(self, threshold: Optional[int]) -> None:
        if threshold is not None and threshold < 0:
            raise DomainValidationException("免运费门槛不能为负数", field="free_shipping_threshold")
        self.free_shipping_threshold = threshold
        self.updated_at = datetime.now(timezone.utc)

    def add_weight_tier(self, tier: WeightBasedRate) -> None:
        self.weight_based_rates.append(tier)
        self.updated_at = datetime.now(timezone.utc)

    def add_value_tier(self, tier: ValueBasedRate) -> None:
        self.value_based_rates.append(tier)
        self.updated_at = datetime.now(timezone.utc)


@dataclass(frozen=True)
class ShippingOption:
    """面向结算页展示的可选配送项"""
    shipping_rate_id: int
    shipping_method_id: int
    name: str
    description: str
    estimated_delivery_days: int
    cost: int
    free_shipping: bool
