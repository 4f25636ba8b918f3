"""
折扣领域实体 - 折扣规则与金额计算
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from domain.common.exceptions import (
    DomainValidationException,
    DiscountNotApplicableException,
    DiscountUsageLimitReachedException,
)
from domain.common.money import apply_percentage


class DiscountType(str, Enum):
    """折扣作用范围"""
    BASKET = "basket"    # 整单
    PRODUCT = "product"  # 指定商品/分类


class DiscountMethod(str, Enum):
    """折扣计算方式"""
    FIXED = "fixed"            # 固定金额（最小货币单位）
    PERCENTAGE = "percentage"  # 百分比


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class PricedLine:
    """参与折扣计算的订单行（小计已包含数量）"""
    product_id: int
    subtotal: int


@dataclass(frozen=True)
class PriceableOrder:
    """折扣引擎所见的订单视图：商品合计 + 订单行"""
    total_amount: int
    lines: tuple[PricedLine, ...] = ()


@dataclass(frozen=True)
class AppliedDiscount:
    """已应用折扣的快照"""
    discount_id: int
    code: str
    amount: int


@dataclass
class Discount:
    """
    折扣聚合根

    业务规则：
    1. 折扣码必填且唯一
    2. 折扣值必须大于0，百分比不超过100
    3. 商品类折扣至少限定一个商品或分类
    4. 有效期为 [start_date, end_date)
    5. usage_limit=0 表示不限次数；max_discount_value=0 表示不封顶
    6. 使用次数只在订单完成时累加
    """

    id: Optional[int]
    code: str
    discount_type: DiscountType
    method: DiscountMethod
    value: Decimal
    start_date: datetime
    end_date: datetime
    min_order_value: int = 0
    max_discount_value: int = 0
    product_ids: list[int] = field(default_factory=list)
    category_ids: list[int] = field(default_factory=list)
    usage_limit: int = 0
    current_usage: int = 0
    active: bool = True

    # 时间戳
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.code = (self.code or "").strip()
        self.discount_type = DiscountType(self.discount_type)
        self.method = DiscountMethod(self.method)
        self.value = Decimal(str(self.value)) if isinstance(self.value, float) else Decimal(self.value)
        self.product_ids = list(self.product_ids or [])
        self.category_ids = list(self.category_ids or [])
        self.start_date = _ensure_utc(self.start_date)
        self.end_date = _ensure_utc(self.end_date)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self._validate()

    def _validate(self) -> None:
        if not self.code:
            raise DomainValidationException("折扣码不能为空", field="code")
        if self.value <= 0:
            raise DomainValidationException(f"折扣值必须大于0: {self.value}", field="value")
        if self.method == DiscountMethod.PERCENTAGE and self.value > 100:
            raise DomainValidationException(f"百分比折扣不能超过100: {self.value}", field="value")
        if self.method == DiscountMethod.FIXED and self.value != self.value.to_integral_value():
            raise DomainValidationException("固定金额折扣必须为最小货币单位整数", field="value")
        if (
            self.discount_type == DiscountType.PRODUCT
            and not self.product_ids
            and not self.category_ids
        ):
            raise DomainValidationException(
                "商品类折扣必须指定商品或分类",
                field="product_ids",
            )
        if self.start_date is None or self.end_date is None:
            raise DomainValidationException("折扣必须设置有效期", field="start_date")
        if self.end_date <= self.start_date:
            raise DomainValidationException("结束时间必须晚于开始时间", field="end_date")
        for name in ("min_order_value", "max_discount_value", "usage_limit", "current_usage"):
            if getattr(self, name) < 0:
                raise DomainValidationException(f"{name} 不能为负数", field=name)

    # ------------------------------------------------------------------
    # 有效性 / 适用性
    # ------------------------------------------------------------------

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """启用、处于有效期内、未达使用上限"""
        now = _ensure_utc(now) or datetime.now(timezone.utc)
        if not self.active:
            return False
        if now < self.start_date or now >= self.end_date:
            return False
        return self.usage_limit == 0 or self.current_usage < self.usage_limit

    def eligible_product_ids(self, category_product_ids: Optional[Iterable[int]] = None) -> set[int]:
        """直接指定的商品 + 调用方预先展开的分类商品"""
        eligible = set(self.product_ids)
        if category_product_ids is not None:
            eligible.update(category_product_ids)
        return eligible

    def is_applicable(
        self,
        order: PriceableOrder,
        now: Optional[datetime] = None,
        category_product_ids: Optional[Iterable[int]] = None,
    ) -> bool:
        """
        判断折扣是否适用于订单

        分类展开由调用方负责：传入 category_product_ids 时按商品集合精确判断；
        未传入且配置了分类时，视为“可能适用”。
        """
        if not self.is_valid(now):
            return False
        if self.min_order_value > 0 and order.total_amount < self.min_order_value:
            return False
        if self.discount_type == DiscountType.BASKET:
            return True

        resolved = None if category_product_ids is None else set(category_product_ids)
        eligible = self.eligible_product_ids(resolved)
        if any(line.product_id in eligible for line in order.lines):
            return True
        return bool(self.category_ids) and resolved is None

    def calculate(
        self,
        order: PriceableOrder,
        now: Optional[datetime] = None,
        category_product_ids: Optional[Iterable[int]] = None,
    ) -> int:
        """计算折扣金额（最小货币单位），不适用时返回0"""
        resolved = None if category_product_ids is None else set(category_product_ids)
        if not self.is_applicable(order, now, resolved):
            return 0

        amount = 0
        if self.discount_type == DiscountType.BASKET:
            if self.method == DiscountMethod.FIXED:
                amount = int(self.value)
            else:
                amount = apply_percentage(order.total_amount, self.value)
        else:
            eligible = self.eligible_product_ids(resolved)
            for line in order.lines:
                if line.product_id not in eligible:
                    continue
                if self.method == DiscountMethod.FIXED:
                    # 每个匹配行只减一次，数量已体现在小计中
                    amount += min(int(self.value), line.subtotal)
                else:
                    amount += apply_percentage(line.subtotal, self.value)

        if self.max_discount_value > 0 and amount > self.max_discount_value:
            amount = self.max_discount_value
        if amount > order.total_amount:
            amount = order.total_amount
        return max(amount, 0)

    def apply_to(
        self,
        order: PriceableOrder,
        now: Optional[datetime] = None,
        category_product_ids: Optional[Iterable[int]] = None,
    ) -> AppliedDiscount:
        """
        校验并计算折扣，返回快照

        不适用或计算结果为0时抛出 DiscountNotApplicableException，
        已达使用上限时抛出 DiscountUsageLimitReachedException
        """
        resolved = None if category_product_ids is None else set(category_product_ids)
        if not self.is_valid(now):
            if self.usage_limit and self.current_usage >= self.usage_limit:
                raise DiscountUsageLimitReachedException(self.code)
            raise DiscountNotApplicableException(self.code, "discount is not active or has expired")
        if not self.is_applicable(order, now, resolved):
            if self.min_order_value > 0 and order.total_amount < self.min_order_value:
                raise DiscountNotApplicableException(
                    self.code, f"order total below minimum of {self.min_order_value}"
                )
            raise DiscountNotApplicableException(self.code, "no eligible items in order")
        amount = self.calculate(order, now, resolved)
        if amount <= 0:
            raise DiscountNotApplicableException(self.code, "discount amount is zero")
        return AppliedDiscount(discount_id=self.id, code=self.code, amount=amount)

    def increment_usage(self) -> None:
        """
        使用次数 +1（内存态）

        并发场景必须使用仓储层的条件更新 try_increment_usage
        """
        if self.usage_limit and self.current_usage >= self.usage_limit:
            raise DiscountUsageLimitReachedException(self.code)
        self.current_usage += 1
        self.updated_at = datetime.now(timezone.utc)

    _REVISABLE = frozenset(
        {
            "value",
            "start_date",
            "end_date",
            "min_order_value",
            "max_discount_value",
            "product_ids",
            "category_ids",
            "usage_limit",
            "active",
        }
    )

    def revise(self, **changes) -> None:
        """修改折扣条款并重新校验；校验失败时恢复原值"""
        unknown = set(changes) - self._REVISABLE
        if unknown:
            raise DomainValidationException(f"不可修改的字段: {sorted(unknown)}", field=sorted(unknown)[0])
        snapshot = {name: getattr(self, name) for name in changes}
        for name, value in changes.items():
            setattr(self, name, value)
        try:
            self.__post_init__()
        except DomainValidationException:
            for name, value in snapshot.items():
                setattr(self, name, value)
            raise
        self.updated_at = datetime.now(timezone.utc)

    def deactivate(self) -> None:
        self.active = False
        self.updated_at = datetime.now(timezone.utc)

    def activate(self) -> None:
        self.active = True
        self.updated_at = datetime.now(timezone.utc)
