"""
结算会话领域实体 - 购物车到订单之间的可变会话
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Optional

from domain.common.exceptions import (
    CheckoutExpiredException,
    CheckoutIncompleteException,
    CheckoutItemNotFoundException,
    CheckoutNotActiveException,
    DomainValidationException,
)
from domain.common.money import is_supported
from domain.common.value_objects import (
    Address,
    CheckoutOwner,
    CustomerDetails,
    GuestContact,
    GuestOwner,
    RegisteredOwner,
)
from domain.discount.entity import AppliedDiscount, Discount, PriceableOrder, PricedLine
from domain.order.entity import Order, OrderItem, OrderStatus

DEFAULT_TTL = timedelta(hours=24)


class CheckoutStatus(str, Enum):
    """结算会话状态"""
    ACTIVE = "active"        # 进行中
    COMPLETED = "completed"  # 已转为订单
    ABANDONED = "abandoned"  # 已放弃
    EXPIRED = "expired"      # 已过期


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _now(now: Optional[datetime] = None) -> datetime:
    return _ensure_utc(now) or datetime.now(timezone.utc)


def _validate_product_id(product_id: int) -> None:
    if not product_id or product_id <= 0:
        raise DomainValidationException("商品ID不能为空", field="product_id")


def _validate_quantity(quantity: int) -> None:
    if quantity is None or quantity <= 0:
        raise DomainValidationException("数量必须大于0", field="quantity")


@dataclass
class CheckoutItem:
    """结算行：单价在加入时锁定，商品名称/SKU 冗余保存"""

    product_id: int
    quantity: int
    price: int
    weight: float = 0.0
    variant_id: Optional[int] = None
    product_name: str = ""
    variant_name: str = ""
    sku: str = ""
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        _validate_product_id(self.product_id)
        _validate_quantity(self.quantity)
        if self.price is None or self.price < 0:
            raise DomainValidationException("单价不能为负数", field="price")
        if self.weight < 0:
            raise DomainValidationException("重量不能为负数", field="weight")
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @property
    def key(self) -> tuple[int, Optional[int]]:
        return (self.product_id, self.variant_id)

    @property
    def subtotal(self) -> int:
        return self.price * self.quantity


@dataclass
class Checkout:
    """
    结算会话聚合根

    业务规则：
    1. 归属为注册用户或访客会话，二者互斥（显式的 owner 标签）
    2. 仅 active 且未过期的会话允许修改；completed/abandoned/expired 为终态
    3. 合计字段由 recalculate_totals 派生，调用方不可直接赋值
    4. final_amount = max(total_amount + shipping_cost - discount_amount, 0)
    5. recalculate_totals 不会重新计算折扣金额，折扣只由 apply_discount 推导
    """

    id: Optional[int]
    owner: CheckoutOwner
    items: list[CheckoutItem] = field(default_factory=list)
    status: CheckoutStatus = CheckoutStatus.ACTIVE
    currency: str = "USD"

    shipping_address: Address = field(default_factory=Address)
    billing_address: Address = field(default_factory=Address)
    customer_details: CustomerDetails = field(default_factory=CustomerDetails)
    shipping_method_id: Optional[int] = None
    shipping_rate_id: Optional[int] = None
    payment_provider: Optional[str] = None
    applied_discount: Optional[AppliedDiscount] = None

    # 派生金额（最小货币单位）
    total_amount: int = 0
    shipping_cost: int = 0
    discount_amount: int = 0
    final_amount: int = 0
    total_weight: float = 0.0

    # 时间戳
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    converted_order_id: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.owner, (RegisteredOwner, GuestOwner)):
            raise DomainValidationException("结算会话必须归属注册用户或访客会话", field="owner")
        self.status = CheckoutStatus(self.status)
        self.currency = (self.currency or "").upper()
        if not is_supported(self.currency):
            raise DomainValidationException(f"不支持的币种: {self.currency}", field="currency")
        self.created_at = _now(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at) or self.created_at
        self.last_activity_at = _ensure_utc(self.last_activity_at) or self.created_at
        self.expires_at = _ensure_utc(self.expires_at) or self.created_at + DEFAULT_TTL
        self.completed_at = _ensure_utc(self.completed_at)

    # ------------------------------------------------------------------
    # 构造
    # ------------------------------------------------------------------

    @classmethod
    def start(
        cls,
        owner: CheckoutOwner,
        currency: str = "USD",
        *,
        ttl: timedelta = DEFAULT_TTL,
        now: Optional[datetime] = None,
    ) -> "Checkout":
        now = _now(now)
        return cls(
            id=None,
            owner=owner,
            currency=currency,
            created_at=now,
            updated_at=now,
            last_activity_at=now,
            expires_at=now + ttl,
        )

    @property
    def user_id(self) -> Optional[int]:
        return self.owner.user_id if isinstance(self.owner, RegisteredOwner) else None

    @property
    def session_id(self) -> Optional[str]:
        return self.owner.session_id if isinstance(self.owner, GuestOwner) else None

    @property
    def is_guest(self) -> bool:
        return isinstance(self.owner, GuestOwner)

    # ------------------------------------------------------------------
    # 内部工具
    # ------------------------------------------------------------------

    def _ensure_mutable(self, now: datetime) -> None:
        if self.status != CheckoutStatus.ACTIVE:
            raise CheckoutNotActiveException(self.id, self.status.value)
        if self.is_expired(now):
            raise CheckoutExpiredException(self.id)

    def _touch(self, now: datetime) -> None:
        self.updated_at = now
        self.last_activity_at = now

    def _find(self, product_id: int, variant_id: Optional[int]) -> Optional[CheckoutItem]:
        for item in self.items:
            if item.key == (product_id, variant_id):
                return item
        return None

    # ------------------------------------------------------------------
    # 商品行
    # ------------------------------------------------------------------

    def add_item(
        self,
        product_id: int,
        quantity: int,
        price: int,
        *,
        weight: float = 0.0,
        variant_id: Optional[int] = None,
        product_name: str = "",
        variant_name: str = "",
        sku: str = "",
        now: Optional[datetime] = None,
    ) -> CheckoutItem:
        """加入商品；同一 (商品, 规格) 已存在时累加数量"""
        now = _now(now)
        new_item = CheckoutItem(
            product_id=product_id,
            quantity=quantity,
            price=price,
            weight=weight,
            variant_id=variant_id,
            product_name=product_name,
            variant_name=variant_name,
            sku=sku,
            created_at=now,
            updated_at=now,
        )
        self._ensure_mutable(now)

        existing = self._find(product_id, variant_id)
        if existing is not None:
            existing.quantity += quantity
            existing.updated_at = now
            item = existing
        else:
            self.items.append(new_item)
            item = new_item

        self.recalculate_totals()
        self._touch(now)
        return item

    def update_item(
        self,
        product_id: int,
        quantity: int,
        *,
        variant_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> CheckoutItem:
        now = _now(now)
        _validate_product_id(product_id)
        _validate_quantity(quantity)
        self._ensure_mutable(now)

        item = self._find(product_id, variant_id)
        if item is None:
            raise CheckoutItemNotFoundException(product_id, variant_id)
        item.quantity = quantity
        item.updated_at = now

        self.recalculate_totals()
        self._touch(now)
        return item

    def remove_item(
        self,
        product_id: int,
        *,
        variant_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> None:
        now = _now(now)
        _validate_product_id(product_id)
        self._ensure_mutable(now)

        item = self._find(product_id, variant_id)
        if item is None:
            raise CheckoutItemNotFoundException(product_id, variant_id)
        self.items.remove(item)

        self.recalculate_totals()
        self._touch(now)

    def clear(self, now: Optional[datetime] = None) -> None:
        """清空商品行与折扣（运费选择保留）"""
        now = _now(now)
        self._ensure_mutable(now)
        self.items = []
        self.discount_amount = 0
        self.applied_discount = None
        self.recalculate_totals()
        self._touch(now)

    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    # ------------------------------------------------------------------
    # 地址 / 客户 / 配送 / 支付
    # ------------------------------------------------------------------

    def set_shipping_address(self, address: Address, now: Optional[datetime] = None) -> None:
        now = _now(now)
        self._ensure_mutable(now)
        self.shipping_address = address
        self._touch(now)

    def set_billing_address(self, address: Address, now: Optional[datetime] = None) -> None:
        now = _now(now)
        self._ensure_mutable(now)
        self.billing_address = address
        self._touch(now)

    def set_customer_details(self, details: CustomerDetails, now: Optional[datetime] = None) -> None:
        now = _now(now)
        self._ensure_mutable(now)
        self.customer_details = details
        self._touch(now)

    def set_shipping_method(
        self,
        method_id: int,
        cost: int,
        *,
        rate_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> None:
        now = _now(now)
        if not method_id or method_id <= 0:
            raise DomainValidationException("配送方式ID不能为空", field="shipping_method_id")
        if cost is None or cost < 0:
            raise DomainValidationException("运费不能为负数", field="shipping_cost")
        self._ensure_mutable(now)
        self.shipping_method_id = method_id
        self.shipping_rate_id = rate_id
        self.shipping_cost = cost
        self.recalculate_totals()
        self._touch(now)

    def set_payment_provider(self, provider: str, now: Optional[datetime] = None) -> None:
        now = _now(now)
        if not provider or not provider.strip():
            raise DomainValidationException("支付渠道不能为空", field="payment_provider")
        self._ensure_mutable(now)
        self.payment_provider = provider.strip().lower()
        self._touch(now)

    def set_currency(self, currency: str, now: Optional[datetime] = None) -> None:
        now = _now(now)
        code = (currency or "").upper()
        if not is_supported(code):
            raise DomainValidationException(f"不支持的币种: {currency}", field="currency")
        self._ensure_mutable(now)
        self.currency = code
        self._touch(now)

    # ------------------------------------------------------------------
    # 折扣
    # ------------------------------------------------------------------

    def priceable(self) -> PriceableOrder:
        return PriceableOrder(
            total_amount=self.total_amount,
            lines=tuple(PricedLine(item.product_id, item.subtotal) for item in self.items),
        )

    def apply_discount(
        self,
        discount: Optional[Discount],
        *,
        category_product_ids: Optional[Iterable[int]] = None,
        now: Optional[datetime] = None,
    ) -> Optional[AppliedDiscount]:
        """
        应用折扣；传入 None 表示移除

        折扣不适用时抛出异常，会话保持原状态
        """
        now = _now(now)
        self._ensure_mutable(now)
        if discount is None:
            self.discount_amount = 0
            self.applied_discount = None
        else:
            applied = discount.apply_to(self.priceable(), now, category_product_ids)
            self.discount_amount = applied.amount
            self.applied_discount = applied
        self.recalculate_totals()
        self._touch(now)
        return self.applied_discount

    # ------------------------------------------------------------------
    # 合计
    # ------------------------------------------------------------------

    def recalculate_totals(self) -> None:
        """重新汇总商品金额与重量；discount_amount 沿用已知值"""
        self.total_amount = sum(item.subtotal for item in self.items)
        self.total_weight = sum(item.weight * item.quantity for item in self.items)
        self.final_amount = max(self.total_amount + self.shipping_cost - self.discount_amount, 0)

    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return _now(now) > self.expires_at

    def extend_expiry(self, duration: timedelta, now: Optional[datetime] = None) -> None:
        now = _now(now)
        if duration <= timedelta(0):
            raise DomainValidationException("延期时长必须大于0", field="duration")
        if self.status != CheckoutStatus.ACTIVE:
            raise CheckoutNotActiveException(self.id, self.status.value)
        self.expires_at = now + duration
        self._touch(now)

    def mark_completed(self, order_id: int, now: Optional[datetime] = None) -> None:
        now = _now(now)
        if not order_id:
            raise DomainValidationException("订单ID不能为空", field="order_id")
        if self.status != CheckoutStatus.ACTIVE:
            raise CheckoutNotActiveException(self.id, self.status.value)
        self.status = CheckoutStatus.COMPLETED
        self.converted_order_id = order_id
        self.completed_at = now
        self._touch(now)

    def mark_abandoned(self, now: Optional[datetime] = None) -> None:
        now = _now(now)
        if self.status != CheckoutStatus.ACTIVE:
            raise CheckoutNotActiveException(self.id, self.status.value)
        self.status = CheckoutStatus.ABANDONED
        self._touch(now)

    def is_recoverable(self) -> bool:
        """可挽回：仍为 active、留有邮箱且购物车非空"""
        return (
            self.status == CheckoutStatus.ACTIVE
            and bool(self.customer_details.email.strip())
            and bool(self.items)
        )

    def mark_expired(self, now: Optional[datetime] = None) -> None:
        now = _now(now)
        if self.status != CheckoutStatus.ACTIVE:
            raise CheckoutNotActiveException(self.id, self.status.value)
        self.status = CheckoutStatus.EXPIRED
        self._touch(now)

    # ------------------------------------------------------------------
    # 转为订单
    # ------------------------------------------------------------------

    def missing_for_order(self) -> list[str]:
        missing = []
        if not self.items:
            missing.append("items")
        if not self.shipping_address.is_complete():
            missing.append("shipping_address")
        if not self.billing_address.is_complete():
            missing.append("billing_address")
        if not self.customer_details.is_complete():
            missing.append("customer_details")
        return missing

    def to_order(self, now: Optional[datetime] = None) -> Order:
        """
        生成订单快照（尚未持久化，订单号为临时号）

        会话信息不完整时抛出 CheckoutIncompleteException
        """
        now = _now(now)
        self._ensure_mutable(now)
        missing = self.missing_for_order()
        if missing:
            raise CheckoutIncompleteException(missing)

        items = [
            OrderItem(
                product_id=item.product_id,
                quantity=item.quantity,
                price=item.price,
                subtotal=item.subtotal,
                weight=item.weight,
                variant_id=item.variant_id,
                product_name=item.product_name,
                variant_name=item.variant_name,
                sku=item.sku,
            )
            for item in self.items
        ]
        if isinstance(self.owner, RegisteredOwner):
            owner = self.owner
        else:
            owner = GuestContact(
                email=self.customer_details.email,
                full_name=self.customer_details.full_name,
                phone=self.customer_details.phone,
            )

        return Order(
            id=None,
            owner=owner,
            items=items,
            currency=self.currency,
            status=OrderStatus.PENDING,
            total_amount=self.total_amount,
            shipping_cost=self.shipping_cost,
            discount_amount=self.discount_amount,
            final_amount=self.final_amount,
            total_weight=self.total_weight,
            shipping_address=self.shipping_address,
            billing_address=self.billing_address,
            customer_details=self.customer_details,
            shipping_method_id=self.shipping_method_id,
            applied_discount=self.applied_discount,
            checkout_id=self.id,
            payment_provider=self.payment_provider,
            created_at=now,
            updated_at=now,
        )
