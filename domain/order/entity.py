"""
订单领域实体 - 订单聚合根与状态机
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional

from domain.common.exceptions import (
    DomainValidationException,
    InvalidStatusTransitionException,
)
from domain.common.value_objects import (
    Address,
    CustomerDetails,
    GuestContact,
    OrderOwner,
    RegisteredOwner,
)
from domain.discount.entity import AppliedDiscount, Discount, PriceableOrder, PricedLine


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING = "pending"                # 待支付
    PENDING_ACTION = "pending_action"  # 需要用户跳转完成支付
    PAID = "paid"                      # 已授权
    CAPTURED = "captured"              # 已扣款
    SHIPPED = "shipped"                # 已发货
    DELIVERED = "delivered"            # 已送达
    CANCELLED = "cancelled"            # 已取消（终态）
    REFUNDED = "refunded"              # 已退款（终态）


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED, OrderStatus.PENDING_ACTION}),
    OrderStatus.PENDING_ACTION: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.CAPTURED, OrderStatus.REFUNDED}),
    OrderStatus.CAPTURED: frozenset({OrderStatus.SHIPPED, OrderStatus.REFUNDED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

REGISTERED_PREFIX = "ORD"
GUEST_PREFIX = "GS"
PROVISIONAL_SUFFIX = "TEMP"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def provisional_order_number(is_guest: bool, created_at: datetime) -> str:
    prefix = GUEST_PREFIX if is_guest else REGISTERED_PREFIX
    return f"{prefix}-{created_at:%Y%m%d}-{PROVISIONAL_SUFFIX}"


def final_order_number(is_guest: bool, created_at: datetime, order_id: int) -> str:
    prefix = GUEST_PREFIX if is_guest else REGISTERED_PREFIX
    return f"{prefix}-{created_at:%Y%m%d}-{order_id:06d}"


@dataclass(frozen=True)
class OrderItem:
    """订单行快照（下单时刻的价格、数量与展示信息）"""
    product_id: int
    quantity: int
    price: int
    subtotal: int
    weight: float = 0.0
    variant_id: Optional[int] = None
    product_name: str = ""
    variant_name: str = ""
    sku: str = ""
    id: Optional[int] = None

    def __post_init__(self):
        if self.product_id <= 0:
            raise DomainValidationException("商品ID不能为空", field="product_id")
        if self.quantity <= 0:
            raise DomainValidationException("数量必须大于0", field="quantity")
        if self.price < 0:
            raise DomainValidationException("单价不能为负数", field="price")


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. 归属为注册用户或访客联系人，二者互斥
    2. 订单行为创建时快照，之后不可修改
    3. 状态流转必须符合 ALLOWED_TRANSITIONS，同状态流转为幂等空操作
    4. 进入 delivered 时记录 completed_at，且只记录一次
    5. 订单号先为临时号，拿到持久化ID后在同一事务内替换为正式号
    """

    id: Optional[int]
    owner: OrderOwner
    items: list[OrderItem]
    currency: str = "USD"
    status: OrderStatus = OrderStatus.PENDING
    order_number: str = ""

    # 金额（最小货币单位）
    total_amount: int = 0
    shipping_cost: int = 0
    discount_amount: int = 0
    final_amount: int = 0
    total_weight: float = 0.0

    shipping_address: Address = field(default_factory=Address)
    billing_address: Address = field(default_factory=Address)
    customer_details: CustomerDetails = field(default_factory=CustomerDetails)
    shipping_method_id: Optional[int] = None
    applied_discount: Optional[AppliedDiscount] = None
    checkout_id: Optional[int] = None

    # 支付相关
    payment_id: Optional[str] = None
    payment_provider: Optional[str] = None
    tracking_code: Optional[str] = None
    action_url: Optional[str] = None

    # 时间戳
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        if not isinstance(self.owner, (RegisteredOwner, GuestContact)):
            raise DomainValidationException("订单必须归属注册用户或访客", field="owner")
        if not self.items:
            raise DomainValidationException("订单至少包含一个商品", field="items")
        self.status = OrderStatus(self.status)
        self.items = list(self.items)
        self.created_at = _ensure_utc(self.created_at) or datetime.now(timezone.utc)
        self.updated_at = _ensure_utc(self.updated_at) or self.created_at
        self.completed_at = _ensure_utc(self.completed_at)
        if not self.order_number:
            self.order_number = provisional_order_number(self.is_guest, self.created_at)

    @property
    def is_guest(self) -> bool:
        return isinstance(self.owner, GuestContact)

    @property
    def user_id(self) -> Optional[int]:
        return self.owner.user_id if isinstance(self.owner, RegisteredOwner) else None

    def _touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # 状态机
    # ------------------------------------------------------------------

    def can_transition_to(self, target: OrderStatus) -> bool:
        target = OrderStatus(target)
        return target == self.status or target in ALLOWED_TRANSITIONS[self.status]

    def update_status(self, target: OrderStatus) -> bool:
        """
        变更订单状态

        返回是否发生了实际变化；非法流转抛出异常且状态保持不变
        """
        target = OrderStatus(target)
        if target == self.status:
            return False
        if not self.can_transition_to(target):
            raise InvalidStatusTransitionException("order", self.status.value, target.value)
        self.status = target
        now = datetime.now(timezone.utc)
        if target == OrderStatus.DELIVERED and self.completed_at is None:
            self.completed_at = now
        self.updated_at = now
        return True

    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.status]

    # ------------------------------------------------------------------
    # 订单号
    # ------------------------------------------------------------------

    def is_number_provisional(self) -> bool:
        return self.order_number.endswith(f"-{PROVISIONAL_SUFFIX}")

    def assign_order_number(self, order_id: Optional[int] = None) -> bool:
        """临时号 -> 正式号，只执行一次；已是正式号时返回 False"""
        order_id = order_id or self.id
        if not order_id:
            raise DomainValidationException("分配订单号前必须先持久化订单", field="id")
        if not self.is_number_provisional():
            return False
        self.id = order_id
        self.order_number = final_order_number(self.is_guest, self.created_at, order_id)
        self._touch()
        return True

    # ------------------------------------------------------------------
    # 支付 / 物流信息
    # ------------------------------------------------------------------

    @staticmethod
    def _require(value: Optional[str], name: str) -> str:
        if not value or not value.strip():
            raise DomainValidationException(f"{name} 不能为空", field=name)
        return value.strip()

    def set_payment_id(self, payment_id: str) -> None:
        self.payment_id = self._require(payment_id, "payment_id")
        self._touch()

    def set_payment_provider(self, provider: str) -> None:
        self.payment_provider = self._require(provider, "payment_provider")
        self._touch()

    def set_tracking_code(self, tracking_code: str) -> None:
        self.tracking_code = self._require(tracking_code, "tracking_code")
        self._touch()

    def set_action_url(self, action_url: str) -> None:
        self.action_url = self._require(action_url, "action_url")
        self._touch()

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
        discount: Discount,
        now: Optional[datetime] = None,
        category_product_ids: Optional[Iterable[int]] = None,
    ) -> AppliedDiscount:
        """基于订单本身（而非来源结算会话）重新校验并计算折扣"""
        applied = discount.apply_to(self.priceable(), now, category_product_ids)
        self.discount_amount = applied.amount
        self.applied_discount = applied
        self.final_amount = self.total_amount - self.discount_amount
        self._touch()
        return applied

    def remove_discount(self) -> None:
        self.discount_amount = 0
        self.applied_discount = None
        self.final_amount = self.total_amount
        self._touch()
