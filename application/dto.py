"""
数据传输对象（DTO）- 应用层与调用方之间的数据传输

金额字段一律为最小货币单位整数
"""
from pydantic import BaseModel, EmailStr, Field, field_validator, model_serializer, ConfigDict
from typing import Optional, Any
from datetime import datetime, timezone
from decimal import Decimal

from core.config import settings
from domain.checkout.entity import Checkout, CheckoutItem
from domain.common.value_objects import Address, CustomerDetails
from domain.discount.entity import Discount, DiscountMethod, DiscountType
from domain.order.entity import Order, OrderItem
from domain.payment.entity import PaymentTransaction
from domain.shipping.entity import ShippingOption


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


# ---------------------------------------------------------------------------
# 通用
# ---------------------------------------------------------------------------

class AddressDTO(DTOBase):
    """地址DTO"""
    street: str = Field("", max_length=255)
    city: str = Field("", max_length=100)
    state: str = Field("", max_length=100)
    postal_code: str = Field("", max_length=20)
    country: str = Field("", max_length=2, description="ISO 3166-1 alpha-2")

    @field_validator("country")
    def upper_country(cls, v):
        return (v or "").strip().upper()

    def to_value(self) -> Address:
        return Address(**self.model_dump())

    @classmethod
    def from_value(cls, address: Address) -> "AddressDTO":
        return cls(
            street=address.street,
            city=address.city,
            state=address.state,
            postal_code=address.postal_code,
            country=address.country,
        )


class CustomerDetailsDTO(DTOBase):
    """客户信息DTO"""
    email: EmailStr = Field(..., description="邮箱地址")
    phone: str = Field("", max_length=32)
    full_name: str = Field("", max_length=100)

    def to_value(self) -> CustomerDetails:
        return CustomerDetails(email=str(self.email), phone=self.phone, full_name=self.full_name)


class PaginationParams(DTOBase):
    """分页参数（页码/每页大小），自动派生 skip/limit"""
    page: int = Field(1, ge=1, description="页码，从1开始")
    size: int = Field(
        default=settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=settings.MAX_PAGE_SIZE,
        description="每页大小",
    )

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.size

    @property
    def limit(self) -> int:
        return self.size


# ---------------------------------------------------------------------------
# 结算会话
# ---------------------------------------------------------------------------

class AddCheckoutItemDTO(DTOBase):
    """加购DTO（价格在加入时锁定）"""
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)
    price: int = Field(..., ge=0, description="单价（最小货币单位）")
    weight: float = Field(0.0, ge=0)
    variant_id: Optional[int] = Field(None, gt=0)
    product_name: str = ""
    variant_name: str = ""
    sku: str = ""


class UpdateCheckoutItemDTO(DTOBase):
    """修改数量DTO"""
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)
    variant_id: Optional[int] = Field(None, gt=0)


class CheckoutItemDTO(DTOBase):
    product_id: int
    variant_id: Optional[int]
    quantity: int
    price: int
    subtotal: int
    weight: float
    product_name: str
    variant_name: str
    sku: str

    @classmethod
    def from_entity(cls, item: CheckoutItem) -> "CheckoutItemDTO":
        return cls(
            product_id=item.product_id,
            variant_id=item.variant_id,
            quantity=item.quantity,
            price=item.price,
            subtotal=item.subtotal,
            weight=item.weight,
            product_name=item.product_name,
            variant_name=item.variant_name,
            sku=item.sku,
        )


class CheckoutResponseDTO(DTOBase):
    """结算会话响应DTO"""
    id: int
    user_id: Optional[int]
    session_id: Optional[str]
    status: str
    currency: str
    items: list[CheckoutItemDTO]
    shipping_address: AddressDTO
    billing_address: AddressDTO
    customer_email: str
    customer_phone: str
    customer_name: str
    shipping_method_id: Optional[int]
    shipping_rate_id: Optional[int]
    payment_provider: Optional[str]
    discount_code: Optional[str]
    total_amount: int
    shipping_cost: int
    discount_amount: int
    final_amount: int
    total_weight: float
    total_items: int
    created_at: datetime
    updated_at: datetime
    last_activity_at: datetime
    expires_at: datetime
    completed_at: Optional[datetime]
    converted_order_id: Optional[int]

    @classmethod
    def from_entity(cls, checkout: Checkout) -> "CheckoutResponseDTO":
        return cls(
            id=checkout.id,
            user_id=checkout.user_id,
            session_id=checkout.session_id,
            status=checkout.status.value,
            currency=checkout.currency,
            items=[CheckoutItemDTO.from_entity(i) for i in checkout.items],
            shipping_address=AddressDTO.from_value(checkout.shipping_address),
            billing_address=AddressDTO.from_value(checkout.billing_address),
            customer_email=checkout.customer_details.email,
            customer_phone=checkout.customer_details.phone,
            customer_name=checkout.customer_details.full_name,
            shipping_method_id=checkout.shipping_method_id,
            shipping_rate_id=checkout.shipping_rate_id,
            payment_provider=checkout.payment_provider,
            discount_code=checkout.applied_discount.code if checkout.applied_discount else None,
            total_amount=checkout.total_amount,
            shipping_cost=checkout.shipping_cost,
            discount_amount=checkout.discount_amount,
            final_amount=checkout.final_amount,
            total_weight=checkout.total_weight,
            total_items=checkout.total_items(),
            created_at=checkout.created_at,
            updated_at=checkout.updated_at,
            last_activity_at=checkout.last_activity_at,
            expires_at=checkout.expires_at,
            completed_at=checkout.completed_at,
            converted_order_id=checkout.converted_order_id,
        )


# ---------------------------------------------------------------------------
# 订单
# ---------------------------------------------------------------------------

class OrderItemDTO(DTOBase):
    product_id: int
    variant_id: Optional[int]
    quantity: int
    price: int
    subtotal: int
    weight: float
    product_name: str
    variant_name: str
    sku: str

    @classmethod
    def from_entity(cls, item: OrderItem) -> "OrderItemDTO":
        return cls(
            product_id=item.product_id,
            variant_id=item.variant_id,
            quantity=item.quantity,
            price=item.price,
            subtotal=item.subtotal,
            weight=item.weight,
            product_name=item.product_name,
            variant_name=item.variant_name,
            sku=item.sku,
        )


class OrderResponseDTO(DTOBase):
    """订单响应DTO"""
    id: int
    order_number: str
    user_id: Optional[int]
    is_guest: bool
    status: str
    currency: str
    items: list[OrderItemDTO]
    total_amount: int
    shipping_cost: int
    discount_amount: int
    final_amount: int
    total_weight: float
    shipping_address: AddressDTO
    billing_address: AddressDTO
    customer_email: str
    customer_name: str
    shipping_method_id: Optional[int]
    discount_code: Optional[str]
    payment_id: Optional[str]
    payment_provider: Optional[str]
    tracking_code: Optional[str]
    action_url: Optional[str]
    checkout_id: Optional[int]
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]

    @classmethod
    def from_entity(cls, order: Order) -> "OrderResponseDTO":
        return cls(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            is_guest=order.is_guest,
            status=order.status.value,
            currency=order.currency,
            items=[OrderItemDTO.from_entity(i) for i in order.items],
            total_amount=order.total_amount,
            shipping_cost=order.shipping_cost,
            discount_amount=order.discount_amount,
            final_amount=order.final_amount,
            total_weight=order.total_weight,
            shipping_address=AddressDTO.from_value(order.shipping_address),
            billing_address=AddressDTO.from_value(order.billing_address),
            customer_email=order.customer_details.email,
            customer_name=order.customer_details.full_name,
            shipping_method_id=order.shipping_method_id,
            discount_code=order.applied_discount.code if order.applied_discount else None,
            payment_id=order.payment_id,
            payment_provider=order.payment_provider,
            tracking_code=order.tracking_code,
            action_url=order.action_url,
            checkout_id=order.checkout_id,
            created_at=order.created_at,
            updated_at=order.updated_at,
            completed_at=order.completed_at,
        )


# ---------------------------------------------------------------------------
# 折扣
# ---------------------------------------------------------------------------

class DiscountCreateDTO(DTOBase):
    """折扣创建DTO（固定金额为最小货币单位，百分比为 0-100）"""
    code: str = Field(..., min_length=1, max_length=64)
    discount_type: DiscountType
    method: DiscountMethod
    value: Decimal = Field(..., gt=0)
    start_date: datetime
    end_date: datetime
    min_order_value: int = Field(0, ge=0)
    max_discount_value: int = Field(0, ge=0)
    product_ids: list[int] = Field(default_factory=list)
    category_ids: list[int] = Field(default_factory=list)
    usage_limit: int = Field(0, ge=0)
    active: bool = True

    @field_validator("code")
    def normalize_code(cls, v):
        return v.strip().upper()


class DiscountUpdateDTO(DTOBase):
    """折扣更新DTO（未提供的字段保持不变）"""
    value: Optional[Decimal] = Field(None, gt=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    min_order_value: Optional[int] = Field(None, ge=0)
    max_discount_value: Optional[int] = Field(None, ge=0)
    product_ids: Optional[list[int]] = None
    category_ids: Optional[list[int]] = None
    usage_limit: Optional[int] = Field(None, ge=0)
    active: Optional[bool] = None


class DiscountResponseDTO(DTOBase):
    """折扣响应DTO"""
    id: int
    code: str
    discount_type: str
    method: str
    value: Decimal
    start_date: datetime
    end_date: datetime
    min_order_value: int
    max_discount_value: int
    product_ids: list[int]
    category_ids: list[int]
    usage_limit: int
    current_usage: int
    active: bool

    @classmethod
    def from_entity(cls, discount: Discount) -> "DiscountResponseDTO":
        return cls(
            id=discount.id,
            code=discount.code,
            discount_type=discount.discount_type.value,
            method=discount.method.value,
            value=discount.value,
            start_date=discount.start_date,
            end_date=discount.end_date,
            min_order_value=discount.min_order_value,
            max_discount_value=discount.max_discount_value,
            product_ids=list(discount.product_ids),
            category_ids=list(discount.category_ids),
            usage_limit=discount.usage_limit,
            current_usage=discount.current_usage,
            active=discount.active,
        )


# ---------------------------------------------------------------------------
# 运费 / 支付流水
# ---------------------------------------------------------------------------

class ShippingOptionDTO(DTOBase):
    shipping_rate_id: int
    shipping_method_id: int
    name: str
    description: str
    estimated_delivery_days: int
    cost: int
    free_shipping: bool

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_value(cls, option: ShippingOption) -> "ShippingOptionDTO":
        return cls.model_validate(option)


class PaymentTransactionDTO(DTOBase):
    """支付流水DTO"""
    id: int
    order_id: int
    transaction_id: str
    transaction_type: str
    status: str
    amount: int
    currency: str
    provider: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, txn: PaymentTransaction) -> "PaymentTransactionDTO":
        return cls(
            id=txn.id,
            order_id=txn.order_id,
            transaction_id=txn.transaction_id,
            transaction_type=txn.transaction_type.value,
            status=txn.status.value,
            amount=txn.amount,
            currency=txn.currency,
            provider=txn.provider,
            metadata=dict(txn.metadata or {}),
            created_at=txn.created_at,
            updated_at=txn.updated_at,
        )
