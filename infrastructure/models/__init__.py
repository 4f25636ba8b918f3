"""Infrastructure models package exports."""
from .base import Base, metadata
from .checkout import CheckoutItemModel, CheckoutModel
from .discount import DiscountModel
from .order import OrderItemModel, OrderModel
from .payment import PaymentTransactionModel
from .shipping import (
    ShippingMethodModel,
    ShippingRateModel,
    ShippingZoneModel,
    ValueBasedRateModel,
    WeightBasedRateModel,
)

__all__ = [
    "Base",
    "metadata",
    "CheckoutModel",
    "CheckoutItemModel",
    "DiscountModel",
    "OrderModel",
    "OrderItemModel",
    "PaymentTransactionModel",
    "ShippingMethodModel",
    "ShippingZoneModel",
    "ShippingRateModel",
    "WeightBasedRateModel",
    "ValueBasedRateModel",
]
