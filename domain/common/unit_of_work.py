"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.checkout.repository import CheckoutRepository
from domain.discount.repository import DiscountRepository
from domain.order.repository import OrderRepository
from domain.payment.repository import PaymentTransactionRepository
from domain.shipping.repository import (
    ShippingMethodRepository,
    ShippingRateRepository,
    ShippingZoneRepository,
)


class AbstractUnitOfWork(ABC):
    """应用层事务边界控制抽象

    行锁（for_update）只在同一工作单元内有效，支付防护与状态变更必须共用一个工作单元
    """

    checkout_repository: CheckoutRepository
    order_repository: OrderRepository
    discount_repository: DiscountRepository
    shipping_method_repository: ShippingMethodRepository
    shipping_zone_repository: ShippingZoneRepository
    shipping_rate_repository: ShippingRateRepository
    payment_transaction_repository: PaymentTransactionRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.checkout_repository = None  # type: ignore[assignment]
        self.order_repository = None  # type: ignore[assignment]
        self.discount_repository = None  # type: ignore[assignment]
        self.shipping_method_repository = None  # type: ignore[assignment]
        self.shipping_zone_repository = None  # type: ignore[assignment]
        self.shipping_rate_repository = None  # type: ignore[assignment]
        self.payment_transaction_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # 只在非只读且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
        ...
