"""
服务装配 - 把应用服务与 SQLAlchemy 工作单元、支付网关、通知适配器组装起来

周期任务与脚本通过这里获取应用服务
"""
from functools import lru_cache
from typing import Optional

from application.ports.catalog import CatalogPort
from application.ports.notification import OrderNotifier
from application.services.checkout_service import CheckoutApplicationService
from application.services.discount_service import DiscountApplicationService
from application.services.order_service import OrderApplicationService
from application.services.payment_service import PaymentApplicationService
from application.services.shipping_service import ShippingApplicationService
from infrastructure.adapters.order_notifier import CeleryOrderNotifier
from infrastructure.external.payments import MultiProviderPaymentGateway, build_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@lru_cache(maxsize=1)
def get_payment_gateway() -> MultiProviderPaymentGateway:
    """网关持有 HTTP 连接与令牌缓存，进程内复用"""
    return build_payment_gateway()


def get_order_notifier() -> OrderNotifier:
    return CeleryOrderNotifier()


def get_payment_service(notifier: Optional[OrderNotifier] = None) -> PaymentApplicationService:
    return PaymentApplicationService(
        uow_factory=SQLAlchemyUnitOfWork,
        gateway=get_payment_gateway(),
        notifier=notifier or get_order_notifier(),
    )


def get_checkout_service(catalog: Optional[CatalogPort] = None) -> CheckoutApplicationService:
    notifier = get_order_notifier()
    return CheckoutApplicationService(
        uow_factory=SQLAlchemyUnitOfWork,
        catalog=catalog,
        notifier=notifier,
        payment_service=get_payment_service(notifier),
    )


def get_order_service(catalog: Optional[CatalogPort] = None) -> OrderApplicationService:
    return OrderApplicationService(
        uow_factory=SQLAlchemyUnitOfWork,
        notifier=get_order_notifier(),
        catalog=catalog,
    )


def get_discount_service(catalog: Optional[CatalogPort] = None) -> DiscountApplicationService:
    return DiscountApplicationService(uow_factory=SQLAlchemyUnitOfWork, catalog=catalog)


def get_shipping_service() -> ShippingApplicationService:
    return ShippingApplicationService(uow_factory=SQLAlchemyUnitOfWork)
