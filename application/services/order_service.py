"""
订单应用服务（application/services）- 查询（含订单号修复）、状态流转与通知
"""
from typing import Callable, Iterable, List, Optional

from application.dto import OrderResponseDTO, PaginationParams
from application.ports.catalog import CatalogPort
from application.ports.notification import (
    ORDER_CONFIRMATION,
    ORDER_SHIPPED,
    ORDER_STATUS_UPDATE,
    OrderNotifier,
)
from application.services.discount_service import resolve_category_products
from core.logging_config import get_logger
from domain.common.exceptions import OrderNotFoundException, PaymentAlreadyProcessedException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.discount.service import DiscountDomainService
from domain.order.entity import Order, OrderStatus
from domain.order.events import OrderNumberRepaired, OrderPlaced, OrderStatusChanged
from domain.order.service import OrderDomainService

logger = get_logger(__name__)


async def publish_order_events(notifier: Optional[OrderNotifier], events: Iterable) -> None:
    """
    把订单领域事件转换为通知

    通知失败只记录日志，不影响已提交的状态变更
    """
    for event in events:
        if isinstance(event, OrderNumberRepaired):
            logger.warning(
                "order_number_repaired",
                order_id=event.order_id,
                order_number=event.order_number,
                provisional_number=event.provisional_number,
            )
            continue
        if notifier is None:
            continue

        if isinstance(event, OrderPlaced):
            template = ORDER_CONFIRMATION
            data = {
                "order_id": event.order_id,
                "order_number": event.order_number,
                "email": event.email,
                "final_amount": event.final_amount,
                "currency": event.currency,
            }
        elif isinstance(event, OrderStatusChanged):
            template = ORDER_SHIPPED if event.new_status == OrderStatus.SHIPPED.value else ORDER_STATUS_UPDATE
            data = {
                "order_id": event.order_id,
                "order_number": event.order_number,
                "email": event.email,
                "previous_status": event.previous_status,
                "new_status": event.new_status,
            }
        else:
            continue

        if not data.get("email"):
            continue
        try:
            await notifier.notify(template, data)
        except Exception:
            logger.warning(
                "order_notification_failed",
                template=template,
                order_id=event.order_id,
                exc_info=True,
            )


class OrderApplicationService:
    """订单应用服务"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        notifier: Optional[OrderNotifier] = None,
        catalog: Optional[CatalogPort] = None,
    ):
        self._uow_factory = uow_factory
        self._notifier = notifier
        self._catalog = catalog

    async def _load(self, domain_service: OrderDomainService, order_id: int, *, for_update: bool) -> Order:
        """读取订单；发现遗留的临时订单号时就地修复"""
        order = await domain_service.get_order(order_id, for_update=for_update)
        await domain_service.repair_order_number(order)
        return order

    async def get_order(self, order_id: int) -> OrderResponseDTO:
        async with self._uow_factory() as uow:
            domain_service = OrderDomainService(uow.order_repository)
            order = await self._load(domain_service, order_id, for_update=False)
            events = domain_service.get_domain_events()
        await publish_order_events(self._notifier, events)
        return OrderResponseDTO.from_entity(order)

    async def get_by_order_number(self, order_number: str) -> OrderResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_order_number(order_number)
            if order is None:
                raise OrderNotFoundException(order_number)
            return OrderResponseDTO.from_entity(order)

    async def list_by_user(
        self,
        user_id: int,
        pagination: Optional[PaginationParams] = None,
        status: Optional[OrderStatus] = None,
    ) -> List[OrderResponseDTO]:
        """按创建时间倒序分页"""
        pagination = pagination or PaginationParams()
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.order_repository.list_by_user(user_id, pagination.skip, pagination.limit, status)
            return [OrderResponseDTO.from_entity(o) for o in orders]

    async def update_status(self, order_id: int, status: OrderStatus) -> OrderResponseDTO:
        """变更订单状态；同状态为幂等空操作，不会重复通知"""
        async with self._uow_factory() as uow:
            domain_service = OrderDomainService(uow.order_repository)
            order = await self._load(domain_service, order_id, for_update=True)
            changed = await domain_service.change_status(order, OrderStatus(status))
            events = domain_service.get_domain_events()
        if changed:
            logger.info("order_status_changed", order_id=order_id, status=order.status.value)
        await publish_order_events(self._notifier, events)
        return OrderResponseDTO.from_entity(order)

    async def ship(self, order_id: int, tracking_code: str) -> OrderResponseDTO:
        async with self._uow_factory() as uow:
            domain_service = OrderDomainService(uow.order_repository)
            order = await self._load(domain_service, order_id, for_update=True)
            order.set_tracking_code(tracking_code)
            if not await domain_service.change_status(order, OrderStatus.SHIPPED):
                await uow.order_repository.update(order)
            events = domain_service.get_domain_events()
        logger.info("order_shipped", order_id=order_id, tracking_code=order.tracking_code)
        await publish_order_events(self._notifier, events)
        return OrderResponseDTO.from_entity(order)

    async def apply_discount(self, order_id: int, code: str) -> OrderResponseDTO:
        """对未支付订单重新校验并应用折扣（基于订单本身计算）"""
        async with self._uow_factory() as uow:
            domain_service = OrderDomainService(uow.order_repository)
            order = await self._load(domain_service, order_id, for_update=True)
            if order.status != OrderStatus.PENDING:
                raise PaymentAlreadyProcessedException(order.id, order.status.value)
            discount = await DiscountDomainService(uow.discount_repository).get_by_code(code)
            category_products = await resolve_category_products(self._catalog, discount)
            applied = order.apply_discount(discount, category_product_ids=category_products)
            order = await uow.order_repository.update(order)
            logger.info(
                "order_discount_applied",
                order_id=order_id,
                code=applied.code,
                discount_amount=applied.amount,
                final_amount=order.final_amount,
            )
            return OrderResponseDTO.from_entity(order)

    async def remove_discount(self, order_id: int) -> OrderResponseDTO:
        async with self._uow_factory() as uow:
            domain_service = OrderDomainService(uow.order_repository)
            order = await self._load(domain_service, order_id, for_update=True)
            if order.status != OrderStatus.PENDING:
                raise PaymentAlreadyProcessedException(order.id, order.status.value)
            order.remove_discount()
            order = await uow.order_repository.update(order)
            logger.info("order_discount_removed", order_id=order_id)
            return OrderResponseDTO.from_entity(order)

    async def repair_order_numbers(self, limit: int = 100) -> int:
        """修复所有遗留临时订单号的订单，返回修复数量"""
        async with self._uow_factory() as uow:
            domain_service = OrderDomainService(uow.order_repository)
            repaired = 0
            for order in await uow.order_repository.list_with_provisional_number(limit):
                if await domain_service.repair_order_number(order):
                    repaired += 1
            events = domain_service.get_domain_events()
        await publish_order_events(self._notifier, events)
        if repaired:
            logger.info("order_numbers_repaired", count=repaired)
        return repaired
