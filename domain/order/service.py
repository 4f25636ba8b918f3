"""
订单领域服务 - 下单落库、订单号定稿与状态流转
"""
from typing import List

from .entity import Order, OrderStatus
from .events import OrderNumberRepaired, OrderPlaced, OrderStatusChanged
from .repository import OrderRepository
from domain.common.exceptions import OrderNotFoundException, OrderNumberInconsistencyException


class OrderDomainService:
    """
    订单领域服务

    职责：
    1. 创建订单并在同一工作单元内把临时订单号替换为正式订单号
    2. 检测并修复遗留的临时订单号（不一致状态）
    3. 状态流转并产生领域事件
    """

    def __init__(self, order_repository: OrderRepository):
        self.order_repository = order_repository
        self.events: List = []  # 领域事件收集

    async def place_order(self, order: Order) -> Order:
        created = await self.order_repository.create(order)
        created.assign_order_number(created.id)
        created = await self.order_repository.update(created)
        self.events.append(
            OrderPlaced(
                order_id=created.id,
                order_number=created.order_number,
                user_id=created.user_id,
                email=created.customer_details.email or None,
                final_amount=created.final_amount,
                currency=created.currency,
            )
        )
        return created

    async def get_order(self, order_id: int, *, for_update: bool = False) -> Order:
        order = await self.order_repository.get_by_id(order_id, for_update=for_update)
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    @staticmethod
    def check_consistency(order: Order) -> None:
        """已持久化的订单仍为临时订单号时抛出不一致异常"""
        if order.id is not None and order.is_number_provisional():
            raise OrderNumberInconsistencyException(order.id, order.order_number)

    async def repair_order_number(self, order: Order) -> bool:
        """重新执行订单号定稿；返回是否做了修复"""
        try:
            self.check_consistency(order)
            return False
        except OrderNumberInconsistencyException:
            provisional = order.order_number
            order.assign_order_number(order.id)
            await self.order_repository.update(order)
            self.events.append(
                OrderNumberRepaired(
                    order_id=order.id,
                    order_number=order.order_number,
                    provisional_number=provisional,
                )
            )
            return True

    async def change_status(self, order: Order, target: OrderStatus) -> bool:
        previous = order.status
        changed = order.update_status(target)
        if not changed:
            return False
        await self.order_repository.update(order)
        self.events.append(
            OrderStatusChanged(
                order_id=order.id,
                order_number=order.order_number,
                previous_status=previous.value,
                new_status=order.status.value,
                email=order.customer_details.email or None,
            )
        )
        return True

    def get_domain_events(self) -> List:
        events = self.events.copy()
        self.events.clear()
        return events
