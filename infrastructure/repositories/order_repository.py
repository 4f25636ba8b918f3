"""
订单仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import OrderNotFoundException
from domain.order.entity import PROVISIONAL_SUFFIX, Order, OrderItem, OrderStatus
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderItemModel, OrderModel
from infrastructure.repositories.mappers import (
    OWNER_USER,
    address_from_json,
    address_to_json,
    applied_discount_from,
    customer_from_json,
    customer_to_json,
    order_owner_columns,
    order_owner_from,
)


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            owner=order_owner_from(model),
            items=[
                OrderItem(
                    id=i.id,
                    product_id=i.product_id,
                    variant_id=i.variant_id,
                    quantity=i.quantity,
                    price=i.price,
                    subtotal=i.subtotal,
                    weight=i.weight,
                    product_name=i.product_name,
                    variant_name=i.variant_name,
                    sku=i.sku,
                )
                for i in model.items
            ],
            currency=model.currency,
            status=OrderStatus(model.status),
            order_number=model.order_number,
            total_amount=model.total_amount,
            shipping_cost=model.shipping_cost,
            discount_amount=model.discount_amount,
            final_amount=model.final_amount,
            total_weight=model.total_weight,
            shipping_address=address_from_json(model.shipping_address),
            billing_address=address_from_json(model.billing_address),
            customer_details=customer_from_json(model.customer_details),
            shipping_method_id=model.shipping_method_id,
            applied_discount=applied_discount_from(model.discount_id, model.discount_code, model.discount_amount),
            checkout_id=model.checkout_id,
            payment_id=model.payment_id,
            payment_provider=model.payment_provider,
            tracking_code=model.tracking_code,
            action_url=model.action_url,
            created_at=model.created_at,
            updated_at=model.updated_at,
            completed_at=model.completed_at,
        )

    def _fill_model(self, model: OrderModel, entity: Order) -> None:
        for key, value in order_owner_columns(entity.owner).items():
            setattr(model, key, value)
        model.order_number = entity.order_number
        model.status = entity.status.value
        model.currency = entity.currency
        model.total_amount = entity.total_amount
        model.shipping_cost = entity.shipping_cost
        model.discount_amount = entity.discount_amount
        model.final_amount = entity.final_amount
        model.total_weight = entity.total_weight
        model.shipping_address = address_to_json(entity.shipping_address)
        model.billing_address = address_to_json(entity.billing_address)
        model.customer_details = customer_to_json(entity.customer_details)
        model.shipping_method_id = entity.shipping_method_id
        discount = entity.applied_discount
        model.discount_id = discount.discount_id if discount else None
        model.discount_code = discount.code if discount else None
        model.checkout_id = entity.checkout_id
        model.payment_id = entity.payment_id
        model.payment_provider = entity.payment_provider
        model.tracking_code = entity.tracking_code
        model.action_url = entity.action_url
        model.created_at = entity.created_at
        model.updated_at = entity.updated_at
        model.completed_at = entity.completed_at

    async def _fetch(self, order_id: int, *, for_update: bool = False) -> Optional[OrderModel]:
        query = (
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def _first(self, *conditions) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel).where(*conditions).order_by(OrderModel.id.desc()).limit(1)
        )
        db_order = result.scalars().first()
        return self._to_entity(db_order) if db_order else None

    async def create(self, order: Order) -> Order:
        """创建订单；商品行只在创建时写入，之后不可变"""
        db_order = OrderModel(
            items=[
                OrderItemModel(
                    product_id=i.product_id,
                    variant_id=i.variant_id,
                    quantity=i.quantity,
                    price=i.price,
                    subtotal=i.subtotal,
                    weight=i.weight,
                    product_name=i.product_name,
                    variant_name=i.variant_name,
                    sku=i.sku,
                )
                for i in order.items
            ]
        )
        self._fill_model(db_order, order)
        self.session.add(db_order)
        await self.session.flush()
        logger.info(
            "order_created",
            order_id=db_order.id,
            owner_type=db_order.owner_type,
            final_amount=db_order.final_amount,
        )
        return self._to_entity(await self._fetch(db_order.id))

    async def get_by_id(self, order_id: int, *, for_update: bool = False) -> Optional[Order]:
        db_order = await self._fetch(order_id, for_update=for_update)
        return self._to_entity(db_order) if db_order else None

    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        return await self._first(OrderModel.order_number == order_number)

    async def list_by_user(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 100,
        status: Optional[OrderStatus] = None,
    ) -> List[Order]:
        """获取用户的订单列表（新订单在前）"""
        query = select(OrderModel).where(
            OrderModel.owner_type == OWNER_USER,
            OrderModel.user_id == user_id,
        )
        if status:
            query = query.where(OrderModel.status == OrderStatus(status).value)
        query = query.order_by(OrderModel.created_at.desc(), OrderModel.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(o) for o in result.scalars().all()]

    async def list_with_provisional_number(self, limit: int = 100) -> List[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.order_number.like(f"%-{PROVISIONAL_SUFFIX}"))
            .order_by(OrderModel.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return [self._to_entity(o) for o in result.scalars().all()]

    async def update(self, order: Order) -> Order:
        """更新订单（商品行不变）"""
        db_order = await self._fetch(order.id)
        if not db_order:
            raise OrderNotFoundException(order.id)
        self._fill_model(db_order, order)
        await self.session.flush()
        logger.debug("order_persisted", order_id=order.id, status=db_order.status)
        return self._to_entity(db_order)
