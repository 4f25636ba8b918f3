"""
结算会话仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.checkout.entity import Checkout, CheckoutItem, CheckoutStatus
from domain.checkout.repository import CheckoutRepository
from domain.common.exceptions import CheckoutNotFoundException
from infrastructure.models.checkout import CheckoutItemModel, CheckoutModel
from infrastructure.repositories.mappers import (
    OWNER_GUEST,
    OWNER_USER,
    address_from_json,
    address_to_json,
    applied_discount_from,
    checkout_owner_columns,
    checkout_owner_from,
    customer_from_json,
    customer_to_json,
)


logger = get_logger(__name__)


class SQLAlchemyCheckoutRepository(CheckoutRepository):
    """结算会话仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _item_to_entity(self, model: CheckoutItemModel) -> CheckoutItem:
        return CheckoutItem(
            id=model.id,
            product_id=model.product_id,
            variant_id=model.variant_id,
            quantity=model.quantity,
            price=model.price,
            weight=model.weight,
            product_name=model.product_name,
            variant_name=model.variant_name,
            sku=model.sku,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_entity(self, model: CheckoutModel) -> Checkout:
        """将数据库模型转换为领域实体"""
        return Checkout(
            id=model.id,
            owner=checkout_owner_from(model),
            items=[self._item_to_entity(i) for i in model.items],
            status=CheckoutStatus(model.status),
            currency=model.currency,
            shipping_address=address_from_json(model.shipping_address),
            billing_address=address_from_json(model.billing_address),
            customer_details=customer_from_json(model.customer_details),
            shipping_method_id=model.shipping_method_id,
            shipping_rate_id=model.shipping_rate_id,
            payment_provider=model.payment_provider,
            applied_discount=applied_discount_from(model.discount_id, model.discount_code, model.discount_amount),
            total_amount=model.total_amount,
            shipping_cost=model.shipping_cost,
            discount_amount=model.discount_amount,
            final_amount=model.final_amount,
            total_weight=model.total_weight,
            created_at=model.created_at,
            updated_at=model.updated_at,
            last_activity_at=model.last_activity_at,
            expires_at=model.expires_at,
            completed_at=model.completed_at,
            converted_order_id=model.converted_order_id,
        )

    def _fill_model(self, model: CheckoutModel, entity: Checkout) -> None:
        """把实体字段写入模型（商品行按 id 对齐，缺失的行由 delete-orphan 删除）"""
        for key, value in checkout_owner_columns(entity.owner).items():
            setattr(model, key, value)
        model.status = entity.status.value
        model.currency = entity.currency
        model.shipping_address = address_to_json(entity.shipping_address)
        model.billing_address = address_to_json(entity.billing_address)
        model.customer_details = customer_to_json(entity.customer_details)
        model.shipping_method_id = entity.shipping_method_id
        model.shipping_rate_id = entity.shipping_rate_id
        model.payment_provider = entity.payment_provider
        discount = entity.applied_discount
        model.discount_id = discount.discount_id if discount else None
        model.discount_code = discount.code if discount else None
        model.total_amount = entity.total_amount
        model.shipping_cost = entity.shipping_cost
        model.discount_amount = entity.discount_amount
        model.final_amount = entity.final_amount
        model.total_weight = entity.total_weight
        model.created_at = entity.created_at
        model.updated_at = entity.updated_at
        model.last_activity_at = entity.last_activity_at
        model.expires_at = entity.expires_at
        model.completed_at = entity.completed_at
        model.converted_order_id = entity.converted_order_id

        existing = {i.id: i for i in (model.items or []) if i.id is not None}
        rows = []
        for item in entity.items:
            row = existing.get(item.id) if item.id is not None else None
            if row is None:
                row = CheckoutItemModel()
            row.product_id = item.product_id
            row.variant_id = item.variant_id
            row.quantity = item.quantity
            row.price = item.price
            row.weight = item.weight
            row.product_name = item.product_name
            row.variant_name = item.variant_name
            row.sku = item.sku
            row.created_at = item.created_at
            row.updated_at = item.updated_at
            rows.append(row)
        model.items = rows

    async def _fetch(self, checkout_id: int, *, for_update: bool = False) -> Optional[CheckoutModel]:
        query = (
            select(CheckoutModel)
            .where(CheckoutModel.id == checkout_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def create(self, checkout: Checkout) -> Checkout:
        """创建结算会话"""
        db_checkout = CheckoutModel(items=[])
        self._fill_model(db_checkout, checkout)
        self.session.add(db_checkout)
        await self.session.flush()
        logger.info(
            "checkout_created",
            checkout_id=db_checkout.id,
            owner_type=db_checkout.owner_type,
        )
        return self._to_entity(await self._fetch(db_checkout.id))

    async def get_by_id(self, checkout_id: int, *, for_update: bool = False) -> Optional[Checkout]:
        db_checkout = await self._fetch(checkout_id, for_update=for_update)
        return self._to_entity(db_checkout) if db_checkout else None

    async def _get_active(self, *conditions, for_update: bool) -> Optional[Checkout]:
        query = (
            select(CheckoutModel)
            .where(CheckoutModel.status == CheckoutStatus.ACTIVE.value, *conditions)
            .order_by(CheckoutModel.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        db_checkout = result.scalars().first()
        return self._to_entity(db_checkout) if db_checkout else None

    async def get_active_by_user(self, user_id: int, *, for_update: bool = False) -> Optional[Checkout]:
        return await self._get_active(
            CheckoutModel.owner_type == OWNER_USER,
            CheckoutModel.user_id == user_id,
            for_update=for_update,
        )

    async def get_active_by_session(self, session_id: str, *, for_update: bool = False) -> Optional[Checkout]:
        return await self._get_active(
            CheckoutModel.owner_type == OWNER_GUEST,
            CheckoutModel.session_id == session_id,
            for_update=for_update,
        )

    async def update(self, checkout: Checkout) -> Checkout:
        """更新结算会话（含商品行）"""
        db_checkout = await self._fetch(checkout.id)
        if not db_checkout:
            raise CheckoutNotFoundException(checkout.id)
        self._fill_model(db_checkout, checkout)
        await self.session.flush()
        logger.debug("checkout_persisted", checkout_id=checkout.id, status=db_checkout.status)
        return self._to_entity(await self._fetch(checkout.id))

    async def delete(self, checkout_id: int) -> bool:
        await self.session.execute(delete(CheckoutItemModel).where(CheckoutItemModel.checkout_id == checkout_id))
        result = await self.session.execute(delete(CheckoutModel).where(CheckoutModel.id == checkout_id))
        await self.session.flush()
        deleted = result.rowcount > 0
        if deleted:
            logger.info("checkout_deleted", checkout_id=checkout_id)
        return deleted

    async def list_expired_active(self, now: datetime, limit: int = 100) -> List[Checkout]:
        """已过期但仍为 active 的会话；跳过被其他事务锁住的行"""
        result = await self.session.execute(
            select(CheckoutModel)
            .where(
                CheckoutModel.status == CheckoutStatus.ACTIVE.value,
                CheckoutModel.expires_at <= now,
            )
            .order_by(CheckoutModel.expires_at)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return [self._to_entity(m) for m in result.scalars().all()]
