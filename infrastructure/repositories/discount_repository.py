"""
折扣仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import DiscountCodeAlreadyExistsException, DiscountNotFoundException
from domain.discount.entity import Discount, DiscountMethod, DiscountType
from domain.discount.repository import DiscountRepository
from infrastructure.models.discount import DiscountModel


logger = get_logger(__name__)


class SQLAlchemyDiscountRepository(DiscountRepository):
    """折扣仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: DiscountModel) -> Discount:
        """将数据库模型转换为领域实体"""
        return Discount(
            id=model.id,
            code=model.code,
            discount_type=DiscountType(model.discount_type),
            method=DiscountMethod(model.method),
            value=Decimal(str(model.value)).normalize(),
            start_date=model.start_date,
            end_date=model.end_date,
            min_order_value=model.min_order_value,
            max_discount_value=model.max_discount_value,
            product_ids=list(model.product_ids or []),
            category_ids=list(model.category_ids or []),
            usage_limit=model.usage_limit,
            current_usage=model.current_usage,
            active=model.active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _fill_model(self, model: DiscountModel, entity: Discount) -> None:
        model.code = entity.code.upper()
        model.discount_type = entity.discount_type.value
        model.method = entity.method.value
        model.value = entity.value
        model.start_date = entity.start_date
        model.end_date = entity.end_date
        model.min_order_value = entity.min_order_value
        model.max_discount_value = entity.max_discount_value
        model.product_ids = list(entity.product_ids)
        model.category_ids = list(entity.category_ids)
        model.usage_limit = entity.usage_limit
        model.active = entity.active
        if entity.created_at is not None:
            model.created_at = entity.created_at
        if entity.updated_at is not None:
            model.updated_at = entity.updated_at

    async def create(self, discount: Discount) -> Discount:
        """创建折扣；折扣码大小写不敏感唯一"""
        db_discount = DiscountModel(current_usage=discount.current_usage)
        self._fill_model(db_discount, discount)
        try:
            self.session.add(db_discount)
            await self.session.flush()
        except IntegrityError:
            logger.warning("create_discount_conflict", code=discount.code)
            raise DiscountCodeAlreadyExistsException(discount.code)
        await self.session.refresh(db_discount)
        return self._to_entity(db_discount)

    async def get_by_id(self, discount_id: int) -> Optional[Discount]:
        result = await self.session.execute(
            select(DiscountModel)
            .where(DiscountModel.id == discount_id)
            .execution_options(populate_existing=True)
        )
        db_discount = result.scalar_one_or_none()
        return self._to_entity(db_discount) if db_discount else None

    async def get_by_code(self, code: str) -> Optional[Discount]:
        """按折扣码查找（存储为大写）"""
        result = await self.session.execute(
            select(DiscountModel)
            .where(DiscountModel.code == (code or "").strip().upper())
            .execution_options(populate_existing=True)
        )
        db_discount = result.scalar_one_or_none()
        return self._to_entity(db_discount) if db_discount else None

    async def update(self, discount: Discount) -> Discount:
        """更新折扣定义；current_usage 只由 try_increment_usage 修改"""
        result = await self.session.execute(select(DiscountModel).where(DiscountModel.id == discount.id))
        db_discount = result.scalar_one_or_none()
        if not db_discount:
            raise DiscountNotFoundException(discount.id)
        self._fill_model(db_discount, discount)
        try:
            await self.session.flush()
        except IntegrityError:
            logger.warning("update_discount_conflict", code=discount.code)
            raise DiscountCodeAlreadyExistsException(discount.code)
        await self.session.refresh(db_discount)
        return self._to_entity(db_discount)

    async def delete(self, discount_id: int) -> bool:
        result = await self.session.execute(delete(DiscountModel).where(DiscountModel.id == discount_id))
        await self.session.flush()
        return result.rowcount > 0

    async def list_valid(self, now: datetime, skip: int = 0, limit: int = 100) -> List[Discount]:
        """启用、在有效期内且未达使用上限的折扣"""
        result = await self.session.execute(
            select(DiscountModel)
            .where(
                DiscountModel.active.is_(True),
                DiscountModel.start_date <= now,
                DiscountModel.end_date >= now,
                or_(
                    DiscountModel.usage_limit == 0,
                    DiscountModel.current_usage < DiscountModel.usage_limit,
                ),
            )
            .order_by(DiscountModel.id)
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(d) for d in result.scalars().all()]

    async def try_increment_usage(self, discount_id: int) -> bool:
        """条件更新：仍有余量时使用次数 +1，返回是否成功"""
        result = await self.session.execute(
            update(DiscountModel)
            .where(
                DiscountModel.id == discount_id,
                or_(
                    DiscountModel.usage_limit == 0,
                    DiscountModel.current_usage < DiscountModel.usage_limit,
                ),
            )
            .values(current_usage=DiscountModel.current_usage + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
