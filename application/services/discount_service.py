"""
折扣应用服务（application/services）- 折扣码管理与核销
"""
from datetime import datetime, timezone
from typing import Callable, List, Optional

from application.dto import DiscountCreateDTO, DiscountResponseDTO, DiscountUpdateDTO, PaginationParams
from application.ports.catalog import CatalogPort
from core.logging_config import get_logger
from domain.common.exceptions import DiscountNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.discount.entity import Discount
from domain.discount.service import DiscountDomainService

logger = get_logger(__name__)


async def resolve_category_products(
    catalog: Optional[CatalogPort],
    discount: Discount,
) -> Optional[set[int]]:
    """
    把分类限制展开为商品ID集合

    没有分类限制或未配置目录时返回 None（折扣引擎保留“可能适用”的判断）
    """
    if not discount.category_ids or catalog is None:
        return None
    return set(await catalog.product_ids_in_categories(discount.category_ids))


class DiscountApplicationService:
    """折扣应用服务"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        catalog: Optional[CatalogPort] = None,
    ):
        self._uow_factory = uow_factory
        self._catalog = catalog

    async def create_discount(self, data: DiscountCreateDTO) -> DiscountResponseDTO:
        async with self._uow_factory() as uow:
            domain_service = DiscountDomainService(uow.discount_repository)
            now = datetime.now(timezone.utc)
            discount = await domain_service.create_discount(
                Discount(
                    id=None,
                    code=data.code,
                    discount_type=data.discount_type,
                    method=data.method,
                    value=data.value,
                    start_date=data.start_date,
                    end_date=data.end_date,
                    min_order_value=data.min_order_value,
                    max_discount_value=data.max_discount_value,
                    product_ids=data.product_ids,
                    category_ids=data.category_ids,
                    usage_limit=data.usage_limit,
                    active=data.active,
                    created_at=now,
                    updated_at=now,
                )
            )
            logger.info("discount_created", discount_id=discount.id, code=discount.code)
            return DiscountResponseDTO.from_entity(discount)

    async def update_discount(self, discount_id: int, data: DiscountUpdateDTO) -> DiscountResponseDTO:
        async with self._uow_factory() as uow:
            discount = await uow.discount_repository.get_by_id(discount_id)
            if discount is None:
                raise DiscountNotFoundException(discount_id)
            changes = data.model_dump(exclude_none=True)
            if changes:
                discount.revise(**changes)
                discount = await uow.discount_repository.update(discount)
                logger.info("discount_updated", discount_id=discount_id, fields=sorted(changes))
            return DiscountResponseDTO.from_entity(discount)

    async def deactivate_discount(self, discount_id: int) -> DiscountResponseDTO:
        async with self._uow_factory() as uow:
            discount = await uow.discount_repository.get_by_id(discount_id)
            if discount is None:
                raise DiscountNotFoundException(discount_id)
            discount.deactivate()
            discount = await uow.discount_repository.update(discount)
            logger.info("discount_deactivated", discount_id=discount_id, code=discount.code)
            return DiscountResponseDTO.from_entity(discount)

    async def get_by_code(self, code: str) -> DiscountResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            discount = await DiscountDomainService(uow.discount_repository).get_by_code(code)
            return DiscountResponseDTO.from_entity(discount)

    async def list_valid(
        self,
        pagination: Optional[PaginationParams] = None,
        now: Optional[datetime] = None,
    ) -> List[DiscountResponseDTO]:
        pagination = pagination or PaginationParams()
        now = now or datetime.now(timezone.utc)
        async with self._uow_factory(readonly=True) as uow:
            discounts = await uow.discount_repository.list_valid(now, pagination.skip, pagination.limit)
            return [DiscountResponseDTO.from_entity(d) for d in discounts]

    async def redeem(self, discount_id: int) -> None:
        """单独核销（订单完成流程内部直接使用领域服务，共享同一事务）"""
        async with self._uow_factory() as uow:
            await DiscountDomainService(uow.discount_repository).redeem(discount_id)
            logger.info("discount_redeemed", discount_id=discount_id)
