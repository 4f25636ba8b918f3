"""
折扣领域服务 - 折扣码解析、唯一性校验与核销
"""
from .entity import Discount
from .repository import DiscountRepository
from domain.common.exceptions import (
    DiscountCodeAlreadyExistsException,
    DiscountNotFoundException,
    DiscountUsageLimitReachedException,
)


class DiscountDomainService:
    """
    折扣领域服务

    职责：
    1. 折扣码唯一性校验
    2. 折扣码解析（不存在时抛出明确异常）
    3. 订单完成时原子核销使用次数
    """

    def __init__(self, discount_repository: DiscountRepository):
        self.discount_repository = discount_repository

    async def create_discount(self, discount: Discount) -> Discount:
        existing = await self.discount_repository.get_by_code(discount.code)
        if existing is not None:
            raise DiscountCodeAlreadyExistsException(discount.code)
        return await self.discount_repository.create(discount)

    async def get_by_code(self, code: str) -> Discount:
        discount = await self.discount_repository.get_by_code((code or "").strip())
        if discount is None:
            raise DiscountNotFoundException(code)
        return discount

    async def redeem(self, discount_id: int, code: str = "") -> None:
        """订单完成时核销一次；达到上限时抛出异常"""
        if not await self.discount_repository.try_increment_usage(discount_id):
            raise DiscountUsageLimitReachedException(code or str(discount_id))
