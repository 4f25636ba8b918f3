"""
订单仓储接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Order, OrderStatus


class OrderRepository(ABC):
    """订单仓储抽象接口"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单（返回带持久化ID的实体）"""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: int, *, for_update: bool = False) -> Optional[Order]:
        """根据ID获取订单；for_update=True 时加行锁"""
        pass

    @abstractmethod
    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        """根据订单号获取订单"""
        pass

    @abstractmethod
    async def list_by_user(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 100,
        status: Optional[OrderStatus] = None,
    ) -> List[Order]:
        """获取用户订单列表（按创建时间倒序）"""
        pass

    @abstractmethod
    async def list_with_provisional_number(self, limit: int = 100) -> List[Order]:
        """获取仍为临时订单号的订单（用于修复）"""
        pass

    @abstractmethod
    async def update(self, order: Order) -> Order:
        """更新订单（订单行不会被修改）"""
        pass
