"""
折扣仓储接口 - 定义折扣数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import Discount


class DiscountRepository(ABC):
    """折扣仓储抽象接口"""

    @abstractmethod
    async def create(self, discount: Discount) -> Discount:
        """创建折扣"""
        pass

    @abstractmethod
    async def get_by_id(self, discount_id: int) -> Optional[Discount]:
        """根据ID获取折扣"""
        pass

    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[Discount]:
        """根据折扣码获取折扣（大小写不敏感）"""
        pass

    @abstractmethod
    async def update(self, discount: Discount) -> Discount:
        """更新折扣"""
        pass

    @abstractmethod
    async def delete(self, discount_id: int) -> bool:
        """删除折扣"""
        pass

    @abstractmethod
    async def list_valid(self, now: datetime, skip: int = 0, limit: int = 100) -> List[Discount]:
        """获取当前有效的折扣"""
        pass

    @abstractmethod
    async def try_increment_usage(self, discount_id: int) -> bool:
        """
        原子地累加使用次数

        单条条件更新：usage_limit = 0 OR current_usage < usage_limit；
        返回 False 表示已达上限（或折扣不存在），不做读-改-写
        """
        pass
