"""
结算会话仓储接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import Checkout


class CheckoutRepository(ABC):
    """
    结算会话仓储抽象接口

    for_update=True 时实现方必须加行锁，保证同一会话的并发修改串行化
    """

    @abstractmethod
    async def create(self, checkout: Checkout) -> Checkout:
        """创建结算会话（含商品行）"""
        pass

    @abstractmethod
    async def get_by_id(self, checkout_id: int, *, for_update: bool = False) -> Optional[Checkout]:
        """根据ID获取结算会话"""
        pass

    @abstractmethod
    async def get_active_by_user(self, user_id: int, *, for_update: bool = False) -> Optional[Checkout]:
        """获取用户当前进行中的结算会话"""
        pass

    @abstractmethod
    async def get_active_by_session(self, session_id: str, *, for_update: bool = False) -> Optional[Checkout]:
        """获取访客会话当前进行中的结算会话"""
        pass

    @abstractmethod
    async def update(self, checkout: Checkout) -> Checkout:
        """更新结算会话（商品行整体同步）"""
        pass

    @abstractmethod
    async def delete(self, checkout_id: int) -> bool:
        """删除结算会话"""
        pass

    @abstractmethod
    async def list_expired_active(self, now: datetime, limit: int = 100) -> List[Checkout]:
        """获取已过期但仍为 active 的会话（加锁并跳过已被锁定的行）"""
        pass
