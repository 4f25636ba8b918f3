"""
运费仓储接口
"""
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from .entity import ShippingMethod, ShippingRate, ShippingZone


class ShippingMethodRepository(ABC):
    """配送方式仓储"""

    @abstractmethod
    async def create(self, method: ShippingMethod) -> ShippingMethod:
        """创建配送方式"""
        pass

    @abstractmethod
    async def get_by_id(self, method_id: int) -> Optional[ShippingMethod]:
        """根据ID获取配送方式"""
        pass

    @abstractmethod
    async def get_by_ids(self, method_ids: Iterable[int]) -> List[ShippingMethod]:
        """批量获取配送方式"""
        pass

    @abstractmethod
    async def update(self, method: ShippingMethod) -> ShippingMethod:
        """更新配送方式"""
        pass


class ShippingZoneRepository(ABC):
    """配送区域仓储"""

    @abstractmethod
    async def create(self, zone: ShippingZone) -> ShippingZone:
        """创建配送区域"""
        pass

    @abstractmethod
    async def get_by_id(self, zone_id: int) -> Optional[ShippingZone]:
        """根据ID获取配送区域"""
        pass

    @abstractmethod
    async def list_active(self) -> List[ShippingZone]:
        """获取所有启用的配送区域"""
        pass

    @abstractmethod
    async def update(self, zone: ShippingZone) -> ShippingZone:
        """更新配送区域"""
        pass


class ShippingRateRepository(ABC):
    """运费费率仓储（含重量/金额阶梯）"""

    @abstractmethod
    async def create(self, rate: ShippingRate) -> ShippingRate:
        """创建费率及其阶梯"""
        pass

    @abstractmethod
    async def get_by_id(self, rate_id: int) -> Optional[ShippingRate]:
        """根据ID获取费率（包含阶梯，阶梯按创建顺序）"""
        pass

    @abstractmethod
    async def list_by_zone_ids(self, zone_ids: Iterable[int], active_only: bool = True) -> List[ShippingRate]:
        """获取若干区域下的费率"""
        pass

    @abstractmethod
    async def update(self, rate: ShippingRate) -> ShippingRate:
        """更新费率（阶梯整体替换）"""
        pass
