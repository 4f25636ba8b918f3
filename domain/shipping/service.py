"""
运费领域服务 - 区域匹配、可用费率筛选与运费计算
"""
from typing import List

from .entity import ShippingOption, ShippingRate, ShippingZone
from .repository import (
    ShippingMethodRepository,
    ShippingRateRepository,
    ShippingZoneRepository,
)
from domain.common.exceptions import (
    ShippingNotAvailableException,
    ShippingRateNotFoundException,
)
from domain.common.value_objects import Address


class ShippingDomainService:
    """
    运费领域服务

    可用费率条件：区域匹配 且 区域启用 且 费率启用 且 配送方式启用
    且 订单金额不低于费率最低金额
    """

    def __init__(
        self,
        method_repository: ShippingMethodRepository,
        zone_repository: ShippingZoneRepository,
        rate_repository: ShippingRateRepository,
    ):
        self.method_repository = method_repository
        self.zone_repository = zone_repository
        self.rate_repository = rate_repository

    async def zones_matching(self, address: Address) -> List[ShippingZone]:
        zones = await self.zone_repository.list_active()
        return [zone for zone in zones if zone.matches(address)]

    async def available_rates(self, address: Address, order_value: int) -> List[ShippingRate]:
        zones = await self.zones_matching(address)
        if not zones:
            return []
        rates = await self.rate_repository.list_by_zone_ids([z.id for z in zones], active_only=True)
        methods = await self.method_repository.get_by_ids({r.shipping_method_id for r in rates})
        active_methods = {m.id for m in methods if m.active}
        return [
            rate
            for rate in rates
            if rate.shipping_method_id in active_methods and rate.accepts(order_value)
        ]

    async def shipping_options(self, address: Address, order_value: int, weight: float) -> List[ShippingOption]:
        """可选配送项，按运费升序（同价按预计送达天数）"""
        rates = await self.available_rates(address, order_value)
        if not rates:
            return []
        methods = {
            m.id: m
            for m in await self.method_repository.get_by_ids({r.shipping_method_id for r in rates})
        }
        options = []
        for rate in rates:
            method = methods[rate.shipping_method_id]
            cost = rate.calculate_cost(order_value, weight)
            options.append(
                ShippingOption(
                    shipping_rate_id=rate.id,
                    shipping_method_id=method.id,
                    name=method.name,
                    description=method.description,
                    estimated_delivery_days=method.estimated_delivery_days,
                    cost=cost,
                    free_shipping=cost == 0,
                )
            )
        options.sort(key=lambda o: (o.cost, o.estimated_delivery_days))
        return options

    async def quote(self, rate_id: int, address: Address, order_value: int) -> ShippingRate:
        """
        校验指定费率对当前地址与订单可用，返回费率实体

        调用方用 rate.calculate_cost 得到运费
        """
        rate = await self.rate_repository.get_by_id(rate_id)
        if rate is None:
            raise ShippingRateNotFoundException(rate_id)
        available = await self.available_rates(address, order_value)
        if rate.id not in {r.id for r in available}:
            raise ShippingNotAvailableException(
                rate_id, "shipping rate is not available for this address or order value"
            )
        return rate
