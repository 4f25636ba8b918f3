"""
运费应用服务（application/services）- 配送方式/区域/费率维护与运费报价
"""
from typing import Callable, List, Optional

from application.dto import AddressDTO, ShippingOptionDTO
from core.logging_config import get_logger
from domain.common.exceptions import NotFoundException, ShippingRateNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.shipping.entity import (
    ShippingMethod,
    ShippingRate,
    ShippingZone,
    ValueBasedRate,
    WeightBasedRate,
)
from domain.shipping.service import ShippingDomainService

logger = get_logger(__name__)


def _domain_service(uow: AbstractUnitOfWork) -> ShippingDomainService:
    return ShippingDomainService(
        uow.shipping_method_repository,
        uow.shipping_zone_repository,
        uow.shipping_rate_repository,
    )


class ShippingApplicationService:
    """运费应用服务"""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    # ------------------------------------------------------------------
    # 报价
    # ------------------------------------------------------------------

    async def calculate_options(
        self,
        address: AddressDTO,
        order_value: int,
        weight: float,
    ) -> List[ShippingOptionDTO]:
        """可选配送项，按运费升序"""
        async with self._uow_factory(readonly=True) as uow:
            options = await _domain_service(uow).shipping_options(address.to_value(), order_value, weight)
            logger.debug(
                "shipping_options_calculated",
                country=address.country,
                order_value=order_value,
                count=len(options),
            )
            return [ShippingOptionDTO.from_value(o) for o in options]

    async def get_rate_cost(
        self,
        rate_id: int,
        address: AddressDTO,
        order_value: int,
        weight: float,
    ) -> int:
        async with self._uow_factory(readonly=True) as uow:
            rate = await _domain_service(uow).quote(rate_id, address.to_value(), order_value)
            return rate.calculate_cost(order_value, weight)

    # ------------------------------------------------------------------
    # 维护
    # ------------------------------------------------------------------

    async def create_method(
        self,
        name: str,
        description: str = "",
        estimated_delivery_days: int = 0,
    ) -> ShippingMethod:
        async with self._uow_factory() as uow:
            method = await uow.shipping_method_repository.create(
                ShippingMethod(
                    id=None,
                    name=name,
                    description=description,
                    estimated_delivery_days=estimated_delivery_days,
                )
            )
            logger.info("shipping_method_created", method_id=method.id, name=method.name)
            return method

    async def set_method_active(self, method_id: int, active: bool) -> ShippingMethod:
        async with self._uow_factory() as uow:
            method = await uow.shipping_method_repository.get_by_id(method_id)
            if method is None:
                raise NotFoundException("Shipping method", method_id)
            if active:
                method.activate()
            else:
                method.deactivate()
            return await uow.shipping_method_repository.update(method)

    async def create_zone(
        self,
        name: str,
        *,
        description: str = "",
        countries: Optional[list[str]] = None,
        states: Optional[list[str]] = None,
        zip_codes: Optional[list[str]] = None,
    ) -> ShippingZone:
        async with self._uow_factory() as uow:
            zone = await uow.shipping_zone_repository.create(
                ShippingZone(
                    id=None,
                    name=name,
                    description=description,
                    countries=countries or [],
                    states=states or [],
                    zip_codes=zip_codes or [],
                )
            )
            logger.info("shipping_zone_created", zone_id=zone.id, name=zone.name)
            return zone

    async def create_rate(
        self,
        shipping_method_id: int,
        shipping_zone_id: int,
        base_rate: int,
        *,
        min_order_value: int = 0,
        free_shipping_threshold: Optional[int] = None,
        weight_tiers: Optional[list[tuple[float, float, int]]] = None,
        value_tiers: Optional[list[tuple[int, int, int]]] = None,
    ) -> ShippingRate:
        """创建费率；阶梯按给定顺序保存，命中时取第一个"""
        async with self._uow_factory() as uow:
            if await uow.shipping_method_repository.get_by_id(shipping_method_id) is None:
                raise NotFoundException("Shipping method", shipping_method_id)
            if await uow.shipping_zone_repository.get_by_id(shipping_zone_id) is None:
                raise NotFoundException("Shipping zone", shipping_zone_id)
            rate = ShippingRate(
                id=None,
                shipping_method_id=shipping_method_id,
                shipping_zone_id=shipping_zone_id,
                base_rate=base_rate,
                min_order_value=min_order_value,
                free_shipping_threshold=free_shipping_threshold,
                weight_based_rates=[WeightBasedRate(lo, hi, r) for lo, hi, r in (weight_tiers or [])],
                value_based_rates=[ValueBasedRate(lo, hi, r) for lo, hi, r in (value_tiers or [])],
            )
            rate = await uow.shipping_rate_repository.create(rate)
            logger.info(
                "shipping_rate_created",
                rate_id=rate.id,
                method_id=shipping_method_id,
                zone_id=shipping_zone_id,
            )
            return rate

    async def update_rate(
        self,
        rate_id: int,
        *,
        base_rate: Optional[int] = None,
        min_order_value: Optional[int] = None,
        free_shipping_threshold: Optional[int] = None,
        clear_free_shipping: bool = False,
    ) -> ShippingRate:
        async with self._uow_factory() as uow:
            rate = await uow.shipping_rate_repository.get_by_id(rate_id)
            if rate is None:
                raise ShippingRateNotFoundException(rate_id)
            rate.update(
                rate.base_rate if base_rate is None else base_rate,
                rate.min_order_value if min_order_value is None else min_order_value,
            )
            if clear_free_shipping:
                rate.set_free_shipping_threshold(None)
            elif free_shipping_threshold is not None:
                rate.set_free_shipping_threshold(free_shipping_threshold)
            return await uow.shipping_rate_repository.update(rate)

    async def add_weight_tier(self, rate_id: int, min_weight: float, max_weight: float, rate_amount: int) -> ShippingRate:
        async with self._uow_factory() as uow:
            rate = await uow.shipping_rate_repository.get_by_id(rate_id)
            if rate is None:
                raise ShippingRateNotFoundException(rate_id)
            rate.add_weight_tier(WeightBasedRate(min_weight, max_weight, rate_amount))
            return await uow.shipping_rate_repository.update(rate)

    async def add_value_tier(self, rate_id: int, min_value: int, max_value: int, rate_amount: int) -> ShippingRate:
        async with self._uow_factory() as uow:
            rate = await uow.shipping_rate_repository.get_by_id(rate_id)
            if rate is None:
                raise ShippingRateNotFoundException(rate_id)
            rate.add_value_tier(ValueBasedRate(min_value, max_value, rate_amount))
            return await uow.shipping_rate_repository.update(rate)
