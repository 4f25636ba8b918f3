"""
运费仓储实现 - 配送方式 / 配送区域 / 运费费率
"""
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import NotFoundException, ShippingRateNotFoundException
from domain.shipping.entity import (
    ShippingMethod,
    ShippingRate,
    ShippingZone,
    ValueBasedRate,
    WeightBasedRate,
)
from domain.shipping.repository import (
    ShippingMethodRepository,
    ShippingRateRepository,
    ShippingZoneRepository,
)
from infrastructure.models.shipping import (
    ShippingMethodModel,
    ShippingRateModel,
    ShippingZoneModel,
    ValueBasedRateModel,
    WeightBasedRateModel,
)


class SQLAlchemyShippingMethodRepository(ShippingMethodRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ShippingMethodModel) -> ShippingMethod:
        return ShippingMethod(
            id=model.id,
            name=model.name,
            description=model.description,
            estimated_delivery_days=model.estimated_delivery_days,
            active=model.active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _fill_model(self, model: ShippingMethodModel, entity: ShippingMethod) -> None:
        model.name = entity.name
        model.description = entity.description
        model.estimated_delivery_days = entity.estimated_delivery_days
        model.active = entity.active
        if entity.updated_at is not None:
            model.updated_at = entity.updated_at

    async def create(self, method: ShippingMethod) -> ShippingMethod:
        db_method = ShippingMethodModel()
        self._fill_model(db_method, method)
        self.session.add(db_method)
        await self.session.flush()
        await self.session.refresh(db_method)
        return self._to_entity(db_method)

    async def get_by_id(self, method_id: int) -> Optional[ShippingMethod]:
        db_method = await self.session.get(ShippingMethodModel, method_id)
        return self._to_entity(db_method) if db_method else None

    async def get_by_ids(self, method_ids: Iterable[int]) -> List[ShippingMethod]:
        ids = list(method_ids)
        if not ids:
            return []
        result = await self.session.execute(select(ShippingMethodModel).where(ShippingMethodModel.id.in_(ids)))
        return [self._to_entity(m) for m in result.scalars().all()]

    async def update(self, method: ShippingMethod) -> ShippingMethod:
        db_method = await self.session.get(ShippingMethodModel, method.id)
        if not db_method:
            raise NotFoundException("Shipping method", method.id)
        self._fill_model(db_method, method)
        await self.session.flush()
        await self.session.refresh(db_method)
        return self._to_entity(db_method)


class SQLAlchemyShippingZoneRepository(ShippingZoneRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ShippingZoneModel) -> ShippingZone:
        return ShippingZone(
            id=model.id,
            name=model.name,
            description=model.description,
            countries=list(model.countries or []),
            states=list(model.states or []),
            zip_codes=list(model.zip_codes or []),
            active=model.active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _fill_model(self, model: ShippingZoneModel, entity: ShippingZone) -> None:
        model.name = entity.name
        model.description = entity.description
        model.countries = list(entity.countries)
        model.states = list(entity.states)
        model.zip_codes = list(entity.zip_codes)
        model.active = entity.active
        if entity.updated_at is not None:
            model.updated_at = entity.updated_at

    async def create(self, zone: ShippingZone) -> ShippingZone:
        db_zone = ShippingZoneModel()
        self._fill_model(db_zone, zone)
        self.session.add(db_zone)
        await self.session.flush()
        await self.session.refresh(db_zone)
        return self._to_entity(db_zone)

    async def get_by_id(self, zone_id: int) -> Optional[ShippingZone]:
        db_zone = await self.session.get(ShippingZoneModel, zone_id)
        return self._to_entity(db_zone) if db_zone else None

    async def list_active(self) -> List[ShippingZone]:
        result = await self.session.execute(
            select(ShippingZoneModel).where(ShippingZoneModel.active.is_(True)).order_by(ShippingZoneModel.id)
        )
        return [self._to_entity(z) for z in result.scalars().all()]

    async def update(self, zone: ShippingZone) -> ShippingZone:
        db_zone = await self.session.get(ShippingZoneModel, zone.id)
        if not db_zone:
            raise NotFoundException("Shipping zone", zone.id)
        self._fill_model(db_zone, zone)
        await self.session.flush()
        await self.session.refresh(db_zone)
        return self._to_entity(db_zone)


class SQLAlchemyShippingRateRepository(ShippingRateRepository):
    """运费费率仓储；阶梯随费率整体读写"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ShippingRateModel) -> ShippingRate:
        return ShippingRate(
            id=model.id,
            shipping_method_id=model.shipping_method_id,
            shipping_zone_id=model.shipping_zone_id,
            base_rate=model.base_rate,
            min_order_value=model.min_order_value,
            free_shipping_threshold=model.free_shipping_threshold,
            weight_based_rates=[
                WeightBasedRate(t.min_weight, t.max_weight, t.rate, id=t.id) for t in model.weight_tiers
            ],
            value_based_rates=[
                ValueBasedRate(t.min_order_value, t.max_order_value, t.rate, id=t.id) for t in model.value_tiers
            ],
            active=model.active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _fill_model(self, model: ShippingRateModel, entity: ShippingRate) -> None:
        model.shipping_method_id = entity.shipping_method_id
        model.shipping_zone_id = entity.shipping_zone_id
        model.base_rate = entity.base_rate
        model.min_order_value = entity.min_order_value
        model.free_shipping_threshold = entity.free_shipping_threshold
        model.active = entity.active
        if entity.updated_at is not None:
            model.updated_at = entity.updated_at

        weight_rows = {t.id: t for t in (model.weight_tiers or [])}
        model.weight_tiers = [
            weight_rows.get(t.id)
            if t.id in weight_rows
            else WeightBasedRateModel(min_weight=t.min_weight, max_weight=t.max_weight, rate=t.rate)
            for t in entity.weight_based_rates
        ]
        value_rows = {t.id: t for t in (model.value_tiers or [])}
        model.value_tiers = [
            value_rows.get(t.id)
            if t.id in value_rows
            else ValueBasedRateModel(min_order_value=t.min_order_value, max_order_value=t.max_order_value, rate=t.rate)
            for t in entity.value_based_rates
        ]

    async def _fetch(self, rate_id: int) -> Optional[ShippingRateModel]:
        result = await self.session.execute(
            select(ShippingRateModel)
            .where(ShippingRateModel.id == rate_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(self, rate: ShippingRate) -> ShippingRate:
        db_rate = ShippingRateModel(weight_tiers=[], value_tiers=[])
        self._fill_model(db_rate, rate)
        self.session.add(db_rate)
        await self.session.flush()
        return self._to_entity(await self._fetch(db_rate.id))

    async def get_by_id(self, rate_id: int) -> Optional[ShippingRate]:
        db_rate = await self._fetch(rate_id)
        return self._to_entity(db_rate) if db_rate else None

    async def list_by_zone_ids(self, zone_ids: Iterable[int], active_only: bool = True) -> List[ShippingRate]:
        ids = list(zone_ids)
        if not ids:
            return []
        query = select(ShippingRateModel).where(ShippingRateModel.shipping_zone_id.in_(ids))
        if active_only:
            query = query.where(ShippingRateModel.active.is_(True))
        result = await self.session.execute(query.order_by(ShippingRateModel.id))
        return [self._to_entity(r) for r in result.scalars().all()]

    async def update(self, rate: ShippingRate) -> ShippingRate:
        db_rate = await self._fetch(rate.id)
        if not db_rate:
            raise ShippingRateNotFoundException(rate.id)
        self._fill_model(db_rate, rate)
        await self.session.flush()
        return self._to_entity(await self._fetch(rate.id))
