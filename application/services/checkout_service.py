"""
结算会话应用服务（application/services）- 编排会话修改、运费/折扣重算与下单

所有修改都在同一工作单元内对会话行加锁，保证同一会话的并发修改串行化。
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from application.dto import (
    AddCheckoutItemDTO,
    AddressDTO,
    CheckoutResponseDTO,
    CustomerDetailsDTO,
    OrderResponseDTO,
    UpdateCheckoutItemDTO,
)
from application.dtos.payments import CardDetails, PaymentResult
from application.ports.catalog import CatalogPort
from application.ports.notification import CHECKOUT_RECOVERY, OrderNotifier
from application.services.discount_service import resolve_category_products
from application.services.order_service import publish_order_events
from core.config import settings
from core.logging_config import get_logger
from domain.checkout.entity import Checkout
from domain.checkout.service import CheckoutDomainService
from domain.common.exceptions import (
    DiscountNotApplicableException,
    DiscountNotFoundException,
    DiscountUsageLimitReachedException,
    PaymentRecoverableError,
    ShippingNotAvailableException,
    ShippingRateNotFoundException,
)
from domain.common.money import format_amount
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.common.value_objects import CheckoutOwner, GuestOwner
from domain.discount.service import DiscountDomainService
from domain.order.service import OrderDomainService
from domain.shipping.service import ShippingDomainService

logger = get_logger(__name__)

_DISCOUNT_REJECTIONS = (
    DiscountNotApplicableException,
    DiscountNotFoundException,
    DiscountUsageLimitReachedException,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _recovery_data(checkout: Checkout, now: datetime) -> dict:
    """挽回邮件数据：购物车明细、格式化金额、回到结算页的链接与可选优惠"""
    store = settings.store
    base_url = store.storefront_url.rstrip("/")
    if isinstance(checkout.owner, GuestOwner):
        checkout_url = f"{base_url}/checkout?session={checkout.owner.session_id}"
    else:
        checkout_url = f"{base_url}/checkout/{checkout.id}"

    offer = None
    if store.recovery_discount_code:
        offer = {
            "code": store.recovery_discount_code,
            "description": store.recovery_discount_description,
            "expires_at": (now + timedelta(hours=store.recovery_offer_hours)).isoformat(),
        }

    currency = checkout.currency
    return {
        "checkout_id": checkout.id,
        "email": checkout.customer_details.email,
        "full_name": checkout.customer_details.full_name,
        "items": [
            {
                "product_id": item.product_id,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "price": format_amount(item.price, currency),
                "subtotal": format_amount(item.subtotal, currency),
            }
            for item in checkout.items
        ],
        "total_amount": format_amount(checkout.total_amount, currency),
        "shipping_cost": format_amount(checkout.shipping_cost, currency),
        "discount_amount": format_amount(checkout.discount_amount, currency),
        "final_amount": format_amount(checkout.final_amount, currency),
        "checkout_url": checkout_url,
        "discount_offer": offer,
    }


@dataclass
class CheckoutCompletion:
    order: OrderResponseDTO
    payment: Optional[PaymentResult] = None


class CheckoutApplicationService:
    """
    结算会话应用服务

    折扣策略：实体的 recalculate_totals 不重算折扣，本服务在每次商品变更后
    按已保存的折扣码重新推导；折扣不再适用时自动移除。
    """

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        catalog: Optional[CatalogPort] = None,
        notifier: Optional[OrderNotifier] = None,
        payment_service=None,
    ):
        self._uow_factory = uow_factory
        self._catalog = catalog
        self._notifier = notifier
        self._payment_service = payment_service
        self._ttl = timedelta(hours=settings.store.checkout_ttl_hours)
        self._currency = settings.store.default_currency

    # ------------------------------------------------------------------
    # 内部工具
    # ------------------------------------------------------------------

    async def _mutate(
        self,
        owner: CheckoutOwner,
        event: str,
        mutate: Callable[[AbstractUnitOfWork, Checkout, datetime], Awaitable[None]],
        *,
        create: bool = False,
        reprice: bool = False,
    ) -> CheckoutResponseDTO:
        now = _utcnow()
        async with self._uow_factory() as uow:
            domain_service = CheckoutDomainService(uow.checkout_repository)
            if create:
                checkout = await domain_service.get_or_start(owner, self._currency, ttl=self._ttl, now=now)
            else:
                checkout = await domain_service.require_active(owner)
            await mutate(uow, checkout, now)
            if reprice:
                await self._reprice(uow, checkout, now)
            checkout = await uow.checkout_repository.update(checkout)
            logger.info(
                event,
                checkout_id=checkout.id,
                total_amount=checkout.total_amount,
                discount_amount=checkout.discount_amount,
                final_amount=checkout.final_amount,
            )
            return CheckoutResponseDTO.from_entity(checkout)

    async def _reprice(self, uow: AbstractUnitOfWork, checkout: Checkout, now: datetime) -> None:
        """商品变更后重算运费（沿用已选费率）与折扣"""
        if checkout.shipping_rate_id is not None:
            rate = await uow.shipping_rate_repository.get_by_id(checkout.shipping_rate_id)
            if rate is not None and rate.accepts(checkout.total_amount):
                checkout.set_shipping_method(
                    rate.shipping_method_id,
                    rate.calculate_cost(checkout.total_amount, checkout.total_weight),
                    rate_id=rate.id,
                    now=now,
                )
            else:
                logger.warning(
                    "checkout_shipping_rate_stale",
                    checkout_id=checkout.id,
                    shipping_rate_id=checkout.shipping_rate_id,
                )

        applied = checkout.applied_discount
        if applied is None:
            return
        try:
            discount = await uow.discount_repository.get_by_id(applied.discount_id)
            if discount is None:
                raise DiscountNotFoundException(applied.code)
            category_products = await resolve_category_products(self._catalog, discount)
            checkout.apply_discount(discount, category_product_ids=category_products, now=now)
        except _DISCOUNT_REJECTIONS as exc:
            checkout.apply_discount(None, now=now)
            logger.info(
                "checkout_discount_removed",
                checkout_id=checkout.id,
                code=applied.code,
                reason=exc.message,
            )

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    async def get_or_create(self, owner: CheckoutOwner) -> CheckoutResponseDTO:
        async with self._uow_factory() as uow:
            checkout = await CheckoutDomainService(uow.checkout_repository).get_or_start(
                owner, self._currency, ttl=self._ttl, now=_utcnow()
            )
            return CheckoutResponseDTO.from_entity(checkout)

    async def get_checkout(self, owner: CheckoutOwner) -> CheckoutResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            checkout = await CheckoutDomainService(uow.checkout_repository).require_active(owner)
            return CheckoutResponseDTO.from_entity(checkout)

    # ------------------------------------------------------------------
    # 商品行
    # ------------------------------------------------------------------

    async def add_item(self, owner: CheckoutOwner, data: AddCheckoutItemDTO) -> CheckoutResponseDTO:
        async def mutate(uow, checkout: Checkout, now: datetime) -> None:
            checkout.add_item(
                data.product_id,
                data.quantity,
                data.price,
                weight=data.weight,
                variant_id=data.variant_id,
                product_name=data.product_name,
                variant_name=data.variant_name,
                sku=data.sku,
                now=now,
            )

        return await self._mutate(owner, "checkout_item_added", mutate, create=True, reprice=True)

    async def update_item(self, owner: CheckoutOwner, data: UpdateCheckoutItemDTO) -> CheckoutResponseDTO:
        async def mutate(uow, checkout: Checkout, now: datetime) -> None:
            checkout.update_item(data.product_id, data.quantity, variant_id=data.variant_id, now=now)

        return await self._mutate(owner, "checkout_item_updated", mutate, reprice=True)

    async def remove_item(
        self,
        owner: CheckoutOwner,
        product_id: int,
        variant_id: Optional[int] = None,
    ) -> CheckoutResponseDTO:
        async def mutate(uow, checkout: Checkout, now: datetime) -> None:
            checkout.remove_item(product_id, variant_id=variant_id, now=now)

        return await self._mutate(owner, "checkout_item_removed", mutate, reprice=True)

    async def clear(self, owner: CheckoutOwner) -> CheckoutResponseDTO:
        async def mutate(uow, checkout: Checkout, now: datetime) -> None:
            checkout.clear(now)

        return await self._mutate(owner, "checkout_cleared", mutate, reprice=True)

    # ------------------------------------------------------------------
    # 地址 / 客户 / 支付渠道
    # ------------------------------------------------------------------

    async def set_shipping_address(self, owner: CheckoutOwner, address: AddressDTO) -> CheckoutResponseDTO:
        async def mutate(uow, checkout: Checkout, now: datetime) -> None:
            checkout.set_shipping_address(address.to_value(), now)

        return await self._mutate(owner, "checkout_shipping_address_set", mutate)

    async def set_billing_address(self, owner: CheckoutOwner, address: AddressDTO) -> CheckoutResponseDTO:
        async def mutate(uow, checkout: Checkout, now: datetime) -> None:
            checkout.set_billing_address(address.to_value(), now)

        return await self._mutate(owner, "checkout_billing_address_set", mutate)

    async def set_customer_details(self, owner: CheckoutOwner, details: CustomerDetailsDTO) -> CheckoutResponseDTO:
        async def mutate(uow, checkout: Checkout, now: datetime) -> None:
            checkout.set_customer_details(details.to_value(), now)

        return await self._mutate(owner, "checkout_customer_details_set", mutate)

    async def set_payment_provider(self, owner: CheckoutOwner, provider: str) -> CheckoutResponseDTO:
        async def mutate(uow, checkout: Checkout, now: datetime) -> None:
            checkout.set_payment_provider(provider, now)

        return await self._mutate(owner, "checkout_payment_provider_set", mutate)

    async def set_currency(self, owner: CheckoutOwner, currency: str) -> CheckoutResponseDTO:
        """切换币种；金额保持最小货币单位不变，不做汇率换算"""
        async def mutate(uow, checkout: Checkout, now: datetime) -> None:
            checkout.set_currency(currency, now)

        return await self._mutate(owner, "checkout_currency_set", mutate)

    # ------------------------------------------------------------------
    # 配送
    # ------------------------------------------------------------------

    async def select_shipping_rate(self, owner: CheckoutOwner, rate_id: int) -> CheckoutResponseDTO:
        """选择配送费率；运费由运费引擎按当前地址、金额与重量计算"""

        async def mutate(uow, checkout: Checkout, now: datetime) -> None:
            if checkout.shipping_address.is_empty():
                raise ShippingNotAvailableException(rate_id, "shipping address is required")
            shipping = ShippingDomainService(
                uow.shipping_method_repository,
                uow.shipping_zone_repository,
                uow.shipping_rate_repository,
            )
            rate = await shipping.quote(rate_id, checkout.shipping_address, checkout.total_amount)
            cost = rate.calculate_cost(checkout.total_amount, checkout.total_weight)
            checkout.set_shipping_method(rate.shipping_method_id, cost, rate_id=rate.id, now=now)

        return await self._mutate(owner, "checkout_shipping_selected", mutate)

    # ------------------------------------------------------------------
    # 折扣
    # ------------------------------------------------------------------

    async def apply_discount_code(self, owner: CheckoutOwner, code: str) -> CheckoutResponseDTO:
        async def mutate(uow, checkout: Checkout, now: datetime) -> None:
            discount = await DiscountDomainService(uow.discount_repository).get_by_code(code)
            category_products = await resolve_category_products(self._catalog, discount)
            checkout.apply_discount(discount, category_product_ids=category_products, now=now)

        return await self._mutate(owner, "checkout_discount_applied", mutate)

    async def remove_discount(self, owner: CheckoutOwner) -> CheckoutResponseDTO:
        async def mutate(uow, checkout: Checkout, now: datetime) -> None:
            checkout.apply_discount(None, now=now)

        return await self._mutate(owner, "checkout_discount_removed", mutate)

    # ------------------------------------------------------------------
    # 访客登录 / 生命周期
    # ------------------------------------------------------------------

    async def convert_guest(self, session_id: str, user_id: int) -> Optional[CheckoutResponseDTO]:
        """访客登录后合并或转移会话；没有访客会话时返回 None"""
        now = _utcnow()
        async with self._uow_factory() as uow:
            checkout = await CheckoutDomainService(uow.checkout_repository).convert_guest_to_user(
                session_id, user_id, now
            )
            if checkout is None:
                return None
            await self._reprice(uow, checkout, now)
            checkout = await uow.checkout_repository.update(checkout)
            logger.info(
                "checkout_guest_converted",
                checkout_id=checkout.id,
                user_id=user_id,
                items=checkout.total_items(),
            )
            return CheckoutResponseDTO.from_entity(checkout)

    async def abandon(self, owner: CheckoutOwner) -> CheckoutResponseDTO:
        now = _utcnow()
        async with self._uow_factory() as uow:
            checkout = await CheckoutDomainService(uow.checkout_repository).require_active(owner)
            checkout.mark_abandoned(now)
            checkout = await uow.checkout_repository.update(checkout)
            logger.info("checkout_abandoned", checkout_id=checkout.id)
            return CheckoutResponseDTO.from_entity(checkout)

    async def expire_overdue(self, now: Optional[datetime] = None, limit: int = 100) -> int:
        """
        过期清理：只处理仍为 active 且已超过有效期的会话

        开启弃单挽回时，可挽回的会话留给 recover_abandoned 处理
        """
        now = now or _utcnow()
        async with self._uow_factory() as uow:
            expired = await CheckoutDomainService(uow.checkout_repository).expire_overdue(
                now, limit, keep_recoverable=settings.store.checkout_recovery_enabled
            )
        if expired:
            logger.info("checkouts_expired", count=len(expired), ids=[c.id for c in expired])
        return len(expired)

    async def recover_abandoned(self, now: Optional[datetime] = None, limit: int = 100) -> int:
        """
        弃单挽回：超时且留有邮箱、购物车非空的会话标记为 abandoned 并发送挽回邮件

        状态先行提交，邮件在事务之外发送；发送失败只记录告警。返回成功发送的数量
        """
        now = now or _utcnow()
        async with self._uow_factory() as uow:
            abandoned = await CheckoutDomainService(uow.checkout_repository).abandon_recoverable(now, limit)

        sent = 0
        for checkout in abandoned:
            if await self._send_recovery(checkout, now):
                sent += 1
        if abandoned:
            logger.info("checkouts_recovery_processed", abandoned=len(abandoned), sent=sent)
        return sent

    async def _send_recovery(self, checkout: Checkout, now: datetime) -> bool:
        if self._notifier is None:
            return False
        try:
            await self._notifier.notify(CHECKOUT_RECOVERY, _recovery_data(checkout, now))
        except Exception:
            logger.warning("checkout_recovery_email_failed", checkout_id=checkout.id, exc_info=True)
            return False
        return True

    async def complete(
        self,
        owner: CheckoutOwner,
        *,
        payment_provider: Optional[str] = None,
        card_details: Optional[CardDetails] = None,
        phone_number: Optional[str] = None,
    ) -> CheckoutCompletion:
        """
        完成结算：生成订单、定稿订单号、标记会话完成、核销折扣

        以上步骤在同一工作单元内完成；支付在订单提交后单独发起
        """
        now = _utcnow()
        async with self._uow_factory() as uow:
            checkout = await CheckoutDomainService(uow.checkout_repository).require_active(owner)
            if payment_provider:
                checkout.set_payment_provider(payment_provider, now)
            await self._reprice(uow, checkout, now)

            order = checkout.to_order(now)
            if checkout.payment_provider:
                order.set_payment_provider(checkout.payment_provider)

            order_service = OrderDomainService(uow.order_repository)
            order = await order_service.place_order(order)
            if order.applied_discount is not None:
                await DiscountDomainService(uow.discount_repository).redeem(
                    order.applied_discount.discount_id, order.applied_discount.code
                )

            checkout.mark_completed(order.id, now)
            await uow.checkout_repository.update(checkout)
            events = order_service.get_domain_events()

        logger.info(
            "checkout_completed",
            checkout_id=checkout.id,
            order_id=order.id,
            order_number=order.order_number,
            final_amount=order.final_amount,
        )
        await publish_order_events(self._notifier, events)

        completion = CheckoutCompletion(order=OrderResponseDTO.from_entity(order))
        if self._payment_service is None or not order.payment_provider:
            return completion

        try:
            completion.payment = await self._payment_service.process_payment(
                order.id,
                card_details=card_details,
                phone_number=phone_number,
            )
        except PaymentRecoverableError as exc:
            completion.payment = PaymentResult(
                success=False,
                status="pending",
                provider=order.payment_provider,
                error_message=exc.message,
            )
        return completion
