"""
结算会话领域服务 - 会话获取、访客合并与过期清理
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .entity import Checkout, CheckoutItem, CheckoutStatus, DEFAULT_TTL
from .repository import CheckoutRepository
from domain.common.exceptions import CheckoutNotActiveException, CheckoutNotFoundException
from domain.common.value_objects import CheckoutOwner, GuestOwner, RegisteredOwner


def merge_guest_checkout(target: Checkout, guest: Checkout, now: Optional[datetime] = None) -> Checkout:
    """
    把访客会话合并进用户已有的会话

    冲突规则：
    1. 商品行按 (商品, 规格) 合并，相同键数量相加，其余追加
    2. 地址/客户信息/配送方式/折扣：用户会话已设置则保留，否则取访客的值
    3. 折扣金额沿用访客值，调用方负责重新推导
    """
    now = now or datetime.now(timezone.utc)
    if target.status != CheckoutStatus.ACTIVE:
        raise CheckoutNotActiveException(target.id, target.status.value)

    by_key = {item.key: item for item in target.items}
    for guest_item in guest.items:
        existing = by_key.get(guest_item.key)
        if existing is not None:
            existing.quantity += guest_item.quantity
            existing.updated_at = now
        else:
            copied = CheckoutItem(
                product_id=guest_item.product_id,
                quantity=guest_item.quantity,
                price=guest_item.price,
                weight=guest_item.weight,
                variant_id=guest_item.variant_id,
                product_name=guest_item.product_name,
                variant_name=guest_item.variant_name,
                sku=guest_item.sku,
                created_at=guest_item.created_at or now,
                updated_at=now,
            )
            target.items.append(copied)
            by_key[copied.key] = copied

    if target.shipping_address.is_empty() and not guest.shipping_address.is_empty():
        target.shipping_address = guest.shipping_address
    if target.billing_address.is_empty() and not guest.billing_address.is_empty():
        target.billing_address = guest.billing_address
    if not target.customer_details.email and guest.customer_details.email:
        target.customer_details = guest.customer_details
    if target.shipping_method_id is None and guest.shipping_method_id is not None:
        target.shipping_method_id = guest.shipping_method_id
        target.shipping_rate_id = guest.shipping_rate_id
        target.shipping_cost = guest.shipping_cost
    if target.applied_discount is None and guest.applied_discount is not None:
        target.applied_discount = guest.applied_discount
        target.discount_amount = guest.discount_amount
    if target.payment_provider is None and guest.payment_provider:
        target.payment_provider = guest.payment_provider

    target.recalculate_totals()
    target.updated_at = now
    target.last_activity_at = now
    return target


class CheckoutDomainService:
    """
    结算会话领域服务

    职责：
    1. 按归属获取或创建进行中的会话（已过期的会话不再复用）
    2. 访客登录后合并/转移会话
    3. 过期会话清理
    """

    def __init__(self, checkout_repository: CheckoutRepository):
        self.checkout_repository = checkout_repository

    async def _find_active(self, owner: CheckoutOwner, *, for_update: bool) -> Optional[Checkout]:
        if isinstance(owner, RegisteredOwner):
            return await self.checkout_repository.get_active_by_user(owner.user_id, for_update=for_update)
        return await self.checkout_repository.get_active_by_session(owner.session_id, for_update=for_update)

    async def find_usable(self, owner: CheckoutOwner, now: datetime) -> Optional[Checkout]:
        """
        获取可用的进行中会话

        已过期但清理任务尚未处理的会话在当前事务内标记为 expired，
        之后才能为同一归属创建或转入新的 active 会话
        """
        checkout = await self._find_active(owner, for_update=True)
        if checkout is None:
            return None
        if checkout.is_expired(now):
            checkout.mark_expired(now)
            await self.checkout_repository.update(checkout)
            return None
        return checkout

    async def require_active(self, owner: CheckoutOwner) -> Checkout:
        """
        加锁获取 active 会话；不存在时抛出异常

        已过期的会话照常返回，由实体在修改时拒绝
        """
        checkout = await self._find_active(owner, for_update=True)
        if checkout is None:
            raise CheckoutNotFoundException(str(owner))
        return checkout

    async def get_or_start(
        self,
        owner: CheckoutOwner,
        currency: str,
        *,
        ttl: timedelta = DEFAULT_TTL,
        now: Optional[datetime] = None,
    ) -> Checkout:
        now = now or datetime.now(timezone.utc)
        checkout = await self.find_usable(owner, now)
        if checkout is not None:
            return checkout
        return await self.checkout_repository.create(Checkout.start(owner, currency, ttl=ttl, now=now))

    async def convert_guest_to_user(
        self,
        session_id: str,
        user_id: int,
        now: Optional[datetime] = None,
    ) -> Optional[Checkout]:
        """
        访客登录：有用户会话则合并并删除访客会话，否则把访客会话转给用户

        调用方需在同一工作单元内执行，保证合并的原子性
        """
        now = now or datetime.now(timezone.utc)
        guest = await self.find_usable(GuestOwner(session_id), now)
        if guest is None:
            return None

        user_owner = RegisteredOwner(user_id)
        existing = await self.find_usable(user_owner, now)
        if existing is None:
            guest.owner = user_owner
            guest.updated_at = now
            guest.last_activity_at = now
            return await self.checkout_repository.update(guest)

        merged = merge_guest_checkout(existing, guest, now)
        merged = await self.checkout_repository.update(merged)
        await self.checkout_repository.delete(guest.id)
        return merged

    async def expire_overdue(
        self,
        now: Optional[datetime] = None,
        limit: int = 100,
        *,
        keep_recoverable: bool = False,
    ) -> List[Checkout]:
        """
        将超时的 active 会话标记为 expired

        keep_recoverable 为 True 时跳过可挽回的会话，留给 abandon_recoverable 处理
        """
        now = now or datetime.now(timezone.utc)
        expired = []
        for checkout in await self.checkout_repository.list_expired_active(now, limit):
            if checkout.status != CheckoutStatus.ACTIVE or not checkout.is_expired(now):
                continue
            if keep_recoverable and checkout.is_recoverable():
                continue
            checkout.mark_expired(now)
            expired.append(await self.checkout_repository.update(checkout))
        return expired

    async def abandon_recoverable(self, now: Optional[datetime] = None, limit: int = 100) -> List[Checkout]:
        """超时且可挽回的会话标记为 abandoned，由调用方发送挽回邮件"""
        now = now or datetime.now(timezone.utc)
        abandoned = []
        for checkout in await self.checkout_repository.list_expired_active(now, limit):
            if not checkout.is_expired(now) or not checkout.is_recoverable():
                continue
            checkout.mark_abandoned(now)
            abandoned.append(await self.checkout_repository.update(checkout))
        return abandoned
