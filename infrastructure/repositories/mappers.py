"""
值对象 <-> 数据库列 的转换工具（仓储实现共用）
"""
from dataclasses import asdict
from typing import Optional

from domain.common.value_objects import (
    Address,
    CustomerDetails,
    GuestContact,
    GuestOwner,
    RegisteredOwner,
)
from domain.discount.entity import AppliedDiscount

OWNER_USER = "user"
OWNER_GUEST = "guest"


def address_to_json(address: Address) -> dict:
    return asdict(address)


def address_from_json(data: Optional[dict]) -> Address:
    return Address(**(data or {}))


def customer_to_json(details: CustomerDetails) -> dict:
    return asdict(details)


def customer_from_json(data: Optional[dict]) -> CustomerDetails:
    return CustomerDetails(**(data or {}))


def applied_discount_from(discount_id: Optional[int], code: Optional[str], amount: int) -> Optional[AppliedDiscount]:
    if discount_id is None:
        return None
    return AppliedDiscount(discount_id=discount_id, code=code or "", amount=amount)


def checkout_owner_columns(owner) -> dict:
    if isinstance(owner, RegisteredOwner):
        return {"owner_type": OWNER_USER, "user_id": owner.user_id, "session_id": None}
    return {"owner_type": OWNER_GUEST, "user_id": None, "session_id": owner.session_id}


def checkout_owner_from(model):
    if model.owner_type == OWNER_USER:
        return RegisteredOwner(model.user_id)
    return GuestOwner(model.session_id)


def order_owner_columns(owner) -> dict:
    if isinstance(owner, RegisteredOwner):
        return {
            "owner_type": OWNER_USER,
            "user_id": owner.user_id,
            "guest_email": None,
            "guest_full_name": None,
            "guest_phone": None,
        }
    return {
        "owner_type": OWNER_GUEST,
        "user_id": None,
        "guest_email": owner.email,
        "guest_full_name": owner.full_name,
        "guest_phone": owner.phone,
    }


def order_owner_from(model):
    if model.owner_type == OWNER_USER:
        return RegisteredOwner(model.user_id)
    return GuestContact(
        email=model.guest_email,
        full_name=model.guest_full_name or "",
        phone=model.guest_phone or "",
    )
