"""
通用值对象 - 地址、客户信息与归属（注册用户 / 访客）
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from domain.common.exceptions import DomainValidationException


@dataclass(frozen=True)
class Address:
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""

    def is_complete(self) -> bool:
        """下单所需的最低要求：街道与国家"""
        return bool(self.street.strip()) and bool(self.country.strip())

    def is_empty(self) -> bool:
        return not self.street.strip()


@dataclass(frozen=True)
class CustomerDetails:
    email: str = ""
    phone: str = ""
    full_name: str = ""

    def is_complete(self) -> bool:
        return bool(self.email.strip()) and bool(self.full_name.strip())


@dataclass(frozen=True)
class RegisteredOwner:
    """已注册用户"""
    user_id: int

    def __post_init__(self):
        if not self.user_id or self.user_id <= 0:
            raise DomainValidationException("user_id must be positive", field="user_id")


@dataclass(frozen=True)
class GuestOwner:
    """访客会话"""
    session_id: str

    def __post_init__(self):
        if not self.session_id or not self.session_id.strip():
            raise DomainValidationException("session_id is required", field="session_id")


@dataclass(frozen=True)
class GuestContact:
    """访客订单的联系人信息"""
    email: str
    full_name: str = ""
    phone: str = ""

    def __post_init__(self):
        if not self.email or not self.email.strip():
            raise DomainValidationException("guest email is required", field="email")


CheckoutOwner = Union[RegisteredOwner, GuestOwner]
OrderOwner = Union[RegisteredOwner, GuestContact]


def owner_user_id(owner: Union[CheckoutOwner, OrderOwner]) -> Optional[int]:
    return owner.user_id if isinstance(owner, RegisteredOwner) else None
