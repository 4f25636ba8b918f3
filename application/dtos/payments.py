"""
Payment DTOs (Pydantic v2) used at application boundaries.

Amounts are integer minor units everywhere; providers convert at their edge.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from domain.common.money import is_supported


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    WALLET = "wallet"


class CardDetails(BaseModel):
    card_number: str = Field(min_length=12, max_length=19)
    expiry_month: int = Field(ge=1, le=12)
    expiry_year: int = Field(ge=2000)
    cvv: str = Field(min_length=3, max_length=4)
    cardholder_name: str = ""
    token: Optional[str] = None  # provider-side token (e.g. Stripe payment method id)

    @field_validator("card_number")
    @classmethod
    def _digits_only(cls, v: str) -> str:
        digits = v.replace(" ", "").replace("-", "")
        if not digits.isdigit():
            raise ValueError("card_number must contain digits only")
        return digits

    @property
    def last4(self) -> str:
        return self.card_number[-4:]


class PaymentRequest(BaseModel):
    order_id: int = Field(gt=0)
    amount: int = Field(gt=0)
    currency: str = Field(default="USD")
    payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD
    provider: str = "mock"
    card_details: Optional[CardDetails] = None
    phone_number: Optional[str] = None
    customer_email: Optional[str] = None
    return_url: Optional[str] = None
    idempotency_key: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        u = (v or "").upper()
        if len(u) != 3 or not u.isalpha():
            raise ValueError("currency must be ISO-4217 alpha-3")
        if not is_supported(u):
            raise ValueError("unsupported currency")
        return u

    @field_validator("provider")
    @classmethod
    def _lower_provider(cls, v: str) -> str:
        return (v or "").strip().lower()


class PaymentResult(BaseModel):
    """Outcome of a provider call.

    ``success`` is False only for a definite rejection; an unreachable provider
    raises instead, because the outcome is unknown.
    """

    success: bool
    transaction_id: str = ""
    status: str = "pending"  # internal status: successful / pending / failed
    provider: Optional[str] = None
    requires_action: bool = False
    action_url: Optional[str] = None
    error_message: Optional[str] = None
    raw: Optional[dict[str, Any]] = None


class ProviderInfo(BaseModel):
    key: str
    name: str
    description: str = ""
    icon_url: Optional[str] = None
    methods: list[PaymentMethod] = Field(default_factory=list)
    enabled: bool = True
