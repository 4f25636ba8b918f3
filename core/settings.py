"""
Payment-related settings using pydantic-settings v2 with nested env keys.

This module is isolated so core.config.Settings stays focused on the store.
Example: PAYMENT__ENABLED_PROVIDERS='["stripe","mock"]', PAYMENT__STRIPE__SECRET_KEY=sk_...
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None


class MobilePaySettings(BaseModel):
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    subscription_key: Optional[str] = None
    merchant_serial_number: Optional[str] = None
    market: str = "NOK"
    test_mode: bool = True
    return_url: Optional[str] = None
    payment_description: str = "storefront"


class PaymentSettings(BaseSettings):
    enabled_providers: list[str] = Field(default_factory=lambda: ["mock"])
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    # Sandbox only: lets operators mark a transaction approved without the provider
    allow_force_approve: bool = False

    stripe: StripeSettings = Field(default_factory=StripeSettings)
    mobilepay: MobilePaySettings = Field(default_factory=MobilePaySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    @field_validator("enabled_providers", mode="before")
    @classmethod
    def _parse_providers(cls, v):
        """Normalize provider keys to lower case."""
        if isinstance(v, str):
            return [item.strip().lower() for item in v.split(",") if item.strip()]
        return [str(item).lower() for item in v]


payment_settings = PaymentSettings()
