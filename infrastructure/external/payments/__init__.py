"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Iterable, Optional

from core.logging_config import get_logger
from core.settings import payment_settings
from application.ports.payment_gateway import PaymentProvider
from infrastructure.external.payments.gateway import MultiProviderPaymentGateway


logger = get_logger(__name__)


def create_provider(name: str) -> PaymentProvider:
    name = name.lower()
    if name == "stripe":
        from .stripe_client import StripeClient
        return StripeClient()
    if name == "mobilepay":
        from .mobilepay_client import MobilePayClient
        return MobilePayClient()
    if name == "mock":
        from .mock_client import MockPaymentClient
        return MockPaymentClient()
    raise ValueError(f"Unsupported payment provider: {name}")


def build_payment_gateway(enabled: Optional[Iterable[str]] = None) -> MultiProviderPaymentGateway:
    """Build the routing table from the enabled provider keys (settings by default)."""
    gateway = MultiProviderPaymentGateway()
    for name in enabled if enabled is not None else payment_settings.enabled_providers:
        gateway.register(create_provider(name))
    if not gateway.provider_keys:
        logger.warning("payment_gateway_empty")
    return gateway


__all__ = ["MultiProviderPaymentGateway", "build_payment_gateway", "create_provider"]
