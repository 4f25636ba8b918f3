"""
Shared business codes used across layers (Domain/Application/Infrastructure).

This package exposes BusinessCode at `shared.codes` and keeps
payment-specific codes under `shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    INVALID_STATUS_TRANSITION = 20001
    NOT_FOUND = 20006  # Generic resource not found

    # Checkout (201xx)
    CHECKOUT_NOT_FOUND = 20100
    CHECKOUT_NOT_ACTIVE = 20101
    CHECKOUT_EXPIRED = 20102
    CHECKOUT_INCOMPLETE = 20103
    CHECKOUT_ITEM_NOT_FOUND = 20104

    # Order (202xx)
    ORDER_NOT_FOUND = 20200
    ORDER_NUMBER_INCONSISTENT = 20201

    # Discount (203xx)
    DISCOUNT_NOT_FOUND = 20300
    DISCOUNT_NOT_APPLICABLE = 20301
    DISCOUNT_USAGE_LIMIT_REACHED = 20302
    DISCOUNT_CODE_EXISTS = 20303

    # Shipping (204xx)
    SHIPPING_RATE_NOT_FOUND = 20400
    SHIPPING_NOT_AVAILABLE = 20401

    # Payment ledger (205xx)
    PAYMENT_ALREADY_PROCESSED = 20500
    PAYMENT_DUPLICATE_OPERATION = 20501
    PAYMENT_AMOUNT_EXCEEDED = 20502
    PAYMENT_TRANSACTION_NOT_FOUND = 20503

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode"]
