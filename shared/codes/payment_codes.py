"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    TIMEOUT = 60003
    RATE_LIMITED = 60004
    PROVIDER_UNAVAILABLE = 60005
    UNSUPPORTED_OPERATION = 60006


# Provider payment status -> internal authorization status (successful/pending/failed)
PROVIDER_STATUS_TO_INTERNAL = {
    "stripe": {
        "requires_payment_method": "failed",
        "requires_confirmation": "pending",
        "requires_action": "pending",
        "processing": "pending",
        "requires_capture": "successful",
        "succeeded": "successful",
        "canceled": "failed",
        # refunds
        "pending": "pending",
        "failed": "failed",
    },
    "mobilepay": {
        # ePayment state
        "CREATED": "pending",
        "AUTHORIZED": "successful",
        "ABORTED": "failed",
        "EXPIRED": "failed",
        "TERMINATED": "failed",
    },
    "mock": {
        "approved": "successful",
        "declined": "failed",
        "pending": "pending",
    },
}
