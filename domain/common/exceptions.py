"""领域层业务异常定义，供领域、应用与基础设施使用。

异常分类：
1. 校验错误（DomainValidationException）：在任何状态变更之前抛出，无副作用
2. 非法状态流转（InvalidStatusTransitionException）：状态保持不变
3. 资源不存在（NotFoundException 及其子类）
4. 支付渠道错误：拒绝（PaymentProviderError）与不可达（PaymentRecoverableError）区分处理
5. 数据不一致（OrderNumberInconsistencyException）：读取时检测并修复
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class InvalidStatusTransitionException(BusinessException):
    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            code=BusinessCode.INVALID_STATUS_TRANSITION,
            message=f"Cannot transition {entity} from {current} to {target}",
            error_type="InvalidStatusTransition",
            details={"entity": entity, "current": current, "target": target},
            field="status",
        )


class NotFoundException(BusinessException):
    """资源不存在基类"""

    def __init__(
        self,
        resource: str,
        identifier: object = None,
        *,
        code: int = BusinessCode.NOT_FOUND,
        error_type: str = "NotFound",
    ):
        details = {"resource": resource}
        if identifier is not None:
            details["identifier"] = identifier
        super().__init__(
            code=code,
            message=f"{resource} not found",
            error_type=error_type,
            details=details,
        )


class OrderNumberInconsistencyException(BusinessException):
    def __init__(self, order_id: int, order_number: str):
        super().__init__(
            code=BusinessCode.ORDER_NUMBER_INCONSISTENT,
            message=f"Order {order_id} still carries provisional number {order_number}",
            error_type="OrderNumberInconsistency",
            details={"order_id": order_id, "order_number": order_number},
        )


# ---------------------------------------------------------------------------
# 结算会话
# ---------------------------------------------------------------------------

class CheckoutNotFoundException(NotFoundException):
    def __init__(self, identifier: object = None):
        super().__init__(
            "Checkout",
            identifier,
            code=BusinessCode.CHECKOUT_NOT_FOUND,
            error_type="CheckoutNotFound",
        )


class CheckoutNotActiveException(BusinessException):
    def __init__(self, checkout_id: Optional[int], status: str):
        super().__init__(
            code=BusinessCode.CHECKOUT_NOT_ACTIVE,
            message=f"Checkout is {status} and can no longer be modified",
            error_type="CheckoutNotActive",
            details={"checkout_id": checkout_id, "status": status},
            field="status",
        )


class CheckoutExpiredException(BusinessException):
    def __init__(self, checkout_id: Optional[int]):
        super().__init__(
            code=BusinessCode.CHECKOUT_EXPIRED,
            message="Checkout has expired",
            error_type="CheckoutExpired",
            details={"checkout_id": checkout_id},
            field="expires_at",
        )


class CheckoutIncompleteException(BusinessException):
    def __init__(self, missing: list[str]):
        super().__init__(
            code=BusinessCode.CHECKOUT_INCOMPLETE,
            message="Checkout is missing required information: " + ", ".join(missing),
            error_type="CheckoutIncomplete",
            details={"missing": missing},
        )


class CheckoutItemNotFoundException(NotFoundException):
    def __init__(self, product_id: int, variant_id: Optional[int] = None):
        super().__init__(
            "Checkout item",
            {"product_id": product_id, "variant_id": variant_id},
            code=BusinessCode.CHECKOUT_ITEM_NOT_FOUND,
            error_type="CheckoutItemNotFound",
        )


# ---------------------------------------------------------------------------
# 订单
# ---------------------------------------------------------------------------

class OrderNotFoundException(NotFoundException):
    def __init__(self, identifier: object = None):
        super().__init__(
            "Order",
            identifier,
            code=BusinessCode.ORDER_NOT_FOUND,
            error_type="OrderNotFound",
        )


# ---------------------------------------------------------------------------
# 折扣
# ---------------------------------------------------------------------------

class DiscountNotFoundException(NotFoundException):
    def __init__(self, identifier: object = None):
        super().__init__(
            "Discount",
            identifier,
            code=BusinessCode.DISCOUNT_NOT_FOUND,
            error_type="DiscountNotFound",
        )


class DiscountNotApplicableException(BusinessException):
    def __init__(self, code: str, reason: str = "discount is not applicable"):
        super().__init__(
            code=BusinessCode.DISCOUNT_NOT_APPLICABLE,
            message=f"Discount {code}: {reason}",
            error_type="DiscountNotApplicable",
            details={"discount_code": code, "reason": reason},
            field="discount_code",
        )


class DiscountUsageLimitReachedException(BusinessException):
    def __init__(self, code: str):
        super().__init__(
            code=BusinessCode.DISCOUNT_USAGE_LIMIT_REACHED,
            message=f"Discount {code} has reached its usage limit",
            error_type="DiscountUsageLimitReached",
            details={"discount_code": code},
            field="discount_code",
        )


class DiscountCodeAlreadyExistsException(BusinessException):
    def __init__(self, code: str):
        super().__init__(
            code=BusinessCode.DISCOUNT_CODE_EXISTS,
            message=f"Discount code {code} already exists",
            error_type="DiscountCodeAlreadyExists",
            details={"discount_code": code},
            field="code",
        )


# ---------------------------------------------------------------------------
# 运费
# ---------------------------------------------------------------------------

class ShippingRateNotFoundException(NotFoundException):
    def __init__(self, rate_id: object = None):
        super().__init__(
            "Shipping rate",
            rate_id,
            code=BusinessCode.SHIPPING_RATE_NOT_FOUND,
            error_type="ShippingRateNotFound",
        )


class ShippingNotAvailableException(BusinessException):
    def __init__(self, rate_id: Optional[int] = None, reason: str = "shipping rate not available"):
        super().__init__(
            code=BusinessCode.SHIPPING_NOT_AVAILABLE,
            message=reason,
            error_type="ShippingNotAvailable",
            details={"rate_id": rate_id},
            field="shipping_rate_id",
        )


# ---------------------------------------------------------------------------
# 支付流水
# ---------------------------------------------------------------------------

class PaymentAlreadyProcessedException(BusinessException):
    def __init__(self, order_id: int, status: str):
        super().__init__(
            code=BusinessCode.PAYMENT_ALREADY_PROCESSED,
            message=f"Order {order_id} payment already processed (status={status})",
            error_type="PaymentAlreadyProcessed",
            details={"order_id": order_id, "status": status},
        )


class DuplicatePaymentOperationException(BusinessException):
    def __init__(self, order_id: int, operation: str):
        super().__init__(
            code=BusinessCode.PAYMENT_DUPLICATE_OPERATION,
            message=f"{operation} already succeeded for order {order_id}",
            error_type="DuplicatePaymentOperation",
            details={"order_id": order_id, "operation": operation},
        )


class PaymentAmountExceededException(BusinessException):
    def __init__(self, order_id: int, requested: int, available: int):
        super().__init__(
            code=BusinessCode.PAYMENT_AMOUNT_EXCEEDED,
            message=f"Requested amount {requested} exceeds available amount {available}",
            error_type="PaymentAmountExceeded",
            details={"order_id": order_id, "requested": requested, "available": available},
            field="amount",
        )


class PaymentTransactionNotFoundException(NotFoundException):
    def __init__(self, identifier: object = None):
        super().__init__(
            "Payment transaction",
            identifier,
            code=BusinessCode.PAYMENT_TRANSACTION_NOT_FOUND,
            error_type="PaymentTransactionNotFound",
        )


# ---------------------------------------------------------------------------
# 支付渠道
# ---------------------------------------------------------------------------

class PaymentProviderError(BusinessException):
    """渠道明确拒绝（余额不足、卡被拒等），订单状态不受影响"""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        details: Optional[dict] = None,
        code: int = PaymentCode.PROVIDER_ERROR,
    ):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=code,
            message=message,
            error_type="PaymentProviderError",
            details=full_details,
        )
        self.provider = provider
        self.provider_code = provider_code


class PaymentRecoverableError(BusinessException):
    """渠道不可达（超时、网络错误、5xx），结果未知，需对账"""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        details: Optional[dict] = None,
        code: int = PaymentCode.PROVIDER_RECOVERABLE,
    ):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=code,
            message=message,
            error_type="PaymentRecoverableError",
            details=full_details,
        )
        self.provider = provider
        self.provider_code = provider_code


class PaymentProviderUnavailableError(BusinessException):
    """未知或未启用的渠道标识，不会回退到其他渠道"""

    def __init__(self, provider: str, available: Optional[list] = None):
        super().__init__(
            code=PaymentCode.PROVIDER_UNAVAILABLE,
            message=f"Payment provider '{provider}' is not available",
            error_type="PaymentProviderUnavailable",
            details={"provider": provider, "available": list(available or [])},
            field="provider",
        )
        self.provider = provider
