"""
支付流水领域实体 - 记录每一次授权/扣款/退款/取消的渠道结果
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException

DEFAULT_CURRENCY = "USD"


class TransactionType(str, Enum):
    """流水类型"""
    AUTHORIZE = "authorize"  # 授权
    CAPTURE = "capture"      # 扣款
    REFUND = "refund"        # 退款
    CANCEL = "cancel"        # 取消授权


class TransactionStatus(str, Enum):
    """流水状态"""
    PENDING = "pending"          # 等待渠道确认/待对账
    SUCCESSFUL = "successful"    # 成功
    FAILED = "failed"            # 失败


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class PaymentTransaction:
    """
    支付流水 - 只追加，正常流程不删除

    业务规则：
    1. 订单ID、渠道流水号、类型、状态、渠道标识必填
    2. 金额为最小货币单位的非负整数（取消流水金额为0）
    3. 币种为空时使用商店默认币种
    4. 状态只能从 pending 变为 successful / failed，终态不可再改
    """

    order_id: int
    transaction_id: str
    transaction_type: TransactionType
    status: TransactionStatus
    amount: int
    provider: str
    currency: str = ""
    id: Optional[int] = None
    raw_response: str = ""
    metadata: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.order_id or self.order_id <= 0:
            raise DomainValidationException("订单ID不能为空", field="order_id")
        if not self.transaction_id:
            raise DomainValidationException("渠道流水号不能为空", field="transaction_id")
        if not self.transaction_type:
            raise DomainValidationException("流水类型不能为空", field="transaction_type")
        if not self.status:
            raise DomainValidationException("流水状态不能为空", field="status")
        if not self.provider:
            raise DomainValidationException("支付渠道不能为空", field="provider")
        self.transaction_type = TransactionType(self.transaction_type)
        self.status = TransactionStatus(self.status)
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise DomainValidationException("金额必须为整数（最小货币单位）", field="amount")
        if self.amount < 0:
            raise DomainValidationException(f"金额不能为负数: {self.amount}", field="amount")
        self.currency = (self.currency or DEFAULT_CURRENCY).upper()
        if self.metadata is None:
            self.metadata = {}

        now = datetime.now(timezone.utc)
        self.created_at = _ensure_utc(self.created_at) or now
        self.updated_at = _ensure_utc(self.updated_at) or self.created_at

    @property
    def is_final(self) -> bool:
        return self.status != TransactionStatus.PENDING

    def add_metadata(self, key: str, value: Any) -> None:
        """追加元数据（对账标记、错误信息等）"""
        if self.metadata is None:
            self.metadata = {}
        self.metadata[key] = value
        self.updated_at = datetime.now(timezone.utc)

    def set_raw_response(self, response: str) -> None:
        """保存渠道原始响应（JSON 文本）"""
        self.raw_response = response or ""
        self.updated_at = datetime.now(timezone.utc)

    def update_status(self, status: TransactionStatus) -> bool:
        """
        渠道异步确认后原地更新状态

        返回是否发生变化；终态之间的改写视为非法
        """
        status = TransactionStatus(status)
        if status == self.status:
            return False
        if self.is_final:
            raise DomainValidationException(
                f"流水已是终态 {self.status.value}，不能改为 {status.value}",
                field="status",
            )
        self.status = status
        self.updated_at = datetime.now(timezone.utc)
        return True
