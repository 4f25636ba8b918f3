"""
支付流水仓储接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import PaymentTransaction, TransactionType


class PaymentTransactionRepository(ABC):
    """
    支付流水仓储抽象接口

    聚合查询只统计 successful 流水，用作重复扣款/超额退款的防护，
    调用方需在锁定订单行的同一事务内使用
    """

    @abstractmethod
    async def create(self, transaction: PaymentTransaction) -> PaymentTransaction:
        """追加一条流水"""
        pass

    @abstractmethod
    async def get_by_id(self, transaction_pk: int) -> Optional[PaymentTransaction]:
        """根据主键获取流水"""
        pass

    @abstractmethod
    async def get_by_transaction_id(
        self,
        transaction_id: str,
        *,
        provider: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
    ) -> Optional[PaymentTransaction]:
        """根据渠道流水号获取最近一条流水"""
        pass

    @abstractmethod
    async def list_by_order(self, order_id: int) -> List[PaymentTransaction]:
        """获取订单的全部流水（按创建时间升序）"""
        pass

    @abstractmethod
    async def update(self, transaction: PaymentTransaction) -> PaymentTransaction:
        """更新流水（状态、原始响应、元数据）"""
        pass

    @abstractmethod
    async def latest_by_order_and_type(
        self,
        order_id: int,
        transaction_type: TransactionType,
    ) -> Optional[PaymentTransaction]:
        """获取订单某类型最近一条流水；不存在时返回 None"""
        pass

    @abstractmethod
    async def count_successful_by_order_and_type(
        self,
        order_id: int,
        transaction_type: TransactionType,
    ) -> int:
        """统计订单某类型的成功流水数量"""
        pass

    @abstractmethod
    async def sum_successful_amount_by_order_and_type(
        self,
        order_id: int,
        transaction_type: TransactionType,
    ) -> int:
        """汇总订单某类型的成功流水金额"""
        pass

    @abstractmethod
    async def list_pending_older_than(self, cutoff: datetime, limit: int = 100) -> List[PaymentTransaction]:
        """获取早于 cutoff 仍为 pending 的流水（待对账）"""
        pass
