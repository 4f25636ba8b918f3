"""
金额工具 - 所有参与合计计算的金额均为最小货币单位的整数（如美分）

舍入策略：
1. 百分比计算一律向零截断（整数除法），不做四舍五入
2. 仅在外部十进制金额转入系统时（to_minor_units）按 ROUND_HALF_UP 量化
3. 不接受 float，避免二进制浮点误差进入合计
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from domain.common.exceptions import DomainValidationException


@dataclass(frozen=True)
class Currency:
    code: str
    name: str
    symbol: str
    precision: int = 2


SUPPORTED_CURRENCIES: dict[str, Currency] = {
    "USD": Currency("USD", "US Dollar", "$"),
    "EUR": Currency("EUR", "Euro", "€"),
    "GBP": Currency("GBP", "British Pound", "£"),
    "CAD": Currency("CAD", "Canadian Dollar", "$"),
    "NOK": Currency("NOK", "Norwegian Krone", "kr"),
    "DKK": Currency("DKK", "Danish Krone", "kr"),
    "SEK": Currency("SEK", "Swedish Krona", "kr"),
    "JPY": Currency("JPY", "Japanese Yen", "¥", precision=0),
}

DecimalLike = Union[Decimal, int, str]


def get_currency(code: str) -> Currency:
    """根据 ISO-4217 代码获取币种，不支持时抛出校验异常"""
    currency = SUPPORTED_CURRENCIES.get((code or "").upper())
    if currency is None:
        raise DomainValidationException(f"Unsupported currency: {code}", field="currency")
    return currency


def is_supported(code: str) -> bool:
    return (code or "").upper() in SUPPORTED_CURRENCIES


def to_minor_units(value: DecimalLike, currency: str = "USD") -> int:
    """十进制金额 -> 最小单位整数"""
    if isinstance(value, (float, bool)):
        raise DomainValidationException(
            "Monetary values must be Decimal, int or str, not float",
            field="amount",
        )
    precision = get_currency(currency).precision
    scaled = Decimal(value).scaleb(precision)
    return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def to_major_units(amount: int, currency: str = "USD") -> Decimal:
    """最小单位整数 -> 十进制金额（仅用于展示或对接外部接口）"""
    precision = get_currency(currency).precision
    return Decimal(int(amount)).scaleb(-precision)


def apply_percentage(amount: int, percent: Union[Decimal, int, float, str]) -> int:
    """amount * percent / 100，向零截断"""
    ratio = Decimal(str(percent)) if isinstance(percent, float) else Decimal(percent)
    # int() 对 Decimal 向零截断，负数同样保留符号
    return int(Decimal(int(amount)) * ratio / Decimal(100))


def format_amount(amount: int, currency: str = "USD") -> str:
    """格式化展示，如 1234 USD -> $12.34"""
    cur = get_currency(currency)
    major = to_major_units(amount, cur.code)
    sign = "-" if major < 0 else ""
    return f"{sign}{cur.symbol}{abs(major):,.{cur.precision}f}"
