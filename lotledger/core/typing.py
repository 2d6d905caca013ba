"""
公共类型定义

包含账本中使用的枚举、统一结果包装和 Decimal 工具函数
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class Strategy(str, Enum):
    """交易策略"""

    SWING = "Swing"
    HOLD = "Hold"


class StrategyTag(str, Enum):
    """买入交易的策略标记"""

    SWING = "Swing"
    HOLD = "Hold"
    SPLIT = "Split"  # 按配置比例分配到两个策略


class TxnAction(str, Enum):
    """交易动作"""

    BUY = "Buy"
    SELL = "Sell"
    DIV = "Div"
    SLP = "SLP"  # 融券出借收入
    STOCK_SPLIT = "StockSplit"


class LedgerErrorCode(str, Enum):
    """账本错误码"""

    INVALID_ALLOCATION_INPUT = "InvalidAllocationInput"
    ALLOCATION_RATIO_OUT_OF_RANGE = "AllocationRatioOutOfRange"
    WALLET_NOT_FOUND = "WalletNotFound"
    INSUFFICIENT_SHARES = "InsufficientShares"
    SPLIT_RATIO_INVALID = "SplitRatioInvalid"
    SPLIT_CONSERVATION_VIOLATED = "SplitConservationViolated"
    DUPLICATE_TRANSACTION = "DuplicateTransaction"
    TRANSACTION_NOT_APPLIED = "TransactionNotApplied"
    UNSUPPORTED_ACTION = "UnsupportedAction"


# 警告标识 (不阻断操作)
COMMISSION_OUT_OF_RANGE = "CommissionOutOfRange"
INVESTMENT_MISMATCH = "InvestmentMismatch"


@dataclass
class LedgerResult:
    """
    账本操作结果

    统一的操作结果包装，失败不抛异常而是返回错误码
    """

    success: bool
    data: Any = None
    error_code: LedgerErrorCode | None = None
    error_message: str = ""
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, data: Any = None, warnings: list[str] | None = None) -> "LedgerResult":
        """创建成功结果"""
        return cls(success=True, data=data, warnings=list(warnings or []))

    @classmethod
    def fail(cls, error_code: LedgerErrorCode, error_message: str) -> "LedgerResult":
        """创建失败结果"""
        return cls(
            success=False,
            error_code=error_code,
            error_message=error_message,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": self.error_message,
            "warnings": list(self.warnings),
        }


def to_decimal(value: Any) -> Decimal:
    """将 int/float/str 转换为 Decimal (float 经 str 转换避免二进制误差)"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_optional_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    return to_decimal(value)


def quantize(value: Decimal, quantum: Decimal) -> Decimal:
    """四舍五入到指定精度"""
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


def format_currency(value: Decimal) -> str:
    """金额显示 (保留 2 位小数)"""
    return f"${quantize(value, Decimal('0.01')):,}"
