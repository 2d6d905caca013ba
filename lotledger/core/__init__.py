"""
Core 模块 - 基础组件

包含:
- config: 配置加载与环境区分
- typing: 枚举、结果包装与 Decimal 工具
"""

from .typing import (
    COMMISSION_OUT_OF_RANGE,
    INVESTMENT_MISMATCH,
    LedgerErrorCode,
    LedgerResult,
    Strategy,
    StrategyTag,
    TxnAction,
)

__all__ = [
    # Enums
    "Strategy",
    "StrategyTag",
    "TxnAction",
    "LedgerErrorCode",
    # Results
    "LedgerResult",
    "COMMISSION_OUT_OF_RANGE",
    "INVESTMENT_MISMATCH",
]
