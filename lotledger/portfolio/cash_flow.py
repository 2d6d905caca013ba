"""
单只股票现金流

跟踪两项累计值:
- total_out_of_pocket (OOP): 自有资金投入，只增不减
- current_cash_balance: 卖出 / 分红回笼、可用于后续买入的现金

买入优先动用现金余额，余额不足的部分计入 OOP。
每笔交易带来的变化量记录在交易上，撤销时按变化量精确回退。
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from lotledger.core.typing import HUNDRED, ZERO, TxnAction, to_decimal

# 会产生现金收入的动作
INCOME_ACTIONS = (TxnAction.SELL, TxnAction.DIV, TxnAction.SLP)


@dataclass
class CashFlowDelta:
    """一笔交易对现金流的改变量"""

    out_of_pocket: Decimal = ZERO
    cash_balance: Decimal = ZERO

    def __post_init__(self) -> None:
        self.out_of_pocket = to_decimal(self.out_of_pocket)
        self.cash_balance = to_decimal(self.cash_balance)

    @property
    def is_zero(self) -> bool:
        return self.out_of_pocket == ZERO and self.cash_balance == ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "out_of_pocket": str(self.out_of_pocket),
            "cash_balance": str(self.cash_balance),
        }


@dataclass
class CashFlowState:
    """
    现金流状态

    两个值都不会小于 0
    """

    total_out_of_pocket: Decimal = ZERO
    current_cash_balance: Decimal = ZERO

    def __post_init__(self) -> None:
        """确保数值类型正确"""
        self.total_out_of_pocket = to_decimal(self.total_out_of_pocket)
        self.current_cash_balance = to_decimal(self.current_cash_balance)

    @property
    def budget_used(self) -> Decimal:
        """已占用资金 = OOP - 现金余额"""
        return self.total_out_of_pocket - self.current_cash_balance

    def roic(self, market_value: Decimal) -> Decimal | None:
        """
        初始资金回报率 (%)

        (现金余额 + 持仓市值 - OOP) / OOP × 100，OOP 为 0 时返回 None
        """
        if self.total_out_of_pocket == ZERO:
            return None
        gain = self.current_cash_balance + market_value - self.total_out_of_pocket
        return gain / self.total_out_of_pocket * HUNDRED

    def delta_for(self, action: TxnAction, amount: Decimal) -> CashFlowDelta:
        """
        计算一笔交易带来的变化量 (不修改状态)

        Args:
            action: 交易动作
            amount: Buy 为投入金额，Sell 为卖出所得，Div / SLP 为收入

        Returns:
            CashFlowDelta，拆股等动作返回零变化
        """
        amount = to_decimal(amount)
        oop = self.total_out_of_pocket
        cash = self.current_cash_balance

        if action == TxnAction.BUY:
            if cash >= amount:
                cash -= amount
            else:
                oop += amount - cash
                cash = ZERO
        elif action in INCOME_ACTIONS:
            cash += amount

        return CashFlowDelta(
            out_of_pocket=max(oop, ZERO) - self.total_out_of_pocket,
            cash_balance=max(cash, ZERO) - self.current_cash_balance,
        )

    def apply(self, delta: CashFlowDelta) -> None:
        self.total_out_of_pocket += delta.out_of_pocket
        self.current_cash_balance += delta.cash_balance

    def revert(self, delta: CashFlowDelta) -> None:
        """
        回退一笔交易的变化量

        按应用顺序的逆序回退时结果精确。乱序撤销卖出 / 收入导致现金余额
        不足时，缺口视为后续买入的自有资金，转入 OOP。
        """
        oop = self.total_out_of_pocket - delta.out_of_pocket
        cash = self.current_cash_balance - delta.cash_balance
        if cash < ZERO:
            oop -= cash
            cash = ZERO
        self.total_out_of_pocket = max(oop, ZERO)
        self.current_cash_balance = cash

    def copy(self) -> "CashFlowState":
        return CashFlowState(
            total_out_of_pocket=self.total_out_of_pocket,
            current_cash_balance=self.current_cash_balance,
        )

    def restore_from(self, other: "CashFlowState") -> None:
        self.total_out_of_pocket = other.total_out_of_pocket
        self.current_cash_balance = other.current_cash_balance

    def to_dict(self) -> dict[str, Any]:
        """转换为字典"""
        return {
            "total_out_of_pocket": str(self.total_out_of_pocket),
            "current_cash_balance": str(self.current_cash_balance),
            "budget_used": str(self.budget_used),
        }
