"""
钱包 (价格批次) 与交易记录

职责:
- 钱包对象定义 (按策略 + 买入价分桶的持仓批次)
- 交易记录定义 (Buy / Sell / Div / StockSplit)
- 股票策略参数 (STP / HTP / SHR / 佣金)
"""

from dataclasses import dataclass, field, fields
from datetime import date as date_type
from decimal import Decimal
from typing import Any
from uuid import uuid4

from lotledger.core.typing import (
    HUNDRED,
    ZERO,
    Strategy,
    StrategyTag,
    TxnAction,
    to_decimal,
    to_optional_decimal,
)
from lotledger.portfolio.cash_flow import INCOME_ACTIONS, CashFlowDelta

# 股数归零容差默认值，与 LedgerSettings.share_epsilon 一致
DEFAULT_SHARE_EPSILON = Decimal("0.0001")


@dataclass
class StockSettings:
    """
    单只股票的策略参数 (只读输入)

    百分比字段均以百分数表示，如 10 表示 10%
    """

    pdp: Decimal = ZERO  # 价格回撤百分比 (入场信号用)
    stp: Decimal = ZERO  # Swing 止盈百分比
    htp: Decimal = ZERO  # Hold 止盈百分比
    shr: Decimal = Decimal("50")  # 分配到 Swing 的比例 (0-100)
    plr: Decimal = ZERO  # 盈亏比 (仅报表用)
    commission_percent: Decimal | None = None

    def __post_init__(self) -> None:
        """确保数值类型正确"""
        self.pdp = to_decimal(self.pdp)
        self.stp = to_decimal(self.stp)
        self.htp = to_decimal(self.htp)
        self.shr = to_decimal(self.shr)
        self.plr = to_decimal(self.plr)
        self.commission_percent = to_optional_decimal(self.commission_percent)

    @property
    def shr_in_range(self) -> bool:
        return ZERO <= self.shr <= HUNDRED

    def to_dict(self) -> dict[str, Any]:
        return {
            "pdp": str(self.pdp),
            "stp": str(self.stp),
            "htp": str(self.htp),
            "shr": str(self.shr),
            "plr": str(self.plr),
            "commission_percent": (
                str(self.commission_percent)
                if self.commission_percent is not None
                else None
            ),
        }


@dataclass
class Wallet:
    """
    钱包 (价格批次)

    以 (策略, 买入价) 为键跟踪同一价位累计买入的股数:
    - 累计投入与股数 (同价买入时合并)
    - 已卖出股数与已实现盈亏
    - 佣金调整后的止盈目标价
    """

    stock_id: str
    strategy: Strategy
    buy_price: Decimal
    total_shares_qty: Decimal = ZERO
    total_investment: Decimal = ZERO
    shares_sold: Decimal = ZERO
    realized_pl: Decimal = ZERO
    realized_pl_percent: Decimal = ZERO
    target_price: Decimal | None = None
    target_percent_used: Decimal | None = None
    sell_txn_count: int = 0
    wallet_id: str = field(default_factory=lambda: str(uuid4()))
    share_epsilon: Decimal = DEFAULT_SHARE_EPSILON

    def __post_init__(self) -> None:
        """确保数值类型正确"""
        self.strategy = Strategy(self.strategy)
        self.buy_price = to_decimal(self.buy_price)
        self.total_shares_qty = to_decimal(self.total_shares_qty)
        self.total_investment = to_decimal(self.total_investment)
        self.shares_sold = to_decimal(self.shares_sold)
        self.realized_pl = to_decimal(self.realized_pl)
        self.realized_pl_percent = to_decimal(self.realized_pl_percent)
        self.target_price = to_optional_decimal(self.target_price)
        self.target_percent_used = to_optional_decimal(self.target_percent_used)
        self.share_epsilon = to_decimal(self.share_epsilon)

    @property
    def raw_remaining_shares(self) -> Decimal:
        """未做容差处理的剩余股数"""
        return self.total_shares_qty - self.shares_sold

    @property
    def remaining_shares(self) -> Decimal:
        """剩余股数 (绝对值小于容差时视为 0)"""
        remaining = self.raw_remaining_shares
        if abs(remaining) < self.share_epsilon:
            return ZERO
        return remaining

    @property
    def is_depleted(self) -> bool:
        """是否已全部卖出"""
        return self.raw_remaining_shares < self.share_epsilon

    @property
    def has_sales(self) -> bool:
        return self.sell_txn_count > 0 or self.shares_sold > self.share_epsilon

    @property
    def cost_basis_sold(self) -> Decimal:
        """已卖出部分的成本"""
        return self.buy_price * self.shares_sold

    @property
    def cost_basis_remaining(self) -> Decimal:
        """剩余持仓成本"""
        return self.buy_price * self.remaining_shares

    def market_value(self, price: Decimal) -> Decimal:
        """剩余持仓市值"""
        return self.remaining_shares * price

    def unrealized_pl(self, price: Decimal) -> Decimal:
        """
        计算未实现盈亏

        Args:
            price: 当前市场价格

        Returns:
            未实现盈亏 (不含佣金)
        """
        if self.is_depleted:
            return ZERO
        return self.remaining_shares * (price - self.buy_price)

    def copy(self) -> "Wallet":
        """创建钱包副本 (保留 wallet_id)"""
        return Wallet(
            stock_id=self.stock_id,
            strategy=self.strategy,
            buy_price=self.buy_price,
            total_shares_qty=self.total_shares_qty,
            total_investment=self.total_investment,
            shares_sold=self.shares_sold,
            realized_pl=self.realized_pl,
            realized_pl_percent=self.realized_pl_percent,
            target_price=self.target_price,
            target_percent_used=self.target_percent_used,
            sell_txn_count=self.sell_txn_count,
            wallet_id=self.wallet_id,
            share_epsilon=self.share_epsilon,
        )

    def restore_from(self, other: "Wallet") -> None:
        """原地恢复为另一个钱包 (通常是自身副本) 的字段值"""
        for f in fields(Wallet):
            setattr(self, f.name, getattr(other, f.name))

    def to_dict(self) -> dict[str, Any]:
        """转换为字典"""
        return {
            "wallet_id": self.wallet_id,
            "stock_id": self.stock_id,
            "strategy": self.strategy.value,
            "buy_price": str(self.buy_price),
            "total_shares_qty": str(self.total_shares_qty),
            "total_investment": str(self.total_investment),
            "shares_sold": str(self.shares_sold),
            "remaining_shares": str(self.remaining_shares),
            "realized_pl": str(self.realized_pl),
            "realized_pl_percent": str(self.realized_pl_percent),
            "target_price": (
                str(self.target_price) if self.target_price is not None else None
            ),
            "target_percent_used": (
                str(self.target_percent_used)
                if self.target_percent_used is not None
                else None
            ),
            "sell_txn_count": self.sell_txn_count,
        }


@dataclass
class AllocationSlice:
    """一笔买入分配到某个钱包的份额 (用于撤销买入)"""

    wallet_id: str
    strategy: Strategy
    shares: Decimal
    investment: Decimal
    created: bool = False  # 该笔买入是否新建了钱包

    def to_dict(self) -> dict[str, Any]:
        return {
            "wallet_id": self.wallet_id,
            "strategy": self.strategy.value,
            "shares": str(self.shares),
            "investment": str(self.investment),
            "created": self.created,
        }


@dataclass
class SplitRecord:
    """拆股前后某个钱包的买入价与目标价 (用于撤销拆股)"""

    buy_price: Decimal
    adjusted_price: Decimal
    target_price: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "buy_price": str(self.buy_price),
            "adjusted_price": str(self.adjusted_price),
            "target_price": (
                str(self.target_price) if self.target_price is not None else None
            ),
        }


@dataclass
class Transaction:
    """
    交易记录

    - Buy: strategy_tag 决定分配方式
    - Sell: linked_wallet_id 指向被卖出的钱包
    - StockSplit: split_ratio 为拆股比例 (如 2 表示 2:1)
    - Div / SLP: 分红 / 出借收入，只影响现金余额
    """

    stock_id: str
    action: TxnAction
    date: date_type | None = None
    strategy_tag: StrategyTag | None = None
    price: Decimal = ZERO
    quantity: Decimal = ZERO
    investment: Decimal | None = None
    amount: Decimal | None = None  # Div / SLP 收入金额
    linked_wallet_id: str | None = None
    realized_profit: Decimal | None = None
    realized_profit_percent: Decimal | None = None
    split_ratio: Decimal | None = None
    applied_split_factor: Decimal | None = None  # 应用时账本的累计拆股系数
    allocations: list[AllocationSlice] = field(default_factory=list)
    split_records: dict[str, SplitRecord] = field(default_factory=dict)
    cash_flow_delta: CashFlowDelta | None = None
    txn_id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self) -> None:
        """确保数值类型正确"""
        self.action = TxnAction(self.action)
        if self.strategy_tag is not None:
            self.strategy_tag = StrategyTag(self.strategy_tag)
        self.price = to_decimal(self.price)
        self.quantity = to_decimal(self.quantity)
        self.investment = to_optional_decimal(self.investment)
        self.amount = to_optional_decimal(self.amount)
        self.realized_profit = to_optional_decimal(self.realized_profit)
        self.realized_profit_percent = to_optional_decimal(
            self.realized_profit_percent
        )
        self.split_ratio = to_optional_decimal(self.split_ratio)
        self.applied_split_factor = to_optional_decimal(self.applied_split_factor)

    @property
    def notional(self) -> Decimal:
        """成交金额"""
        return self.price * self.quantity

    @property
    def cash_amount(self) -> Decimal:
        """
        交易涉及的现金金额

        - Buy: 投入金额 (未填写时取成交金额)
        - Sell: 卖出所得 = 价格 × 数量
        - Div / SLP: amount，未填写时依次取 investment、成交金额
        """
        if self.action == TxnAction.BUY:
            return self.investment if self.investment is not None else self.notional
        if self.action == TxnAction.SELL:
            return self.notional
        if self.action in INCOME_ACTIONS:
            if self.amount is not None:
                return self.amount
            if self.investment is not None:
                return self.investment
            return self.notional
        return ZERO

    def split_scale(self, current_factor: Decimal) -> Decimal:
        """应用后又发生拆股时，原股数需要乘以的系数"""
        if self.applied_split_factor is None:
            return Decimal("1")
        return current_factor / self.applied_split_factor

    def to_dict(self) -> dict[str, Any]:
        """转换为字典"""
        return {
            "txn_id": self.txn_id,
            "stock_id": self.stock_id,
            "action": self.action.value,
            "date": self.date.isoformat() if self.date else None,
            "strategy_tag": self.strategy_tag.value if self.strategy_tag else None,
            "price": str(self.price),
            "quantity": str(self.quantity),
            "investment": (
                str(self.investment) if self.investment is not None else None
            ),
            "amount": str(self.amount) if self.amount is not None else None,
            "linked_wallet_id": self.linked_wallet_id,
            "realized_profit": (
                str(self.realized_profit)
                if self.realized_profit is not None
                else None
            ),
            "realized_profit_percent": (
                str(self.realized_profit_percent)
                if self.realized_profit_percent is not None
                else None
            ),
            "split_ratio": (
                str(self.split_ratio) if self.split_ratio is not None else None
            ),
            "applied_split_factor": (
                str(self.applied_split_factor)
                if self.applied_split_factor is not None
                else None
            ),
            "allocations": [a.to_dict() for a in self.allocations],
            "split_records": {k: v.to_dict() for k, v in self.split_records.items()},
            "cash_flow_delta": (
                self.cash_flow_delta.to_dict() if self.cash_flow_delta else None
            ),
        }
