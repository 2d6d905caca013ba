"""
账本核算

职责:
- 按策略汇总剩余持仓、成本与已实现盈亏
- 按当前价计算未实现盈亏与止盈就绪钱包
- 现金流 (OOP / 现金余额) 与初始资金回报率 ROIC
- 钱包明细导出 (pandas DataFrame)
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import pandas as pd

from lotledger.core.typing import ZERO, Strategy, TxnAction, quantize, to_optional_decimal
from lotledger.portfolio.cash_flow import CashFlowState
from lotledger.portfolio.lot_book import LotBook
from lotledger.portfolio.targets import is_target_reached
from lotledger.portfolio.wallet import Transaction

ROIC_QUANTUM = Decimal("0.01")

WALLET_COLUMNS = [
    "wallet_id",
    "strategy",
    "buy_price",
    "total_shares_qty",
    "total_investment",
    "shares_sold",
    "remaining_shares",
    "realized_pl",
    "realized_pl_percent",
    "target_price",
    "target_percent_used",
    "sell_txn_count",
]


@dataclass
class StrategySummary:
    """单个策略的汇总"""

    strategy: Strategy
    active_wallets: int = 0
    remaining_shares: Decimal = ZERO
    cost_basis: Decimal = ZERO  # 剩余持仓成本
    realized_pl: Decimal = ZERO  # 钱包累计已实现盈亏
    realized_pl_from_sells: Decimal = ZERO  # 卖出交易记录的盈亏合计
    sell_count: int = 0
    unrealized_pl: Decimal | None = None
    market_value: Decimal | None = None
    ready_to_sell: list[str] = field(default_factory=list)

    @property
    def average_cost(self) -> Decimal:
        """剩余持仓均价"""
        if self.remaining_shares <= 0:
            return ZERO
        return self.cost_basis / self.remaining_shares

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "active_wallets": self.active_wallets,
            "remaining_shares": str(self.remaining_shares),
            "cost_basis": str(self.cost_basis),
            "average_cost": str(self.average_cost),
            "realized_pl": str(self.realized_pl),
            "realized_pl_from_sells": str(self.realized_pl_from_sells),
            "sell_count": self.sell_count,
            "unrealized_pl": (
                str(self.unrealized_pl) if self.unrealized_pl is not None else None
            ),
            "market_value": (
                str(self.market_value) if self.market_value is not None else None
            ),
            "ready_to_sell": list(self.ready_to_sell),
        }


@dataclass
class LedgerSummary:
    """单只股票的账本汇总"""

    stock_id: str
    strategies: dict[Strategy, StrategySummary]
    current_price: Decimal | None = None
    split_factor: Decimal = Decimal("1")
    cash_flow: CashFlowState = field(default_factory=CashFlowState)

    @property
    def total_market_value(self) -> Decimal | None:
        if self.current_price is None:
            return None
        return sum(
            (s.market_value or ZERO for s in self.strategies.values()),
            start=ZERO,
        )

    @property
    def roic(self) -> Decimal | None:
        """(现金余额 + 持仓市值 - OOP) / OOP × 100，需要当前价"""
        market_value = self.total_market_value
        if market_value is None:
            return None
        roic = self.cash_flow.roic(market_value)
        return quantize(roic, ROIC_QUANTUM) if roic is not None else None

    @property
    def total_remaining_shares(self) -> Decimal:
        return sum((s.remaining_shares for s in self.strategies.values()), start=ZERO)

    @property
    def total_cost_basis(self) -> Decimal:
        return sum((s.cost_basis for s in self.strategies.values()), start=ZERO)

    @property
    def total_realized_pl(self) -> Decimal:
        return sum((s.realized_pl for s in self.strategies.values()), start=ZERO)

    @property
    def total_unrealized_pl(self) -> Decimal | None:
        if self.current_price is None:
            return None
        return sum(
            (s.unrealized_pl or ZERO for s in self.strategies.values()),
            start=ZERO,
        )

    def to_dict(self) -> dict[str, Any]:
        unrealized = self.total_unrealized_pl
        roic = self.roic
        return {
            "stock_id": self.stock_id,
            "current_price": (
                str(self.current_price) if self.current_price is not None else None
            ),
            "split_factor": str(self.split_factor),
            "strategies": {k.value: v.to_dict() for k, v in self.strategies.items()},
            "total_remaining_shares": str(self.total_remaining_shares),
            "total_cost_basis": str(self.total_cost_basis),
            "total_realized_pl": str(self.total_realized_pl),
            "total_unrealized_pl": str(unrealized) if unrealized is not None else None,
            "cash_flow": self.cash_flow.to_dict(),
            "roic": str(roic) if roic is not None else None,
        }


def summarize(
    book: LotBook,
    transactions: list[Transaction] | None = None,
    current_price: Decimal | None = None,
) -> LedgerSummary:
    """
    生成账本汇总

    Args:
        book: 钱包账本
        transactions: 交易记录 (用于按卖出记录汇总盈亏，可选)
        current_price: 当前价格 (用于未实现盈亏，可选)

    Returns:
        LedgerSummary
    """
    price = to_optional_decimal(current_price)
    strategies = {s: StrategySummary(strategy=s) for s in Strategy}

    for wallet in book.wallets:
        summary = strategies[wallet.strategy]
        summary.realized_pl += wallet.realized_pl
        if wallet.is_depleted:
            continue
        summary.active_wallets += 1
        summary.remaining_shares += wallet.remaining_shares
        summary.cost_basis += wallet.cost_basis_remaining
        if price is not None:
            summary.unrealized_pl = (summary.unrealized_pl or ZERO) + wallet.unrealized_pl(price)
            summary.market_value = (summary.market_value or ZERO) + wallet.market_value(price)
            if is_target_reached(wallet, price):
                summary.ready_to_sell.append(wallet.wallet_id)

    # 卖出记录上已存储扣佣后的盈亏，无需再查买入价
    for tx in transactions or []:
        if tx.action != TxnAction.SELL or tx.realized_profit is None:
            continue
        wallet = book.get(tx.linked_wallet_id)
        if wallet is None:
            continue
        summary = strategies[wallet.strategy]
        summary.realized_pl_from_sells += tx.realized_profit
        summary.sell_count += 1

    return LedgerSummary(
        stock_id=book.stock_id,
        strategies=strategies,
        current_price=price,
        split_factor=book.split_factor,
        cash_flow=book.cash_flow.copy(),
    )


def wallets_dataframe(book: LotBook, active_only: bool = False) -> pd.DataFrame:
    """
    钱包明细表

    金额与股数列转换为 float 便于展示，精确值请使用 Wallet 对象

    Returns:
        每个钱包一行的 DataFrame，按策略和买入价排序
    """
    wallets = book.active_wallets if active_only else book.wallets
    if not wallets:
        return pd.DataFrame(columns=WALLET_COLUMNS)

    rows = []
    for w in wallets:
        rows.append({
            "wallet_id": w.wallet_id,
            "strategy": w.strategy.value,
            "buy_price": float(w.buy_price),
            "total_shares_qty": float(w.total_shares_qty),
            "total_investment": float(w.total_investment),
            "shares_sold": float(w.shares_sold),
            "remaining_shares": float(w.remaining_shares),
            "realized_pl": float(w.realized_pl),
            "realized_pl_percent": float(w.realized_pl_percent),
            "target_price": float(w.target_price) if w.target_price is not None else None,
            "target_percent_used": (
                float(w.target_percent_used) if w.target_percent_used is not None else None
            ),
            "sell_txn_count": w.sell_txn_count,
        })

    df = pd.DataFrame(rows, columns=WALLET_COLUMNS)
    return df.sort_values(["strategy", "buy_price"]).reset_index(drop=True)
