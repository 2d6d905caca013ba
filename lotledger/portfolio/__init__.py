"""
Portfolio 模块 - 钱包账本

包含:
- wallet: 钱包 / 交易记录 / 股票参数
- cash_flow: 自有资金投入与现金余额
- lot_book: 单只股票的钱包账本
- targets: 佣金调整后的止盈目标价
- allocator: 买入分配与撤销
- sale_matcher: 卖出匹配与盈亏
- split_adjuster: 拆股调整
- accounting: 账本汇总与报表
- processor: 交易路由、加锁与回滚
"""

from lotledger.portfolio.accounting import (
    LedgerSummary,
    StrategySummary,
    summarize,
    wallets_dataframe,
)
from lotledger.portfolio.allocator import AllocationEngine, AllocationOutcome
from lotledger.portfolio.cash_flow import CashFlowDelta, CashFlowState
from lotledger.portfolio.lot_book import BookCheckpoint, LotBook
from lotledger.portfolio.processor import TransactionProcessor
from lotledger.portfolio.sale_matcher import SaleMatcher, SaleOutcome
from lotledger.portfolio.split_adjuster import (
    SplitAdjuster,
    SplitEvent,
    SplitOutcome,
    cumulative_split_factor,
    extract_splits,
    split_adjusted,
)
from lotledger.portfolio.targets import (
    ProfitTargetCalculator,
    RetargetChange,
    TakeProfitSignal,
    TargetResult,
    is_target_reached,
    retarget_wallets,
    take_profit_signal,
    target_percent_for,
)
from lotledger.portfolio.wallet import (
    AllocationSlice,
    SplitRecord,
    StockSettings,
    Transaction,
    Wallet,
)

__all__ = [
    # wallet
    "Wallet",
    "Transaction",
    "StockSettings",
    "AllocationSlice",
    "SplitRecord",
    # cash_flow
    "CashFlowState",
    "CashFlowDelta",
    # lot_book
    "LotBook",
    "BookCheckpoint",
    # targets
    "ProfitTargetCalculator",
    "TargetResult",
    "TakeProfitSignal",
    "RetargetChange",
    "target_percent_for",
    "is_target_reached",
    "take_profit_signal",
    "retarget_wallets",
    # allocator
    "AllocationEngine",
    "AllocationOutcome",
    # sale_matcher
    "SaleMatcher",
    "SaleOutcome",
    # split_adjuster
    "SplitAdjuster",
    "SplitOutcome",
    "SplitEvent",
    "extract_splits",
    "cumulative_split_factor",
    "split_adjusted",
    # accounting
    "StrategySummary",
    "LedgerSummary",
    "summarize",
    "wallets_dataframe",
    # processor
    "TransactionProcessor",
]
