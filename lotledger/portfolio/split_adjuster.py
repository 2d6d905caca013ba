"""
拆股调整

职责:
- 拆股时改写该股票所有钱包的买入价与股数
- 金额 (投入 / 已实现盈亏) 保持不变
- 校验成本守恒: Σ(买入价 × 累计股数) 拆股前后一致
- 拆股历史与复权换算
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

import structlog

from lotledger.core.config import LedgerSettings, get_settings
from lotledger.core.typing import (
    LedgerErrorCode,
    LedgerResult,
    TxnAction,
    quantize,
    to_decimal,
)
from lotledger.portfolio.lot_book import LotBook
from lotledger.portfolio.targets import ProfitTargetCalculator, target_percent_for
from lotledger.portfolio.wallet import SplitRecord, StockSettings, Transaction, Wallet

logger = structlog.get_logger(__name__)

ONE = Decimal("1")


@dataclass
class SplitOutcome:
    """拆股调整结果"""

    wallets: list[Wallet] = field(default_factory=list)
    split_ratio: Decimal = ONE
    split_factor: Decimal = ONE  # 调整后账本的累计拆股系数
    cost_basis_before: Decimal = Decimal("0")
    cost_basis_after: Decimal = Decimal("0")
    records: dict[str, SplitRecord] = field(default_factory=dict)  # 拆股前买入价 (按钱包)

    def to_dict(self) -> dict[str, Any]:
        return {
            "wallets": [w.to_dict() for w in self.wallets],
            "split_ratio": str(self.split_ratio),
            "split_factor": str(self.split_factor),
            "cost_basis_before": str(self.cost_basis_before),
            "cost_basis_after": str(self.cost_basis_after),
            "records": {k: v.to_dict() for k, v in self.records.items()},
        }


@dataclass
class SplitEvent:
    """拆股事件 (如 2 表示 2:1 拆股)"""

    date: date
    split_ratio: Decimal

    def __post_init__(self) -> None:
        self.split_ratio = to_decimal(self.split_ratio)


class SplitAdjuster:
    """
    拆股调整器

    每个钱包:
        buy_price /= ratio
        total_shares_qty, shares_sold *= ratio (剩余股数随之变化)
        total_investment, realized_pl 不变

    撤销拆股走精确逆运算: 股数除以 ratio，买入价取拆股时记录的原值
    """

    def __init__(
        self,
        config: LedgerSettings | None = None,
        calculator: ProfitTargetCalculator | None = None,
    ) -> None:
        self.config = config or get_settings().ledger
        self.calculator = calculator or ProfitTargetCalculator(self.config)

    def apply_split(
        self,
        stock_id: str,
        split_ratio: Decimal,
        book: LotBook,
        settings: StockSettings | None = None,
    ) -> LedgerResult:
        """
        对账本中所有钱包应用拆股

        Args:
            stock_id: 股票 ID (必须与账本一致)
            split_ratio: 拆股比例 (> 0)，反向拆股 (合股) 传入小于 1 的值
            book: 钱包账本 (原地修改)
            settings: 股票参数 (取佣金; 钱包没有 target_percent_used 时取 STP/HTP)

        Returns:
            LedgerResult，data 为 SplitOutcome (records 供撤销使用)
        """
        return self._rescale(stock_id, split_ratio, book, settings, inverse=False)

    def reverse_split(
        self,
        stock_id: str,
        split_ratio: Decimal,
        book: LotBook,
        settings: StockSettings | None = None,
        records: dict[str, SplitRecord] | None = None,
    ) -> LedgerResult:
        """
        撤销拆股

        Args:
            split_ratio: 被撤销拆股的原比例
            records: 拆股时的 SplitOutcome.records，用于恢复原买入价与目标价

        Returns:
            LedgerResult，data 为 SplitOutcome
        """
        return self._rescale(
            stock_id, split_ratio, book, settings, inverse=True, records=records
        )

    def _rescale(
        self,
        stock_id: str,
        split_ratio: Decimal,
        book: LotBook,
        settings: StockSettings | None,
        inverse: bool,
        records: dict[str, SplitRecord] | None = None,
    ) -> LedgerResult:
        split_ratio = to_decimal(split_ratio)
        if split_ratio <= 0:
            logger.warning("split_rejected", stock_id=stock_id, split_ratio=str(split_ratio))
            return LedgerResult.fail(
                LedgerErrorCode.SPLIT_RATIO_INVALID,
                f"拆股比例必须大于 0: {split_ratio}",
            )
        if stock_id != book.stock_id:
            return LedgerResult.fail(
                LedgerErrorCode.INVALID_ALLOCATION_INPUT,
                f"拆股股票 {stock_id} 与账本 {book.stock_id} 不一致",
            )

        checkpoint = book.checkpoint()
        before = book.total_cost_basis()
        records = records or {}
        new_records: dict[str, SplitRecord] = {}
        warnings: list[str] = []

        for wallet in book.wallets:
            old_price = wallet.buy_price
            old_target = wallet.target_price
            record = records.get(wallet.wallet_id)
            restored = record is not None and old_price == record.adjusted_price

            if inverse:
                wallet.buy_price = record.buy_price if restored else old_price * split_ratio
                wallet.total_shares_qty = wallet.total_shares_qty / split_ratio
                wallet.shares_sold = wallet.shares_sold / split_ratio
            else:
                wallet.buy_price = old_price / split_ratio
                wallet.total_shares_qty = wallet.total_shares_qty * split_ratio
                wallet.shares_sold = wallet.shares_sold * split_ratio
                new_records[wallet.wallet_id] = SplitRecord(
                    buy_price=old_price,
                    adjusted_price=wallet.buy_price,
                    target_price=old_target,
                )

            if settings is None:
                # 没有股票参数时无法取佣金，目标价按比例换算
                if restored:
                    wallet.target_price = record.target_price
                elif old_target is not None:
                    scaled = old_target * split_ratio if inverse else old_target / split_ratio
                    wallet.target_price = quantize(scaled, self.config.target_quantum)
                continue

            target_percent = wallet.target_percent_used
            if target_percent is None:
                target_percent = target_percent_for(wallet.strategy, settings)
            result = self.calculator.apply_to_wallet(
                wallet, target_percent, settings.commission_percent
            )
            if result.warning and result.warning not in warnings:
                warnings.append(result.warning)

        after = book.total_cost_basis()
        if abs(after - before) > self.config.currency_tolerance:
            book.rollback(checkpoint)
            logger.error(
                "split_conservation_violated",
                stock_id=stock_id,
                before=str(before),
                after=str(after),
                inverse=inverse,
            )
            return LedgerResult.fail(
                LedgerErrorCode.SPLIT_CONSERVATION_VIOLATED,
                f"拆股后总成本 {after} 与拆股前 {before} 不一致",
            )

        if inverse:
            book.split_factor = book.split_factor / split_ratio
        else:
            book.split_factor = book.split_factor * split_ratio
        logger.info(
            "split_reversed" if inverse else "split_applied",
            stock_id=stock_id,
            split_ratio=str(split_ratio),
            wallets=len(book),
            split_factor=str(book.split_factor),
        )
        return LedgerResult.ok(
            SplitOutcome(
                wallets=book.wallets,
                split_ratio=split_ratio,
                split_factor=book.split_factor,
                cost_basis_before=before,
                cost_basis_after=after,
                records=new_records,
            ),
            warnings=warnings,
        )


def extract_splits(transactions: list[Transaction]) -> list[SplitEvent]:
    """从交易记录中提取拆股事件，按日期排序"""
    splits = [
        SplitEvent(date=t.date, split_ratio=t.split_ratio or ONE)
        for t in transactions
        if t.action == TxnAction.STOCK_SPLIT and t.date is not None
    ]
    return sorted(splits, key=lambda s: s.date)


def cumulative_split_factor(splits: list[SplitEvent], as_of: date) -> Decimal:
    """
    计算某日期之后发生的拆股累计系数

    Args:
        splits: 拆股事件列表
        as_of: 交易日期

    Returns:
        累计系数 (1 表示之后没有拆股)
    """
    factor = ONE
    for split in splits:
        if split.date > as_of:
            factor *= split.split_ratio
    return factor


def split_adjusted(
    price: Decimal,
    quantity: Decimal,
    as_of: date,
    splits: list[SplitEvent],
) -> tuple[Decimal, Decimal]:
    """
    将历史交易的价格和数量换算为当前 (复权后) 口径

    Returns:
        (复权价格, 复权数量)
    """
    factor = cumulative_split_factor(splits, as_of)
    return to_decimal(price) / factor, to_decimal(quantity) * factor
