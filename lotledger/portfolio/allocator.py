"""
买入分配引擎

职责:
- 按策略标记 (Swing / Hold / Split) 拆分买入
- 同价钱包合并或新建
- 写入止盈目标价
- 撤销买入 (删除交易时的逆操作)
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import structlog

from lotledger.core.config import LedgerSettings, get_settings
from lotledger.core.typing import (
    HUNDRED,
    INVESTMENT_MISMATCH,
    LedgerErrorCode,
    LedgerResult,
    Strategy,
    StrategyTag,
    TxnAction,
)
from lotledger.portfolio.lot_book import LotBook
from lotledger.portfolio.targets import ProfitTargetCalculator, target_percent_for
from lotledger.portfolio.wallet import AllocationSlice, StockSettings, Transaction, Wallet

logger = structlog.get_logger(__name__)


@dataclass
class AllocationOutcome:
    """买入分配结果"""

    wallets: list[Wallet] = field(default_factory=list)
    created: list[str] = field(default_factory=list)  # 新建钱包 ID
    removed: list[str] = field(default_factory=list)  # 撤销后删除的钱包 ID
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "wallets": [w.to_dict() for w in self.wallets],
            "created": list(self.created),
            "removed": list(self.removed),
            "warnings": list(self.warnings),
        }


class AllocationEngine:
    """
    买入分配引擎

    同一 (策略, 买入价) 的活跃钱包合并:
        total_shares_qty += shares
        total_investment += investment
    已清空的钱包不再重新打开，同价买入会新建钱包。
    """

    def __init__(
        self,
        config: LedgerSettings | None = None,
        calculator: ProfitTargetCalculator | None = None,
    ) -> None:
        self.config = config or get_settings().ledger
        self.calculator = calculator or ProfitTargetCalculator(self.config)

    def split_quantities(
        self,
        tx: Transaction,
        settings: StockSettings,
    ) -> list[tuple[Strategy, Decimal, Decimal]]:
        """
        计算每个策略分到的 (股数, 投入)

        Split 标记按 SHR 拆分，Hold 部分取余数保证两部分之和精确等于原值
        """
        investment = tx.investment if tx.investment is not None else tx.notional

        if tx.strategy_tag == StrategyTag.SWING:
            return [(Strategy.SWING, tx.quantity, investment)]
        if tx.strategy_tag == StrategyTag.HOLD:
            return [(Strategy.HOLD, tx.quantity, investment)]

        # Split 或未标记: 按比例分配
        ratio = settings.shr / HUNDRED
        swing_shares = tx.quantity * ratio
        swing_investment = investment * ratio
        parts = [
            (Strategy.SWING, swing_shares, swing_investment),
            (Strategy.HOLD, tx.quantity - swing_shares, investment - swing_investment),
        ]
        return [p for p in parts if p[1] > 0]

    def validate(self, tx: Transaction, settings: StockSettings, book: LotBook) -> LedgerResult | None:
        """校验买入输入，通过返回 None"""
        if tx.action != TxnAction.BUY:
            return LedgerResult.fail(
                LedgerErrorCode.INVALID_ALLOCATION_INPUT,
                f"交易 {tx.txn_id} 不是买入: {tx.action.value}",
            )
        if tx.stock_id != book.stock_id:
            return LedgerResult.fail(
                LedgerErrorCode.INVALID_ALLOCATION_INPUT,
                f"交易股票 {tx.stock_id} 与账本 {book.stock_id} 不一致",
            )
        if tx.quantity <= 0 or tx.price <= 0:
            return LedgerResult.fail(
                LedgerErrorCode.INVALID_ALLOCATION_INPUT,
                f"买入数量和价格必须大于 0 (quantity={tx.quantity}, price={tx.price})",
            )
        if tx.strategy_tag not in (StrategyTag.SWING, StrategyTag.HOLD) and not settings.shr_in_range:
            return LedgerResult.fail(
                LedgerErrorCode.ALLOCATION_RATIO_OUT_OF_RANGE,
                f"SHR 必须在 [0, 100] 范围内: {settings.shr}",
            )
        return None

    def allocate(
        self,
        tx: Transaction,
        settings: StockSettings,
        book: LotBook,
    ) -> LedgerResult:
        """
        分配一笔买入

        Args:
            tx: 买入交易
            settings: 股票策略参数
            book: 该股票的钱包账本 (原地修改)

        Returns:
            LedgerResult，data 为 AllocationOutcome
        """
        failure = self.validate(tx, settings, book)
        if failure is not None:
            logger.warning(
                "allocation_rejected",
                txn_id=tx.txn_id,
                error_code=failure.error_code.value,
                message=failure.error_message,
            )
            return failure

        outcome = AllocationOutcome()

        # 投入与 价格×数量 不符时只告警，投入以交易为准
        if tx.investment is not None:
            diff = abs(tx.investment - tx.notional)
            if diff > self.config.currency_tolerance:
                logger.warning(
                    "investment_mismatch",
                    txn_id=tx.txn_id,
                    investment=str(tx.investment),
                    notional=str(tx.notional),
                )
                outcome.warnings.append(INVESTMENT_MISMATCH)

        slices: list[AllocationSlice] = []
        for strategy, shares, investment in self.split_quantities(tx, settings):
            wallet = book.find(strategy, tx.price, self.config.price_match_tolerance)
            created = wallet is None
            if wallet is None:
                wallet = book.add(
                    Wallet(
                        stock_id=book.stock_id,
                        strategy=strategy,
                        buy_price=tx.price,
                        total_shares_qty=shares,
                        total_investment=investment,
                        share_epsilon=self.config.share_epsilon,
                    )
                )
                outcome.created.append(wallet.wallet_id)
                logger.info(
                    "wallet_created",
                    wallet_id=wallet.wallet_id,
                    strategy=strategy.value,
                    buy_price=str(tx.price),
                    shares=str(shares),
                )
            else:
                wallet.total_shares_qty += shares
                wallet.total_investment += investment
                logger.info(
                    "wallet_merged",
                    wallet_id=wallet.wallet_id,
                    strategy=strategy.value,
                    buy_price=str(wallet.buy_price),
                    shares=str(shares),
                    total_shares=str(wallet.total_shares_qty),
                )

            target = self.calculator.apply_to_wallet(
                wallet,
                target_percent_for(strategy, settings),
                settings.commission_percent,
            )
            if target.warning and target.warning not in outcome.warnings:
                outcome.warnings.append(target.warning)

            slices.append(
                AllocationSlice(
                    wallet_id=wallet.wallet_id,
                    strategy=strategy,
                    shares=shares,
                    investment=investment,
                    created=created,
                )
            )
            outcome.wallets.append(wallet)

        tx.allocations = slices
        tx.applied_split_factor = book.split_factor
        return LedgerResult.ok(outcome, warnings=outcome.warnings)

    def reverse(
        self,
        tx: Transaction,
        settings: StockSettings,
        book: LotBook,
    ) -> LedgerResult:
        """
        撤销一笔买入

        从分配记录中的每个钱包扣回股数和投入。所有校验在修改前完成:
        若该笔买入的股数已被卖出，返回 InsufficientShares。

        Returns:
            LedgerResult，data 为 AllocationOutcome
        """
        if tx.action != TxnAction.BUY or not tx.allocations:
            return LedgerResult.fail(
                LedgerErrorCode.INVALID_ALLOCATION_INPUT,
                f"交易 {tx.txn_id} 没有可撤销的买入分配记录",
            )

        eps = self.config.share_epsilon
        scale = tx.split_scale(book.split_factor)
        targets: list[tuple[AllocationSlice, Wallet]] = []
        for part in tx.allocations:
            wallet = book.get(part.wallet_id)
            if wallet is None:
                return LedgerResult.fail(
                    LedgerErrorCode.WALLET_NOT_FOUND,
                    f"找不到买入 {tx.txn_id} 分配的钱包 {part.wallet_id}",
                )
            if wallet.raw_remaining_shares - part.shares * scale < -eps:
                logger.warning(
                    "buy_reversal_blocked",
                    txn_id=tx.txn_id,
                    wallet_id=wallet.wallet_id,
                    remaining=str(wallet.remaining_shares),
                    shares=str(part.shares),
                )
                return LedgerResult.fail(
                    LedgerErrorCode.INSUFFICIENT_SHARES,
                    f"钱包 {wallet.wallet_id} (买入价 {wallet.buy_price}) 剩余 "
                    f"{wallet.remaining_shares} 股，已有卖出，无法撤销 {part.shares * scale} 股",
                )
            targets.append((part, wallet))

        outcome = AllocationOutcome()
        for part, wallet in targets:
            wallet.total_shares_qty -= part.shares * scale
            wallet.total_investment -= part.investment

            if wallet.total_shares_qty <= eps and not wallet.has_sales:
                book.remove(wallet.wallet_id)
                outcome.removed.append(wallet.wallet_id)
                logger.info("wallet_removed", wallet_id=wallet.wallet_id)
                continue

            self.calculator.apply_to_wallet(
                wallet,
                target_percent_for(wallet.strategy, settings),
                settings.commission_percent,
            )
            outcome.wallets.append(wallet)

        tx.allocations = []
        tx.applied_split_factor = None

        logger.info(
            "buy_reversed",
            txn_id=tx.txn_id,
            updated=len(outcome.wallets),
            removed=len(outcome.removed),
        )
        return LedgerResult.ok(outcome)
