"""
卖出匹配

职责:
- 卖出交易与指定钱包匹配
- 剩余股数校验
- 扣除佣金后的已实现盈亏
- 撤销卖出 / 修改卖出价格
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import structlog

from lotledger.core.config import LedgerSettings, get_settings
from lotledger.core.typing import (
    HUNDRED,
    ZERO,
    LedgerErrorCode,
    LedgerResult,
    TxnAction,
    quantize,
    to_decimal,
)
from lotledger.portfolio.lot_book import LotBook
from lotledger.portfolio.wallet import StockSettings, Transaction, Wallet

logger = structlog.get_logger(__name__)


@dataclass
class SaleOutcome:
    """卖出结果"""

    wallet: Wallet
    realized_profit: Decimal
    realized_profit_percent: Decimal
    commission: Decimal = ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "wallet": self.wallet.to_dict(),
            "realized_profit": str(self.realized_profit),
            "realized_profit_percent": str(self.realized_profit_percent),
            "commission": str(self.commission),
        }


class SaleMatcher:
    """
    卖出匹配器

    盈亏计算:
        gross = (卖出价 - 买入价) × 数量
        commission = 卖出价 × 数量 × 佣金% / 100
        net = gross - commission
        net% = net / (买入价 × 数量) × 100
    """

    def __init__(self, config: LedgerSettings | None = None) -> None:
        self.config = config or get_settings().ledger

    def calculate_sale_pl(
        self,
        sell_price: Decimal,
        buy_price: Decimal,
        quantity: Decimal,
        commission_percent: Decimal | None = None,
    ) -> tuple[Decimal, Decimal, Decimal]:
        """
        计算单笔卖出盈亏

        Returns:
            (净盈亏, 净盈亏百分比, 佣金)
        """
        gross = (sell_price - buy_price) * quantity
        commission = ZERO
        if commission_percent is not None and commission_percent > 0:
            commission = sell_price * quantity * (commission_percent / HUNDRED)
        net = gross - commission
        cost = buy_price * quantity
        net_percent = net / cost * HUNDRED if cost > 0 else ZERO
        return net, quantize(net_percent, self.config.percent_quantum), commission

    def _refresh_pl_percent(self, wallet: Wallet) -> None:
        """累计盈亏百分比 = realized_pl / (买入价 × 已卖股数) × 100"""
        cost = wallet.cost_basis_sold
        if wallet.shares_sold <= self.config.share_epsilon or cost <= 0:
            wallet.realized_pl_percent = ZERO
            return
        wallet.realized_pl_percent = quantize(
            wallet.realized_pl / cost * HUNDRED, self.config.percent_quantum
        )

    def validate(self, tx: Transaction, book: LotBook) -> LedgerResult:
        """校验卖出输入 (不修改任何状态)，通过时 data 为被卖出的钱包"""
        if tx.action != TxnAction.SELL:
            return LedgerResult.fail(
                LedgerErrorCode.INVALID_ALLOCATION_INPUT,
                f"交易 {tx.txn_id} 不是卖出: {tx.action.value}",
            )
        wallet = book.get(tx.linked_wallet_id)
        if wallet is None or wallet.stock_id != tx.stock_id or tx.stock_id != book.stock_id:
            return LedgerResult.fail(
                LedgerErrorCode.WALLET_NOT_FOUND,
                f"卖出 {tx.txn_id} 关联的钱包 {tx.linked_wallet_id} 不存在或不属于 {tx.stock_id}",
            )
        if tx.quantity <= 0 or tx.price <= 0:
            return LedgerResult.fail(
                LedgerErrorCode.INVALID_ALLOCATION_INPUT,
                f"卖出数量和价格必须大于 0 (quantity={tx.quantity}, price={tx.price})",
            )
        if tx.quantity > wallet.raw_remaining_shares + self.config.share_epsilon:
            return LedgerResult.fail(
                LedgerErrorCode.INSUFFICIENT_SHARES,
                f"卖出 {tx.quantity} 股超过钱包 {wallet.wallet_id} 剩余 {wallet.remaining_shares} 股",
            )
        return LedgerResult.ok(wallet)

    def sell(
        self,
        tx: Transaction,
        settings: StockSettings,
        book: LotBook,
    ) -> LedgerResult:
        """
        执行卖出

        Args:
            tx: 卖出交易 (linked_wallet_id 必填)
            settings: 股票策略参数 (取佣金)
            book: 该股票的钱包账本 (原地修改)

        Returns:
            LedgerResult，data 为 SaleOutcome
        """
        checked = self.validate(tx, book)
        if not checked.success:
            logger.warning(
                "sell_rejected",
                txn_id=tx.txn_id,
                wallet_id=tx.linked_wallet_id,
                error_code=checked.error_code.value,
                message=checked.error_message,
            )
            return checked

        wallet: Wallet = checked.data

        net, net_percent, commission = self.calculate_sale_pl(
            tx.price, wallet.buy_price, tx.quantity, settings.commission_percent
        )

        wallet.shares_sold += tx.quantity
        wallet.realized_pl += net
        wallet.sell_txn_count += 1
        self._refresh_pl_percent(wallet)

        tx.realized_profit = net
        tx.realized_profit_percent = net_percent
        tx.applied_split_factor = book.split_factor

        logger.info(
            "sell_applied",
            txn_id=tx.txn_id,
            wallet_id=wallet.wallet_id,
            quantity=str(tx.quantity),
            price=str(tx.price),
            realized_profit=str(net),
            remaining=str(wallet.remaining_shares),
        )
        return LedgerResult.ok(
            SaleOutcome(
                wallet=wallet,
                realized_profit=net,
                realized_profit_percent=net_percent,
                commission=commission,
            )
        )

    def reverse(self, tx: Transaction, book: LotBook) -> LedgerResult:
        """
        撤销卖出 (精确逆运算)

        使用交易上记录的 realized_profit 回滚，而不是重新计算

        Returns:
            LedgerResult，data 为 SaleOutcome
        """
        if tx.action != TxnAction.SELL or tx.realized_profit is None:
            return LedgerResult.fail(
                LedgerErrorCode.TRANSACTION_NOT_APPLIED,
                f"卖出 {tx.txn_id} 没有已应用的盈亏记录，无法撤销",
            )
        wallet = book.get(tx.linked_wallet_id)
        if wallet is None or wallet.stock_id != tx.stock_id:
            return LedgerResult.fail(
                LedgerErrorCode.WALLET_NOT_FOUND,
                f"卖出 {tx.txn_id} 关联的钱包 {tx.linked_wallet_id} 不存在",
            )

        quantity = tx.quantity * tx.split_scale(book.split_factor)
        if wallet.shares_sold - quantity < -self.config.share_epsilon:
            return LedgerResult.fail(
                LedgerErrorCode.INSUFFICIENT_SHARES,
                f"钱包 {wallet.wallet_id} 已卖出 {wallet.shares_sold} 股，少于待撤销的 {quantity} 股",
            )

        wallet.shares_sold -= quantity
        wallet.realized_pl -= tx.realized_profit
        wallet.sell_txn_count = max(0, wallet.sell_txn_count - 1)
        self._refresh_pl_percent(wallet)

        outcome = SaleOutcome(
            wallet=wallet,
            realized_profit=tx.realized_profit,
            realized_profit_percent=tx.realized_profit_percent or ZERO,
        )
        tx.realized_profit = None
        tx.realized_profit_percent = None
        tx.applied_split_factor = None

        logger.info(
            "sell_reversed",
            txn_id=tx.txn_id,
            wallet_id=wallet.wallet_id,
            quantity=str(quantity),
            remaining=str(wallet.remaining_shares),
        )
        return LedgerResult.ok(outcome)

    def reprice(
        self,
        tx: Transaction,
        new_price: Decimal,
        settings: StockSettings,
        book: LotBook,
    ) -> LedgerResult:
        """
        修改已应用卖出的价格

        先按旧记录撤销，再以新价格重新卖出。
        卖出后又发生过拆股时，数量换算为当前口径，new_price 也按当前口径给出

        Returns:
            LedgerResult，data 为新的 SaleOutcome
        """
        new_price = to_decimal(new_price)
        if new_price <= 0:
            return LedgerResult.fail(
                LedgerErrorCode.INVALID_ALLOCATION_INPUT,
                f"卖出价格必须大于 0: {new_price}",
            )

        old_price = tx.price
        scale = tx.split_scale(book.split_factor)
        reversed_result = self.reverse(tx, book)
        if not reversed_result.success:
            return reversed_result

        tx.quantity = tx.quantity * scale
        tx.price = new_price
        result = self.sell(tx, settings, book)
        if result.success:
            logger.info(
                "sell_repriced",
                txn_id=tx.txn_id,
                old_price=str(old_price),
                new_price=str(new_price),
            )
        return result
