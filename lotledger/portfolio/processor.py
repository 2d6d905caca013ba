"""
交易处理器

职责:
- 按交易动作路由到分配 / 卖出 / 拆股引擎
- 同一股票串行处理 (每只股票一把锁)
- 失败回滚: 账本与交易记录恢复到操作前
- 幂等性: 已应用的交易不会被重复应用
- 撤销与修改交易
- 按交易更新现金流 (OOP / 现金余额)，撤销时回退
"""

import copy
import threading
from dataclasses import fields
from decimal import Decimal

import structlog

from lotledger.core.config import LedgerSettings, get_settings
from lotledger.core.typing import LedgerErrorCode, LedgerResult, TxnAction
from lotledger.ops.logging import ledger_context
from lotledger.portfolio.allocator import AllocationEngine
from lotledger.portfolio.lot_book import LotBook
from lotledger.portfolio.sale_matcher import SaleMatcher
from lotledger.portfolio.split_adjuster import SplitAdjuster
from lotledger.portfolio.targets import ProfitTargetCalculator
from lotledger.portfolio.wallet import StockSettings, Transaction

logger = structlog.get_logger(__name__)


def _restore_transaction(tx: Transaction, backup: Transaction) -> None:
    """将交易记录的字段恢复为备份值"""
    for f in fields(Transaction):
        setattr(tx, f.name, getattr(backup, f.name))


class TransactionProcessor:
    """
    交易处理器

    所有修改账本的入口。调用方负责加载 LotBook 和 StockSettings，
    处理完成后持久化账本与交易记录。
    """

    def __init__(
        self,
        config: LedgerSettings | None = None,
        allocator: AllocationEngine | None = None,
        matcher: SaleMatcher | None = None,
        adjuster: SplitAdjuster | None = None,
    ) -> None:
        self.config = config or get_settings().ledger
        calculator = ProfitTargetCalculator(self.config)
        self.allocator = allocator or AllocationEngine(self.config, calculator)
        self.matcher = matcher or SaleMatcher(self.config)
        self.adjuster = adjuster or SplitAdjuster(self.config, calculator)

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, stock_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(stock_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[stock_id] = lock
            return lock

    @staticmethod
    def _check_stock(tx: Transaction, book: LotBook) -> LedgerResult | None:
        if tx.stock_id != book.stock_id:
            return LedgerResult.fail(
                LedgerErrorCode.INVALID_ALLOCATION_INPUT,
                f"交易 {tx.txn_id} 股票 {tx.stock_id} 与账本 {book.stock_id} 不一致",
            )
        return None

    # ==================== 应用 ====================

    def process(
        self,
        tx: Transaction,
        book: LotBook,
        settings: StockSettings,
    ) -> LedgerResult:
        """
        应用一笔交易

        Args:
            tx: 交易记录 (成功时写入分配记录 / 已实现盈亏)
            book: 该股票的钱包账本
            settings: 股票策略参数

        Returns:
            LedgerResult，失败时账本与交易记录保持不变
        """
        failure = self._check_stock(tx, book)
        if failure is not None:
            return failure

        with self._lock_for(book.stock_id), ledger_context(book.stock_id, tx.txn_id):
            return self._apply(tx, book, settings)

    def _apply(
        self,
        tx: Transaction,
        book: LotBook,
        settings: StockSettings,
    ) -> LedgerResult:
        if tx.txn_id in book.applied_txn_ids:
            logger.warning("duplicate_transaction", action=tx.action.value)
            return LedgerResult.fail(
                LedgerErrorCode.DUPLICATE_TRANSACTION,
                f"交易 {tx.txn_id} 已应用",
            )

        checkpoint = book.checkpoint()
        backup = copy.deepcopy(tx)

        result = self._dispatch(tx, book, settings)
        if not result.success:
            book.rollback(checkpoint)
            _restore_transaction(tx, backup)
            return result

        self._record_cash_flow(tx, book)
        book.applied_txn_ids.add(tx.txn_id)
        logger.info(
            "transaction_applied",
            action=tx.action.value,
            warnings=result.warnings or None,
        )
        return result

    def _dispatch(
        self,
        tx: Transaction,
        book: LotBook,
        settings: StockSettings,
    ) -> LedgerResult:
        if tx.action == TxnAction.BUY:
            return self.allocator.allocate(tx, settings, book)
        if tx.action == TxnAction.SELL:
            return self.matcher.sell(tx, settings, book)
        if tx.action == TxnAction.STOCK_SPLIT:
            if tx.split_ratio is None:
                return LedgerResult.fail(
                    LedgerErrorCode.SPLIT_RATIO_INVALID,
                    f"拆股交易 {tx.txn_id} 缺少拆股比例",
                )
            result = self.adjuster.apply_split(tx.stock_id, tx.split_ratio, book, settings)
            if result.success:
                tx.split_records = result.data.records
            return result
        if tx.action in (TxnAction.DIV, TxnAction.SLP):
            logger.info("income_recorded", action=tx.action.value, amount=str(tx.cash_amount))
            return LedgerResult.ok()

        return LedgerResult.fail(
            LedgerErrorCode.UNSUPPORTED_ACTION,
            f"不支持的交易动作: {tx.action}",
        )

    # ==================== 现金流 ====================

    @staticmethod
    def _record_cash_flow(tx: Transaction, book: LotBook) -> None:
        delta = book.cash_flow.delta_for(tx.action, tx.cash_amount)
        book.cash_flow.apply(delta)
        tx.cash_flow_delta = delta
        if not delta.is_zero:
            logger.info(
                "cash_flow_updated",
                out_of_pocket=str(book.cash_flow.total_out_of_pocket),
                cash_balance=str(book.cash_flow.current_cash_balance),
            )

    @staticmethod
    def _revert_cash_flow(tx: Transaction, book: LotBook) -> None:
        if tx.cash_flow_delta is None:
            return
        book.cash_flow.revert(tx.cash_flow_delta)
        tx.cash_flow_delta = None

    # ==================== 撤销 / 修改 ====================

    def reverse(
        self,
        tx: Transaction,
        book: LotBook,
        settings: StockSettings,
    ) -> LedgerResult:
        """
        撤销一笔已应用的交易 (删除交易)

        Returns:
            LedgerResult，失败时账本与交易记录保持不变
        """
        failure = self._check_stock(tx, book)
        if failure is not None:
            return failure

        with self._lock_for(book.stock_id), ledger_context(book.stock_id, tx.txn_id):
            return self._reverse(tx, book, settings)

    def _reverse(
        self,
        tx: Transaction,
        book: LotBook,
        settings: StockSettings,
    ) -> LedgerResult:
        if tx.txn_id not in book.applied_txn_ids:
            return LedgerResult.fail(
                LedgerErrorCode.TRANSACTION_NOT_APPLIED,
                f"交易 {tx.txn_id} 未应用，无法撤销",
            )

        checkpoint = book.checkpoint()
        backup = copy.deepcopy(tx)

        if tx.action == TxnAction.BUY:
            result = self.allocator.reverse(tx, settings, book)
        elif tx.action == TxnAction.SELL:
            result = self.matcher.reverse(tx, book)
        elif tx.action == TxnAction.STOCK_SPLIT:
            result = self.adjuster.reverse_split(
                tx.stock_id,
                tx.split_ratio or Decimal("1"),
                book,
                settings,
                records=tx.split_records,
            )
            if result.success:
                tx.split_records = {}
        else:
            result = LedgerResult.ok()

        if not result.success:
            book.rollback(checkpoint)
            _restore_transaction(tx, backup)
            return result

        self._revert_cash_flow(tx, book)
        book.applied_txn_ids.discard(tx.txn_id)
        logger.info("transaction_reversed", action=tx.action.value)
        return result

    def update(
        self,
        old: Transaction,
        new: Transaction,
        book: LotBook,
        settings: StockSettings,
    ) -> LedgerResult:
        """
        修改交易: 撤销旧交易后应用新交易

        任一步失败时整体回滚，账本与两笔交易记录都恢复原状

        Returns:
            新交易的 LedgerResult
        """
        for tx in (old, new):
            failure = self._check_stock(tx, book)
            if failure is not None:
                return failure

        with self._lock_for(book.stock_id), ledger_context(book.stock_id, old.txn_id):
            checkpoint = book.checkpoint()
            old_backup = copy.deepcopy(old)
            new_backup = copy.deepcopy(new)

            result = self._reverse(old, book, settings)
            if result.success:
                result = self._apply(new, book, settings)
            if not result.success:
                book.rollback(checkpoint)
                _restore_transaction(old, old_backup)
                _restore_transaction(new, new_backup)
                logger.warning(
                    "transaction_update_rolled_back",
                    error_code=result.error_code.value if result.error_code else None,
                )
                return result

            logger.info("transaction_updated", new_txn_id=new.txn_id)
            return result

    def reprice_sell(
        self,
        tx: Transaction,
        new_price: Decimal,
        book: LotBook,
        settings: StockSettings,
    ) -> LedgerResult:
        """修改已应用卖出交易的价格"""
        failure = self._check_stock(tx, book)
        if failure is not None:
            return failure

        with self._lock_for(book.stock_id), ledger_context(book.stock_id, tx.txn_id):
            if tx.action != TxnAction.SELL or tx.txn_id not in book.applied_txn_ids:
                return LedgerResult.fail(
                    LedgerErrorCode.TRANSACTION_NOT_APPLIED,
                    f"卖出 {tx.txn_id} 未应用，无法修改价格",
                )

            checkpoint = book.checkpoint()
            backup = copy.deepcopy(tx)
            self._revert_cash_flow(tx, book)
            result = self.matcher.reprice(tx, new_price, settings, book)
            if not result.success:
                book.rollback(checkpoint)
                _restore_transaction(tx, backup)
                return result

            self._record_cash_flow(tx, book)
            return result

    def replay(
        self,
        transactions: list[Transaction],
        book: LotBook,
        settings: StockSettings,
    ) -> list[LedgerResult]:
        """按顺序应用一组交易，单笔失败不影响后续交易"""
        results = []
        for tx in transactions:
            result = self.process(tx, book, settings)
            if not result.success:
                logger.warning(
                    "replay_transaction_failed",
                    txn_id=tx.txn_id,
                    error_code=result.error_code.value if result.error_code else None,
                    message=result.error_message,
                )
            results.append(result)
        return results
