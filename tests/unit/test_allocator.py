"""
买入分配引擎单元测试
"""

from decimal import Decimal

import pytest

from lotledger.core.config import LedgerSettings
from lotledger.core.typing import (
    INVESTMENT_MISMATCH,
    LedgerErrorCode,
    Strategy,
    StrategyTag,
    TxnAction,
)
from lotledger.portfolio.allocator import AllocationEngine
from lotledger.portfolio.lot_book import LotBook
from lotledger.portfolio.sale_matcher import SaleMatcher
from lotledger.portfolio.wallet import StockSettings, Transaction


def buy(
    quantity: str,
    price: str,
    tag: StrategyTag | None = StrategyTag.SPLIT,
    investment: str | None = None,
) -> Transaction:
    return Transaction(
        stock_id="AAPL",
        action=TxnAction.BUY,
        strategy_tag=tag,
        price=Decimal(price),
        quantity=Decimal(quantity),
        investment=Decimal(investment) if investment is not None else None,
    )


class TestAllocationEngine:
    """AllocationEngine 测试"""

    @pytest.fixture
    def engine(self) -> AllocationEngine:
        return AllocationEngine(LedgerSettings())

    @pytest.fixture
    def settings(self) -> StockSettings:
        return StockSettings(stp=Decimal("10"), htp=Decimal("25"), shr=Decimal("70"))

    @pytest.fixture
    def book(self) -> LotBook:
        return LotBook("AAPL")

    def test_split_buy_by_shr(
        self, engine: AllocationEngine, settings: StockSettings, book: LotBook
    ) -> None:
        """测试 SHR=70 时 20 股按 14 / 6 拆分"""
        result = engine.allocate(buy("20", "10", investment="200"), settings, book)

        assert result.success is True
        swing = book.find(Strategy.SWING, Decimal("10"))
        hold = book.find(Strategy.HOLD, Decimal("10"))
        assert swing.total_shares_qty == Decimal("14")
        assert swing.total_investment == Decimal("140")
        assert hold.total_shares_qty == Decimal("6")
        assert hold.total_investment == Decimal("60")

    def test_untagged_buy_treated_as_split(
        self, engine: AllocationEngine, settings: StockSettings, book: LotBook
    ) -> None:
        """测试未标记的买入按 SHR 拆分"""
        engine.allocate(buy("10", "10", tag=None), settings, book)

        assert len(book) == 2

    def test_split_parts_sum_exactly(self, engine: AllocationEngine, book: LotBook) -> None:
        """测试拆分后两部分之和精确等于原值"""
        settings = StockSettings(shr=Decimal("33.3333"))
        engine.allocate(buy("7", "13.37"), settings, book)

        assert sum(w.total_shares_qty for w in book.wallets) == Decimal("7")
        assert sum(w.total_investment for w in book.wallets) == Decimal("93.59")

    def test_tagged_buy_single_wallet(
        self, engine: AllocationEngine, settings: StockSettings, book: LotBook
    ) -> None:
        """测试 Swing / Hold 标记只分配到一个策略"""
        engine.allocate(buy("5", "10", tag=StrategyTag.HOLD), settings, book)

        assert len(book) == 1
        assert book.wallets[0].strategy == Strategy.HOLD
        assert book.wallets[0].target_price == Decimal("12.5")

    @pytest.mark.parametrize("shr,strategy", [("100", Strategy.SWING), ("0", Strategy.HOLD)])
    def test_boundary_shr_skips_empty_part(
        self, engine: AllocationEngine, book: LotBook, shr: str, strategy: Strategy
    ) -> None:
        """测试 SHR 为 0 或 100 时不创建空钱包"""
        engine.allocate(buy("10", "10"), StockSettings(shr=Decimal(shr)), book)

        assert len(book) == 1
        assert book.wallets[0].strategy == strategy

    def test_merge_same_price(
        self, engine: AllocationEngine, settings: StockSettings, book: LotBook
    ) -> None:
        """测试同价同策略合并，与一次性买入等价"""
        engine.allocate(buy("3", "10", tag=StrategyTag.SWING), settings, book)
        engine.allocate(buy("4", "10", tag=StrategyTag.SWING), settings, book)

        single = LotBook("AAPL")
        engine.allocate(buy("7", "10", tag=StrategyTag.SWING), settings, single)

        assert len(book) == 1
        merged = book.wallets[0]
        assert merged.total_shares_qty == single.wallets[0].total_shares_qty == Decimal("7")
        assert merged.total_investment == single.wallets[0].total_investment
        assert merged.target_price == single.wallets[0].target_price

    def test_different_price_new_wallet(
        self, engine: AllocationEngine, settings: StockSettings, book: LotBook
    ) -> None:
        """测试不同价格新建钱包"""
        engine.allocate(buy("3", "10", tag=StrategyTag.SWING), settings, book)
        engine.allocate(buy("3", "10.01", tag=StrategyTag.SWING), settings, book)

        assert len(book) == 2

    def test_price_match_tolerance(self, settings: StockSettings, book: LotBook) -> None:
        """测试配置价格容差后近似价格合并"""
        engine = AllocationEngine(LedgerSettings(price_match_tolerance=Decimal("0.01")))
        engine.allocate(buy("3", "10", tag=StrategyTag.SWING), settings, book)
        engine.allocate(buy("3", "10.005", tag=StrategyTag.SWING), settings, book)

        assert len(book) == 1
        assert book.wallets[0].buy_price == Decimal("10")

    def test_commission_adjusted_target(self, engine: AllocationEngine, book: LotBook) -> None:
        """测试写入佣金调整后的目标价"""
        settings = StockSettings(stp=Decimal("10"), commission_percent=Decimal("2"))
        engine.allocate(buy("1", "100", tag=StrategyTag.SWING), settings, book)

        assert book.wallets[0].target_price == Decimal("112.2449")

    def test_invalid_quantity(
        self, engine: AllocationEngine, settings: StockSettings, book: LotBook
    ) -> None:
        """测试非正数量被拒绝"""
        result = engine.allocate(buy("0", "10"), settings, book)

        assert result.success is False
        assert result.error_code == LedgerErrorCode.INVALID_ALLOCATION_INPUT
        assert len(book) == 0

    def test_shr_out_of_range(self, engine: AllocationEngine, book: LotBook) -> None:
        """测试 SHR 越界被拒绝"""
        result = engine.allocate(buy("10", "10"), StockSettings(shr=Decimal("120")), book)

        assert result.error_code == LedgerErrorCode.ALLOCATION_RATIO_OUT_OF_RANGE
        assert len(book) == 0

    def test_shr_ignored_for_tagged_buy(self, engine: AllocationEngine, book: LotBook) -> None:
        """测试带策略标记的买入不校验 SHR"""
        result = engine.allocate(
            buy("10", "10", tag=StrategyTag.SWING), StockSettings(shr=Decimal("120")), book
        )

        assert result.success is True

    def test_investment_mismatch_warning(
        self, engine: AllocationEngine, settings: StockSettings, book: LotBook
    ) -> None:
        """测试投入与成交额不符只告警"""
        result = engine.allocate(
            buy("10", "10", tag=StrategyTag.SWING, investment="105"), settings, book
        )

        assert result.success is True
        assert INVESTMENT_MISMATCH in result.warnings
        assert book.wallets[0].total_investment == Decimal("105")

    def test_allocation_slices_recorded(
        self, engine: AllocationEngine, settings: StockSettings, book: LotBook
    ) -> None:
        """测试记录分配明细"""
        tx = buy("20", "10")
        engine.allocate(tx, settings, book)

        assert len(tx.allocations) == 2
        assert all(s.created for s in tx.allocations)
        assert tx.applied_split_factor == Decimal("1")


class TestAllocationReverse:
    """撤销买入测试"""

    @pytest.fixture
    def engine(self) -> AllocationEngine:
        return AllocationEngine(LedgerSettings())

    @pytest.fixture
    def settings(self) -> StockSettings:
        return StockSettings(stp=Decimal("10"), htp=Decimal("25"), shr=Decimal("50"))

    def test_reverse_removes_new_wallets(
        self, engine: AllocationEngine, settings: StockSettings
    ) -> None:
        """测试撤销后删除新建的钱包"""
        book = LotBook("AAPL")
        tx = buy("10", "10")
        engine.allocate(tx, settings, book)

        result = engine.reverse(tx, settings, book)

        assert result.success is True
        assert len(book) == 0
        assert len(result.data.removed) == 2
        assert tx.allocations == []

    def test_reverse_restores_merged_wallet(
        self, engine: AllocationEngine, settings: StockSettings
    ) -> None:
        """测试撤销合并的买入恢复原钱包"""
        book = LotBook("AAPL")
        engine.allocate(buy("3", "10", tag=StrategyTag.SWING), settings, book)
        before = book.wallets[0].to_dict()

        second = buy("4", "10", tag=StrategyTag.SWING)
        engine.allocate(second, settings, book)
        engine.reverse(second, settings, book)

        assert len(book) == 1
        assert book.wallets[0].to_dict() == before

    def test_reverse_blocked_by_sales(
        self, engine: AllocationEngine, settings: StockSettings
    ) -> None:
        """测试已卖出的股数无法撤销买入，账本不变"""
        book = LotBook("AAPL")
        tx = buy("10", "100", tag=StrategyTag.SWING)
        engine.allocate(tx, settings, book)
        wallet = book.wallets[0]

        sell = Transaction(
            stock_id="AAPL",
            action=TxnAction.SELL,
            price=Decimal("110"),
            quantity=Decimal("8"),
            linked_wallet_id=wallet.wallet_id,
        )
        SaleMatcher(LedgerSettings()).sell(sell, settings, book)
        before = wallet.to_dict()

        result = engine.reverse(tx, settings, book)

        assert result.error_code == LedgerErrorCode.INSUFFICIENT_SHARES
        assert wallet.to_dict() == before
        assert len(tx.allocations) == 1

    def test_reverse_without_allocations(
        self, engine: AllocationEngine, settings: StockSettings
    ) -> None:
        """测试没有分配记录的买入无法撤销"""
        result = engine.reverse(buy("10", "10"), settings, LotBook("AAPL"))

        assert result.error_code == LedgerErrorCode.INVALID_ALLOCATION_INPUT
