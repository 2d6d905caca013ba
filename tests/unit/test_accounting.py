"""
账本核算单元测试
"""

from decimal import Decimal

import pytest

from lotledger.core.config import LedgerSettings
from lotledger.core.typing import Strategy, StrategyTag, TxnAction
from lotledger.portfolio.accounting import WALLET_COLUMNS, summarize, wallets_dataframe
from lotledger.portfolio.lot_book import LotBook
from lotledger.portfolio.processor import TransactionProcessor
from lotledger.portfolio.wallet import StockSettings, Transaction


class TestLedgerSummary:
    """summarize / wallets_dataframe 测试"""

    @pytest.fixture
    def ledger(self) -> tuple[LotBook, list[Transaction]]:
        """买入 20 股 (SHR=50) 后卖出 Swing 钱包 4 股"""
        book = LotBook("AAPL")
        settings = StockSettings(stp=Decimal("10"), htp=Decimal("25"), shr=Decimal("50"))
        processor = TransactionProcessor(LedgerSettings())

        first = Transaction(
            stock_id="AAPL",
            action=TxnAction.BUY,
            strategy_tag=StrategyTag.SPLIT,
            price=Decimal("100"),
            quantity=Decimal("20"),
        )
        processor.process(first, book, settings)
        swing = book.find(Strategy.SWING, Decimal("100"))
        second = Transaction(
            stock_id="AAPL",
            action=TxnAction.SELL,
            price=Decimal("115"),
            quantity=Decimal("4"),
            linked_wallet_id=swing.wallet_id,
        )
        processor.process(second, book, settings)
        return book, [first, second]

    def test_summary_by_strategy(self, ledger: tuple[LotBook, list[Transaction]]) -> None:
        """测试按策略汇总"""
        book, txns = ledger

        summary = summarize(book, txns)
        swing = summary.strategies[Strategy.SWING]
        hold = summary.strategies[Strategy.HOLD]

        assert swing.active_wallets == 1
        assert swing.remaining_shares == Decimal("6")
        assert swing.cost_basis == Decimal("600")
        assert swing.average_cost == Decimal("100")
        assert swing.realized_pl == Decimal("60")
        assert swing.realized_pl_from_sells == Decimal("60")
        assert swing.sell_count == 1
        assert hold.remaining_shares == Decimal("10")
        assert hold.realized_pl == Decimal("0")
        assert summary.total_remaining_shares == Decimal("16")
        assert summary.total_unrealized_pl is None

    def test_summary_with_current_price(self, ledger: tuple[LotBook, list[Transaction]]) -> None:
        """测试按当前价计算未实现盈亏与止盈就绪钱包"""
        book, _ = ledger

        summary = summarize(book, current_price=Decimal("112"))
        swing = summary.strategies[Strategy.SWING]
        hold = summary.strategies[Strategy.HOLD]

        assert swing.unrealized_pl == Decimal("72")
        assert swing.market_value == Decimal("672")
        assert len(swing.ready_to_sell) == 1
        assert hold.ready_to_sell == []
        assert summary.total_unrealized_pl == Decimal("192")

    def test_depleted_wallet_excluded(self) -> None:
        """测试已清空钱包只计入已实现盈亏"""
        book = LotBook("AAPL")
        settings = StockSettings(stp=Decimal("10"))
        processor = TransactionProcessor(LedgerSettings())
        processor.process(
            Transaction(stock_id="AAPL", action=TxnAction.BUY, strategy_tag=StrategyTag.SWING, price=Decimal("10"), quantity=Decimal("5")),
            book,
            settings,
        )
        processor.process(
            Transaction(stock_id="AAPL", action=TxnAction.SELL, price=Decimal("12"), quantity=Decimal("5"), linked_wallet_id=book.wallets[0].wallet_id),
            book,
            settings,
        )

        swing = summarize(book).strategies[Strategy.SWING]

        assert swing.active_wallets == 0
        assert swing.remaining_shares == Decimal("0")
        assert swing.realized_pl == Decimal("10")

    def test_cash_flow_and_roic(self, ledger: tuple[LotBook, list[Transaction]]) -> None:
        """测试汇总中的现金流与 ROIC"""
        book, _ = ledger

        summary = summarize(book, current_price=Decimal("100"))

        assert summary.cash_flow.total_out_of_pocket == Decimal("2000")
        assert summary.cash_flow.current_cash_balance == Decimal("460")
        assert summary.total_market_value == Decimal("1600")
        assert summary.roic == Decimal("3.00")
        assert summarize(book).roic is None

    def test_to_dict(self, ledger: tuple[LotBook, list[Transaction]]) -> None:
        """测试字典转换"""
        book, txns = ledger

        d = summarize(book, txns, Decimal("100")).to_dict()

        assert d["stock_id"] == "AAPL"
        assert set(d["strategies"]) == {"Swing", "Hold"}
        assert Decimal(d["total_unrealized_pl"]) == 0
        assert d["cash_flow"]["total_out_of_pocket"] == "2000"

    def test_wallets_dataframe(self, ledger: tuple[LotBook, list[Transaction]]) -> None:
        """测试钱包明细表"""
        book, _ = ledger

        df = wallets_dataframe(book)

        assert list(df.columns) == WALLET_COLUMNS
        assert len(df) == 2
        assert list(df["strategy"]) == ["Hold", "Swing"]
        assert df.loc[df["strategy"] == "Swing", "remaining_shares"].iloc[0] == 6.0

    def test_empty_dataframe(self) -> None:
        """测试空账本"""
        df = wallets_dataframe(LotBook("AAPL"))

        assert df.empty
        assert list(df.columns) == WALLET_COLUMNS
