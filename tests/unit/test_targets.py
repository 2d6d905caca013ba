"""
止盈目标价单元测试

测试范围:
- ProfitTargetCalculator: 除法法佣金调整
- 止盈信号与目标价刷新
"""

from decimal import Decimal

import pytest

from lotledger.core.config import LedgerSettings
from lotledger.core.typing import COMMISSION_OUT_OF_RANGE, Strategy
from lotledger.portfolio.lot_book import LotBook
from lotledger.portfolio.targets import (
    ProfitTargetCalculator,
    is_target_reached,
    retarget_wallets,
    take_profit_signal,
    target_percent_for,
)
from lotledger.portfolio.wallet import StockSettings, Wallet


class TestProfitTargetCalculator:
    """ProfitTargetCalculator 测试"""

    @pytest.fixture
    def calculator(self) -> ProfitTargetCalculator:
        return ProfitTargetCalculator(LedgerSettings())

    def test_commission_adjusted_target(self, calculator: ProfitTargetCalculator) -> None:
        """测试佣金调整: 110 / 0.98"""
        result = calculator.compute_target(Decimal("100"), Decimal("10"), Decimal("2"))

        assert result.target_price == Decimal("112.2449")
        assert result.commission_adjusted is True
        assert result.warning is None

    def test_net_gain_meets_target_after_commission(
        self, calculator: ProfitTargetCalculator
    ) -> None:
        """测试按目标价卖出扣佣后仍达到目标收益"""
        result = calculator.compute_target(Decimal("100"), Decimal("10"), Decimal("2"))

        net_proceeds = result.target_price * (Decimal("1") - Decimal("0.02"))
        assert net_proceeds >= Decimal("110")

    def test_no_commission(self, calculator: ProfitTargetCalculator) -> None:
        """测试无佣金时目标价 = 买入价 × (1 + 目标%)"""
        result = calculator.compute_target(Decimal("100"), Decimal("10"))

        assert result.target_price == Decimal("110")
        assert result.commission_adjusted is False

    def test_zero_commission_same_as_none(self, calculator: ProfitTargetCalculator) -> None:
        """测试佣金为 0 时不调整"""
        with_zero = calculator.compute_target(Decimal("50"), Decimal("20"), Decimal("0"))
        without = calculator.compute_target(Decimal("50"), Decimal("20"), None)

        assert with_zero.target_price == without.target_price == Decimal("60")

    def test_commission_out_of_range_is_warning(
        self, calculator: ProfitTargetCalculator
    ) -> None:
        """测试佣金 >= 100% 时返回未调整目标价并告警"""
        result = calculator.compute_target(Decimal("100"), Decimal("10"), Decimal("100"))

        assert result.target_price == Decimal("110")
        assert result.commission_adjusted is False
        assert result.warning == COMMISSION_OUT_OF_RANGE

    def test_target_rounded_to_four_places(self, calculator: ProfitTargetCalculator) -> None:
        """测试目标价保留 4 位小数"""
        result = calculator.compute_target(Decimal("33.33"), Decimal("7"), Decimal("1.5"))

        assert result.target_price.as_tuple().exponent == -4

    def test_invalid_inputs_raise(self, calculator: ProfitTargetCalculator) -> None:
        """测试非法输入抛出 ValueError"""
        with pytest.raises(ValueError):
            calculator.compute_target(Decimal("0"), Decimal("10"))
        with pytest.raises(ValueError):
            calculator.compute_target(Decimal("100"), Decimal("-1"))

    def test_apply_to_wallet(self, calculator: ProfitTargetCalculator) -> None:
        """测试写入钱包目标价"""
        wallet = Wallet(stock_id="AAPL", strategy=Strategy.SWING, buy_price=Decimal("100"))

        calculator.apply_to_wallet(wallet, Decimal("10"), Decimal("2"))

        assert wallet.target_price == Decimal("112.2449")
        assert wallet.target_percent_used == Decimal("10")


class TestTargetHelpers:
    """止盈辅助函数测试"""

    def test_target_percent_for_strategy(self) -> None:
        """测试 Swing 取 STP，Hold 取 HTP"""
        settings = StockSettings(stp=Decimal("8"), htp=Decimal("30"))

        assert target_percent_for(Strategy.SWING, settings) == Decimal("8")
        assert target_percent_for(Strategy.HOLD, settings) == Decimal("30")

    def test_take_profit_signal(self) -> None:
        """测试止盈信号"""
        wallet = Wallet(
            stock_id="AAPL",
            strategy=Strategy.SWING,
            buy_price=Decimal("100"),
            total_shares_qty=Decimal("10"),
            target_price=Decimal("110"),
        )

        signal = take_profit_signal(wallet, Decimal("115"))

        assert signal is not None
        assert signal.triggered is True
        assert signal.current_gain_percent == Decimal("15.00")
        assert take_profit_signal(wallet, Decimal("105")).triggered is False

    def test_depleted_wallet_never_triggers(self) -> None:
        """测试已清空钱包不触发止盈"""
        wallet = Wallet(
            stock_id="AAPL",
            strategy=Strategy.SWING,
            buy_price=Decimal("100"),
            total_shares_qty=Decimal("10"),
            shares_sold=Decimal("10"),
            target_price=Decimal("110"),
        )

        assert is_target_reached(wallet, Decimal("200")) is False

    def test_signal_without_target(self) -> None:
        """测试没有目标价时不产生信号"""
        wallet = Wallet(stock_id="AAPL", strategy=Strategy.HOLD, buy_price=Decimal("100"))

        assert take_profit_signal(wallet, Decimal("150")) is None

    def test_retarget_wallets(self) -> None:
        """测试参数调整后刷新目标价"""
        book = LotBook(
            "AAPL",
            wallets=[
                Wallet(
                    stock_id="AAPL",
                    strategy=Strategy.SWING,
                    buy_price=Decimal("100"),
                    total_shares_qty=Decimal("5"),
                    target_price=Decimal("110"),
                    target_percent_used=Decimal("10"),
                ),
                Wallet(
                    stock_id="AAPL",
                    strategy=Strategy.HOLD,
                    buy_price=Decimal("100"),
                    total_shares_qty=Decimal("5"),
                    target_price=Decimal("125"),
                    target_percent_used=Decimal("25"),
                ),
            ],
        )
        settings = StockSettings(stp=Decimal("20"), htp=Decimal("25"))

        changes = retarget_wallets(book, settings, ProfitTargetCalculator(LedgerSettings()))

        assert len(changes) == 1
        assert changes[0].old_target == Decimal("110")
        assert changes[0].new_target == Decimal("120")
        assert changes[0].difference == Decimal("10")
