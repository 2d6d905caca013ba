"""
止盈目标价计算

目标价采用除法法 (division method) 做佣金调整:
    base = 买入价 × (1 + 目标% / 100)
    target = base / (1 - 佣金率)

卖出时再扣一次佣金后，净收益仍达到目标百分比。
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import structlog

from lotledger.core.config import LedgerSettings, get_settings
from lotledger.core.typing import (
    COMMISSION_OUT_OF_RANGE,
    HUNDRED,
    Strategy,
    quantize,
    to_decimal,
    to_optional_decimal,
)
from lotledger.portfolio.lot_book import LotBook
from lotledger.portfolio.wallet import StockSettings, Wallet

logger = structlog.get_logger(__name__)

ONE = Decimal("1")


@dataclass
class TargetResult:
    """目标价计算结果"""

    target_price: Decimal
    target_percent: Decimal
    commission_adjusted: bool = False
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_price": str(self.target_price),
            "target_percent": str(self.target_percent),
            "commission_adjusted": self.commission_adjusted,
            "warning": self.warning,
        }


@dataclass
class TakeProfitSignal:
    """止盈信号"""

    wallet_id: str
    triggered: bool
    target_price: Decimal
    current_price: Decimal
    current_gain_percent: Decimal


@dataclass
class RetargetChange:
    """重新计算目标价的变更记录"""

    wallet_id: str
    buy_price: Decimal
    old_target: Decimal | None
    new_target: Decimal

    @property
    def difference(self) -> Decimal:
        if self.old_target is None:
            return self.new_target
        return self.new_target - self.old_target


class ProfitTargetCalculator:
    """
    止盈目标价计算器

    纯计算，无副作用 (佣金越界时仅记录警告)
    """

    def __init__(self, config: LedgerSettings | None = None) -> None:
        self.config = config or get_settings().ledger

    def compute_target(
        self,
        buy_price: Decimal,
        target_percent: Decimal,
        commission_percent: Decimal | None = None,
    ) -> TargetResult:
        """
        计算佣金调整后的目标价

        Args:
            buy_price: 买入价 (> 0)
            target_percent: 目标收益百分比 (>= 0)
            commission_percent: 佣金百分比，None/0/负数表示不调整

        Returns:
            TargetResult，目标价保留 4 位小数
        """
        buy_price = to_decimal(buy_price)
        target_percent = to_decimal(target_percent)
        commission_percent = to_optional_decimal(commission_percent)

        if buy_price <= 0:
            raise ValueError(f"买入价必须大于 0: {buy_price}")
        if target_percent < 0:
            raise ValueError(f"目标百分比不能为负: {target_percent}")

        base = buy_price * (ONE + target_percent / HUNDRED)
        quantum = self.config.target_quantum

        if commission_percent is None or commission_percent <= 0:
            return TargetResult(
                target_price=quantize(base, quantum),
                target_percent=target_percent,
            )

        rate = commission_percent / HUNDRED
        if rate >= ONE:
            logger.warning(
                "commission_out_of_range",
                commission_percent=str(commission_percent),
                buy_price=str(buy_price),
            )
            return TargetResult(
                target_price=quantize(base, quantum),
                target_percent=target_percent,
                warning=COMMISSION_OUT_OF_RANGE,
            )

        return TargetResult(
            target_price=quantize(base / (ONE - rate), quantum),
            target_percent=target_percent,
            commission_adjusted=True,
        )

    def apply_to_wallet(
        self,
        wallet: Wallet,
        target_percent: Decimal,
        commission_percent: Decimal | None,
    ) -> TargetResult:
        """计算目标价并写入钱包"""
        result = self.compute_target(wallet.buy_price, target_percent, commission_percent)
        wallet.target_price = result.target_price
        wallet.target_percent_used = result.target_percent
        return result


def target_percent_for(strategy: Strategy, settings: StockSettings) -> Decimal:
    """Swing 用 STP，Hold 用 HTP"""
    if strategy == Strategy.SWING:
        return settings.stp
    return settings.htp


def is_target_reached(wallet: Wallet, current_price: Decimal) -> bool:
    """当前价是否达到钱包目标价 (已清空的钱包不触发)"""
    if wallet.target_price is None or wallet.is_depleted:
        return False
    return to_decimal(current_price) >= wallet.target_price


def take_profit_signal(wallet: Wallet, current_price: Decimal) -> TakeProfitSignal | None:
    """
    计算钱包的止盈信号

    Returns:
        TakeProfitSignal，钱包没有目标价时返回 None
    """
    if wallet.target_price is None:
        return None
    current_price = to_decimal(current_price)
    gain = (current_price - wallet.buy_price) / wallet.buy_price * HUNDRED
    return TakeProfitSignal(
        wallet_id=wallet.wallet_id,
        triggered=is_target_reached(wallet, current_price),
        target_price=wallet.target_price,
        current_price=current_price,
        current_gain_percent=quantize(gain, Decimal("0.01")),
    )


def retarget_wallets(
    book: LotBook,
    settings: StockSettings,
    calculator: ProfitTargetCalculator | None = None,
) -> list[RetargetChange]:
    """
    按当前股票参数重新计算所有钱包的目标价

    用于 STP / HTP / 佣金调整后刷新已存储的目标价

    Returns:
        目标价发生变化的钱包记录
    """
    calculator = calculator or ProfitTargetCalculator()
    changes: list[RetargetChange] = []
    for wallet in book.wallets:
        old_target = wallet.target_price
        result = calculator.apply_to_wallet(
            wallet,
            target_percent_for(wallet.strategy, settings),
            settings.commission_percent,
        )
        if old_target != result.target_price:
            changes.append(
                RetargetChange(
                    wallet_id=wallet.wallet_id,
                    buy_price=wallet.buy_price,
                    old_target=old_target,
                    new_target=result.target_price,
                )
            )

    if changes:
        logger.info(
            "wallets_retargeted",
            stock_id=book.stock_id,
            changed=len(changes),
            total=len(book),
        )
    return changes

