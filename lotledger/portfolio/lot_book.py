"""
钱包账本

单只股票的全部钱包集合，提供:
- 钱包增删查
- 按 (策略, 买入价) 查找活跃钱包
- 快照 / 回滚 (回滚时原地恢复钱包对象)
- 现金流状态
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from lotledger.core.typing import ZERO, Strategy
from lotledger.portfolio.cash_flow import CashFlowState
from lotledger.portfolio.wallet import Wallet


@dataclass
class BookCheckpoint:
    """
    账本检查点

    同时保存钱包对象引用与字段副本，回滚后调用方持有的钱包引用仍然有效
    """

    wallets: dict[str, Wallet]
    states: dict[str, Wallet]
    split_factor: Decimal
    applied_txn_ids: set[str] = field(default_factory=set)
    cash_flow: CashFlowState = field(default_factory=CashFlowState)


class LotBook:
    """
    单只股票的钱包账本

    调用方在每次操作前加载快照，操作完成后持久化变更的钱包。
    已全部卖出的钱包保留在账本中用于报表，但不再参与同价合并。
    """

    def __init__(
        self,
        stock_id: str,
        wallets: list[Wallet] | None = None,
        split_factor: Decimal = Decimal("1"),
        applied_txn_ids: set[str] | None = None,
        cash_flow: CashFlowState | None = None,
    ) -> None:
        self.stock_id = stock_id
        self.split_factor = split_factor
        self.cash_flow = cash_flow or CashFlowState()
        self.applied_txn_ids: set[str] = set(applied_txn_ids or ())
        self._wallets: dict[str, Wallet] = {}
        for wallet in wallets or []:
            self.add(wallet)

    def __len__(self) -> int:
        return len(self._wallets)

    def __contains__(self, wallet_id: object) -> bool:
        return wallet_id in self._wallets

    @property
    def wallets(self) -> list[Wallet]:
        """获取所有钱包 (含已清空)"""
        return list(self._wallets.values())

    @property
    def active_wallets(self) -> list[Wallet]:
        """获取所有仍有剩余股数的钱包"""
        return [w for w in self._wallets.values() if not w.is_depleted]

    def wallets_for(self, strategy: Strategy, active_only: bool = False) -> list[Wallet]:
        """获取某策略下的钱包"""
        wallets = self.active_wallets if active_only else self.wallets
        return [w for w in wallets if w.strategy == strategy]

    def add(self, wallet: Wallet) -> Wallet:
        if wallet.stock_id != self.stock_id:
            raise ValueError(
                f"钱包 {wallet.wallet_id} 属于 {wallet.stock_id}，不能加入 {self.stock_id} 账本"
            )
        self._wallets[wallet.wallet_id] = wallet
        return wallet

    def get(self, wallet_id: str | None) -> Wallet | None:
        if wallet_id is None:
            return None
        return self._wallets.get(wallet_id)

    def remove(self, wallet_id: str) -> Wallet | None:
        return self._wallets.pop(wallet_id, None)

    def find(
        self,
        strategy: Strategy,
        buy_price: Decimal,
        tolerance: Decimal = ZERO,
    ) -> Wallet | None:
        """
        查找可合并的活跃钱包

        Args:
            strategy: 策略
            buy_price: 买入价
            tolerance: 价格相等容差，0 表示必须完全相等

        Returns:
            价差最小的活跃钱包，没有则返回 None
        """
        candidates = [
            w
            for w in self._wallets.values()
            if w.strategy == strategy
            and not w.is_depleted
            and abs(w.buy_price - buy_price) <= tolerance
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda w: abs(w.buy_price - buy_price))

    def total_cost_basis(self) -> Decimal:
        """Σ(买入价 × 累计股数)，拆股前后应保持不变"""
        return sum(
            (w.buy_price * w.total_shares_qty for w in self._wallets.values()),
            start=ZERO,
        )

    def total_investment(self) -> Decimal:
        return sum(
            (w.total_investment for w in self._wallets.values()),
            start=ZERO,
        )

    def copy(self) -> "LotBook":
        """创建账本深拷贝"""
        return LotBook(
            stock_id=self.stock_id,
            wallets=[w.copy() for w in self._wallets.values()],
            split_factor=self.split_factor,
            applied_txn_ids=set(self.applied_txn_ids),
            cash_flow=self.cash_flow.copy(),
        )

    def checkpoint(self) -> BookCheckpoint:
        """记录当前状态 (失败回滚用)"""
        return BookCheckpoint(
            wallets=dict(self._wallets),
            states={k: w.copy() for k, w in self._wallets.items()},
            split_factor=self.split_factor,
            applied_txn_ids=set(self.applied_txn_ids),
            cash_flow=self.cash_flow.copy(),
        )

    def rollback(self, checkpoint: BookCheckpoint) -> None:
        """
        回滚到检查点

        检查点中的钱包对象原地恢复字段值 (被删除的重新加入)，
        检查点之后新建的钱包被移除
        """
        for wallet_id, wallet in checkpoint.wallets.items():
            wallet.restore_from(checkpoint.states[wallet_id])
        self._wallets = dict(checkpoint.wallets)
        self.split_factor = checkpoint.split_factor
        self.applied_txn_ids = set(checkpoint.applied_txn_ids)
        self.cash_flow.restore_from(checkpoint.cash_flow)

    def to_dict(self) -> dict[str, Any]:
        """转换为字典"""
        return {
            "stock_id": self.stock_id,
            "split_factor": str(self.split_factor),
            "wallets": {k: v.to_dict() for k, v in self._wallets.items()},
            "active_count": len(self.active_wallets),
            "applied_txn_ids": sorted(self.applied_txn_ids),
            "cash_flow": self.cash_flow.to_dict(),
        }
