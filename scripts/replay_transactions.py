#!/usr/bin/env python3
"""
交易回放脚本

功能:
- 从 CSV 加载单只股票的交易记录
- 按日期顺序回放 (买入 / 卖出 / 拆股 / 分红 / 出借收入)
- 打印钱包明细、账本汇总与现金流

CSV 列:
    date, action, strategy_tag, price, quantity, investment, amount,
    wallet_strategy, wallet_buy_price, split_ratio
    卖出通过 wallet_strategy + wallet_buy_price 定位钱包

使用方式:
    python scripts/replay_transactions.py --csv trades.csv --stock AAPL --stp 10 --htp 25
    python scripts/replay_transactions.py --csv trades.csv --stock AAPL --shr 70 --commission 1 --price 150
    python scripts/replay_transactions.py --csv trades.csv --stock AAPL --log-file logs/replay.log
"""

import argparse
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pandas as pd
import structlog

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from lotledger.core.typing import Strategy, TxnAction, format_currency  # noqa: E402
from lotledger.ops.logging import configure_logging  # noqa: E402
from lotledger.portfolio import (  # noqa: E402
    LotBook,
    StockSettings,
    Transaction,
    TransactionProcessor,
    summarize,
    wallets_dataframe,
)

logger = structlog.get_logger(__name__)


def _cell(row: pd.Series, column: str) -> str | None:
    """读取单元格，空值返回 None"""
    if column not in row.index:
        return None
    value = row[column]
    if pd.isna(value) or str(value).strip() == "":
        return None
    return str(value).strip()


def load_transactions(path: Path) -> pd.DataFrame:
    """读取 CSV，数值列保持字符串以便精确转换为 Decimal"""
    df = pd.read_csv(path, dtype=str)
    df["date"] = pd.to_datetime(df["date"]).dt.date
    return df.sort_values("date", kind="stable").reset_index(drop=True)


def build_transaction(row: pd.Series, stock_id: str, book: LotBook) -> Transaction:
    """由 CSV 行构造交易记录"""
    action = TxnAction(_cell(row, "action"))
    linked_wallet_id = None

    if action == TxnAction.SELL:
        strategy = Strategy(_cell(row, "wallet_strategy"))
        buy_price = Decimal(_cell(row, "wallet_buy_price") or "0")
        wallet = book.find(strategy, buy_price)
        linked_wallet_id = wallet.wallet_id if wallet else None

    row_date: date = row["date"]
    return Transaction(
        stock_id=stock_id,
        action=action,
        date=row_date,
        strategy_tag=_cell(row, "strategy_tag"),
        price=_cell(row, "price") or "0",
        quantity=_cell(row, "quantity") or "0",
        investment=_cell(row, "investment"),
        amount=_cell(row, "amount"),
        linked_wallet_id=linked_wallet_id,
        split_ratio=_cell(row, "split_ratio"),
    )


def print_summary(book: LotBook, transactions: list[Transaction], price: Decimal | None) -> None:
    """打印账本汇总"""
    summary = summarize(book, transactions, price)

    print("\n" + "=" * 60)
    print(f"📒 {book.stock_id} 账本汇总 (拆股系数 {summary.split_factor})")
    print("=" * 60)

    for strategy_summary in summary.strategies.values():
        print(f"\n[{strategy_summary.strategy.value}]")
        print(f"  活跃钱包: {strategy_summary.active_wallets}")
        print(f"  剩余股数: {strategy_summary.remaining_shares}")
        print(f"  持仓成本: {format_currency(strategy_summary.cost_basis)}")
        print(f"  已实现盈亏: {format_currency(strategy_summary.realized_pl)}")
        if strategy_summary.unrealized_pl is not None:
            print(f"  未实现盈亏: {format_currency(strategy_summary.unrealized_pl)}")
        if strategy_summary.ready_to_sell:
            print(f"  达到目标价: {len(strategy_summary.ready_to_sell)} 个钱包")

    print("\n" + "-" * 60)
    print(f"  总已实现盈亏: {format_currency(summary.total_realized_pl)}")
    if summary.total_unrealized_pl is not None:
        print(f"  总未实现盈亏: {format_currency(summary.total_unrealized_pl)}")

    cash_flow = summary.cash_flow
    print(f"  自有资金投入 (OOP): {format_currency(cash_flow.total_out_of_pocket)}")
    print(f"  现金余额: {format_currency(cash_flow.current_cash_balance)}")
    if summary.roic is not None:
        print(f"  ROIC: {summary.roic}%")
    print("=" * 60)


def run_replay(
    csv_path: Path,
    stock_id: str,
    settings: StockSettings,
    current_price: Decimal | None = None,
) -> LotBook:
    """
    回放交易并打印结果

    Returns:
        回放后的账本
    """
    df = load_transactions(csv_path)
    book = LotBook(stock_id)
    processor = TransactionProcessor()

    logger.info("replay_started", stock_id=stock_id, rows=len(df), csv=str(csv_path))

    transactions: list[Transaction] = []
    failed = 0
    for _, row in df.iterrows():
        tx = build_transaction(row, stock_id, book)
        result = processor.process(tx, book, settings)
        if result.success:
            transactions.append(tx)
        else:
            failed += 1
            print(f"  ✗ {tx.date} {tx.action.value}: {result.error_code.value} {result.error_message}")
        for warning in result.warnings:
            print(f"  ⚠ {tx.date} {tx.action.value}: {warning}")

    logger.info("replay_finished", applied=len(transactions), failed=failed)

    wallets = wallets_dataframe(book)
    if not wallets.empty:
        print("\n钱包明细:")
        print(wallets.drop(columns=["wallet_id"]).to_string(index=False))

    print_summary(book, transactions, current_price)
    return book


def main():
    """主入口"""
    parser = argparse.ArgumentParser(
        description="钱包账本交易回放",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--csv", type=Path, required=True, help="交易记录 CSV 路径")
    parser.add_argument("--stock", type=str, required=True, help="股票 ID")
    parser.add_argument("--stp", type=str, default="10", help="Swing 止盈百分比 (默认: 10)")
    parser.add_argument("--htp", type=str, default="25", help="Hold 止盈百分比 (默认: 25)")
    parser.add_argument("--shr", type=str, default="50", help="Swing 分配比例 (默认: 50)")
    parser.add_argument("--commission", type=str, default=None, help="佣金百分比 (默认: 无)")
    parser.add_argument("--price", type=str, default=None, help="当前价格，用于未实现盈亏")
    parser.add_argument("--log-level", type=str, default=None, help="日志级别")
    parser.add_argument("--log-file", type=Path, default=None, help="日志文件 (JSON)，默认输出到终端")

    args = parser.parse_args()

    configure_logging("replay", log_level=args.log_level, log_file=args.log_file)

    settings = StockSettings(
        stp=args.stp,
        htp=args.htp,
        shr=args.shr,
        commission_percent=args.commission,
    )
    current_price = Decimal(args.price) if args.price else None

    run_replay(args.csv, args.stock, settings, current_price)


if __name__ == "__main__":
    main()
