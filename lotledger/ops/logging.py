"""
统一日志模块

使用 structlog 实现结构化日志:
- 开发环境彩色 Console 输出，生产环境或写文件时输出 JSON
- Decimal 字段统一转为字符串，避免精度丢失
- 按股票绑定上下文 (stock_id / txn_id)
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Any, TextIO

import structlog
from structlog.typing import FilteringBoundLogger, Processor

from lotledger.core.config import get_settings


def add_env(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """添加运行环境"""
    event_dict.setdefault("env", get_settings().env.value)
    return event_dict


def stringify_decimals(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Decimal 转为字符串 (JSON 输出时保持精确值)"""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def configure_logging(
    service_name: str = "lotledger",
    log_level: str | None = None,
    log_file: Path | None = None,
) -> FilteringBoundLogger:
    """
    配置日志系统

    Args:
        service_name: 服务名称，绑定到每条日志
        log_level: 日志级别，默认从配置读取
        log_file: 日志文件路径，为 None 时输出到 stdout

    Returns:
        绑定了 service 的 logger
    """
    settings = get_settings()
    level = logging.getLevelName((log_level or settings.log_level).upper())

    stream: TextIO = sys.stdout
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        stream = log_file.open("a", encoding="utf-8")

    renderer: Processor
    if settings.is_dev and log_file is None:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_env,
            stringify_decimals,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger().bind(service=service_name)


@contextmanager
def ledger_context(stock_id: str, txn_id: str | None = None) -> Iterator[None]:
    """
    在当前上下文中绑定 stock_id / txn_id

    退出时恢复绑定前的上下文变量
    """
    bound: dict[str, Any] = {"stock_id": stock_id}
    if txn_id:
        bound["txn_id"] = txn_id
    with structlog.contextvars.bound_contextvars(**bound):
        yield
