"""
配置设置定义

使用 Pydantic Settings 实现类型安全的配置
"""

from decimal import Decimal
from enum import StrEnum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    """运行环境"""

    DEV = "dev"
    PROD = "prod"


class LedgerSettings(BaseSettings):
    """钱包账本精度与容差配置"""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    share_epsilon: Decimal = Field(
        default=Decimal("0.0001"), description="股数归零容差 (股)"
    )
    currency_tolerance: Decimal = Field(
        default=Decimal("0.01"), description="金额校验容差 (1 美分)"
    )
    price_match_tolerance: Decimal = Field(
        default=Decimal("0"),
        description="同价合并容差，0 表示买入价必须完全相等",
    )
    target_places: int = Field(default=4, description="目标价小数位")
    percent_places: int = Field(default=4, description="百分比小数位")

    @property
    def target_quantum(self) -> Decimal:
        """目标价量化单位"""
        return Decimal(1).scaleb(-self.target_places)

    @property
    def percent_quantum(self) -> Decimal:
        """百分比量化单位"""
        return Decimal(1).scaleb(-self.percent_places)


class Settings(BaseSettings):
    """主配置类"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 环境
    env: Environment = Field(default=Environment.DEV, description="运行环境")

    # 日志
    log_level: str = Field(default="INFO", description="日志级别")

    # 子配置
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)

    @property
    def is_prod(self) -> bool:
        """是否为生产环境"""
        return self.env == Environment.PROD

    @property
    def is_dev(self) -> bool:
        """是否为开发环境"""
        return self.env == Environment.DEV


@lru_cache
def get_settings() -> Settings:
    """
    获取配置单例

    使用 lru_cache 确保配置只加载一次

    Returns:
        Settings: 配置实例
    """
    return Settings()
