"""配置模块 -- 业务规则配置 + 可通过环境变量覆盖的进程级常量

AppConfig 为不可变值，在构造 TaskService 时显式传入；
纯函数（calendar / workflow）从不隐式读取环境变量。
"""

import os
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

log = structlog.get_logger()


class AppConfig(BaseModel):
    """业务规则配置

    环境变量:
        LOANTASKS_BUSINESS_TIMEZONE: 业务时区（IANA，默认 America/Los_Angeles）
        LOANTASKS_BUSINESS_START_HOUR / _MINUTE: 营业开始（默认 08:30）
        LOANTASKS_BUSINESS_END_HOUR / _MINUTE: 营业结束（默认 17:30）
        LOANTASKS_ARCHIVE_RETENTION_DAYS: 归档保留天数（默认 90）
    """

    model_config = ConfigDict(frozen=True)

    business_timezone: str = Field(
        default="America/Los_Angeles",
        description="业务时区（IANA 标识）",
    )
    business_start_hour: int = Field(default=8, ge=0, le=23)
    business_start_minute: int = Field(default=30, ge=0, le=59)
    business_end_hour: int = Field(default=17, ge=0, le=23)
    business_end_minute: int = Field(default=30, ge=0, le=59)
    archive_retention_days: int = Field(
        default=90,
        ge=0,
        description="ARCHIVED 任务保留天数，超过后物理删除",
    )

    @field_validator("business_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {value}") from e
        return value

    @model_validator(mode="after")
    def _start_before_end(self) -> "AppConfig":
        if self.business_start_minutes >= self.business_end_minutes:
            raise ValueError("business day must start before it ends")
        return self

    @property
    def business_start_minutes(self) -> int:
        return self.business_start_hour * 60 + self.business_start_minute

    @property
    def business_end_minutes(self) -> int:
        return self.business_end_hour * 60 + self.business_end_minute

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.business_timezone)


_INT_ENV_FIELDS = {
    "LOANTASKS_BUSINESS_START_HOUR": "business_start_hour",
    "LOANTASKS_BUSINESS_START_MINUTE": "business_start_minute",
    "LOANTASKS_BUSINESS_END_HOUR": "business_end_hour",
    "LOANTASKS_BUSINESS_END_MINUTE": "business_end_minute",
    "LOANTASKS_ARCHIVE_RETENTION_DAYS": "archive_retention_days",
}


def load_app_config() -> AppConfig:
    """从环境变量加载业务规则配置

    无法解析的整数值记录警告并使用默认值，不阻塞启动。

    Returns:
        AppConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("LOANTASKS_BUSINESS_TIMEZONE"):
        kwargs["business_timezone"] = val

    for env_var, field_name in _INT_ENV_FIELDS.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            kwargs[field_name] = int(val)
        except ValueError:
            log.warning(
                "invalid_int_config",
                env_var=env_var,
                value=val,
                fallback=AppConfig.model_fields[field_name].default,
            )

    return AppConfig(**kwargs)


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("LOANTASKS_DATA_DIR", "data"))


def get_data_file() -> Path:
    """获取 JSON 文档存储路径"""
    return Path(
        os.environ.get(
            "LOANTASKS_DATA_FILE",
            str(_get_base_dir() / "tasks.json"),
        )
    )


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "LOANTASKS_DB_PATH",
        str(_get_base_dir() / "sqlite" / "loantasks.db"),
    )


StoreBackend = Literal["json", "sqlite"]


def get_store_backend() -> StoreBackend:
    """获取存储后端（json / sqlite），未知值回落到 json"""
    backend = os.environ.get("LOANTASKS_STORE_BACKEND", "json").lower()
    if backend not in ("json", "sqlite"):
        log.warning("unknown_store_backend", value=backend, fallback="json")
        return "json"
    return backend  # type: ignore[return-value]


# 维护扫描间隔（秒）
MAINTENANCE_INTERVAL_S: int = int(
    os.environ.get("LOANTASKS_MAINTENANCE_INTERVAL_S", "300")
)

# SSE 心跳间隔（秒）
SSE_HEARTBEAT_INTERVAL: int = int(
    os.environ.get("LOANTASKS_SSE_HEARTBEAT_INTERVAL", "15")
)

# COMPLETED / CANCELLED 任务自动归档阈值（天）
AUTO_ARCHIVE_AFTER_DAYS: int = 14

# 逾期提醒节流间隔（分钟）
REMINDER_THROTTLE_MINUTES: int = 60

# ORANGE 紧急度的截止偏移（分钟）
ORANGE_DUE_MINUTES: int = 60
