"""GatewaySettings -- 服务进程与外部集成配置

从环境变量加载；业务规则配置见 loantasks.core.config.AppConfig。
"""

import os

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()


class GatewaySettings(BaseModel):
    """Gateway 配置

    环境变量:
        LOANTASKS_HOST: 监听地址（默认 127.0.0.1）
        LOANTASKS_PORT: 监听端口（默认 4100）
        LOANTASKS_WEBHOOK_URL: 频道通知 webhook（为空时只写日志）
        LOANTASKS_ENABLE_DM_NOTIFICATIONS: 是否投递 DM（默认 true）
        LOANTASKS_INBOUND_API_KEY: 集成入口 API key（为空时入口关闭）
    """

    host: str = "127.0.0.1"
    port: int = Field(default=4100, ge=1, le=65535)
    webhook_url: str | None = None
    enable_dm_notifications: bool = True
    inbound_api_key: SecretStr | None = None


def load_gateway_settings() -> GatewaySettings:
    """从环境变量加载 Gateway 配置"""
    kwargs: dict = {}

    if val := os.environ.get("LOANTASKS_HOST"):
        kwargs["host"] = val

    if val := os.environ.get("LOANTASKS_PORT"):
        try:
            kwargs["port"] = int(val)
        except ValueError:
            log.warning(
                "invalid_port_config",
                env_var="LOANTASKS_PORT",
                value=val,
                fallback=4100,
            )

    if val := os.environ.get("LOANTASKS_WEBHOOK_URL"):
        kwargs["webhook_url"] = val

    if val := os.environ.get("LOANTASKS_ENABLE_DM_NOTIFICATIONS"):
        kwargs["enable_dm_notifications"] = val.lower() == "true"

    if val := os.environ.get("LOANTASKS_INBOUND_API_KEY"):
        kwargs["inbound_api_key"] = SecretStr(val)

    return GatewaySettings(**kwargs)
