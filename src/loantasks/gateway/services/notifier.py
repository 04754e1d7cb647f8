"""通知投递 -- NotificationSink 接口与具体实现

TaskService 对每个事件按 IN_APP / DM / CHANNEL 三个目标各调用一次 notify。
"""

from typing import Protocol

import httpx
import structlog

from loantasks.core.models import NotificationEvent, NotificationTarget

log = structlog.get_logger()


class NotificationSink(Protocol):
    """通知投递接口"""

    async def notify(self, event: NotificationEvent) -> None: ...


def _prefix(event: NotificationEvent) -> str:
    return f"[{event.task.task_type}] [{event.task.urgency}]"


def _detail(event: NotificationEvent) -> str:
    task = event.task
    return f"Loan: {task.loan_name}\nStatus: {task.status}\nUrgency: {task.urgency}"


class LogNotifier:
    """仅写日志的投递实现（本地开发 / 无外部渠道时使用）"""

    async def notify(self, event: NotificationEvent) -> None:
        log.info(
            "notification",
            target=event.target.value,
            kind=event.kind.value,
            task_id=event.task.id,
            message=f"{_prefix(event)} {event.message}",
        )


class WebhookNotifier:
    """CHANNEL 目标经 webhook 推送，DM 可通过配置关闭，其余写日志

    Args:
        webhook_url: 频道 webhook 地址（为空时 CHANNEL 退化为日志）
        enable_dm: 是否投递 DM
        client: 可注入的 httpx.AsyncClient
        timeout_s: 请求超时（秒）
    """

    def __init__(
        self,
        webhook_url: str | None,
        enable_dm: bool = True,
        client: httpx.AsyncClient | None = None,
        timeout_s: float = 10.0,
    ) -> None:
        self._webhook_url = webhook_url
        self._enable_dm = enable_dm
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = client is None
        self._fallback = LogNotifier()

    async def notify(self, event: NotificationEvent) -> None:
        if event.target == NotificationTarget.CHANNEL and self._webhook_url:
            response = await self._client.post(
                self._webhook_url,
                json={
                    "title": f"{_prefix(event)} {event.message}",
                    "text": _detail(event),
                },
            )
            response.raise_for_status()
            return

        if event.target == NotificationTarget.DM and not self._enable_dm:
            return

        await self._fallback.notify(event)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
