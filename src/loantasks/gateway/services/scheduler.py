"""MaintenanceScheduler -- 定时触发维护扫描

固定间隔（默认 5 分钟）在后台 asyncio task 中调用
TaskService.run_maintenance_sweep()。单次扫描失败只记录日志，不终止定时器。
"""

import asyncio
import contextlib

import structlog
from loantasks.core.config import MAINTENANCE_INTERVAL_S
from loantasks.core.models import MaintenanceReport

from .task_service import TaskService

log = structlog.get_logger()


class MaintenanceScheduler:
    """维护扫描定时器"""

    def __init__(
        self,
        service: TaskService,
        interval_s: float = MAINTENANCE_INTERVAL_S,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self._service = service
        self._interval_s = interval_s
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """启动后台定时循环（重复调用无副作用）"""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="maintenance-scheduler")
        log.info("maintenance_scheduler_started", interval_s=self._interval_s)

    async def stop(self) -> None:
        """停止定时循环并等待其退出"""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        log.info("maintenance_scheduler_stopped")

    async def run_once(self) -> MaintenanceReport | None:
        """执行一次扫描；失败时记录日志并返回 None"""
        try:
            report = await self._service.run_maintenance_sweep()
        except Exception:
            log.exception("maintenance_sweep_failed")
            return None

        if report.mutated:
            log.info(
                "scheduler_tick",
                reminded=report.reminded,
                auto_archived=report.auto_archived,
                purged=report.purged,
            )
        return report

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval_s)
            await self.run_once()
