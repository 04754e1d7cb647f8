"""MaintenanceScheduler 测试 -- 定时触发、失败不终止、启停"""

import asyncio

import pytest
from loantasks.core.models import MaintenanceReport
from loantasks.gateway.services.scheduler import MaintenanceScheduler


class _StubService:
    """记录调用次数；fail_first 时第一次扫描抛出异常"""

    def __init__(self, fail_first: bool = False) -> None:
        self.calls = 0
        self.fail_first = fail_first

    async def run_maintenance_sweep(self) -> MaintenanceReport:
        self.calls += 1
        if self.fail_first and self.calls == 1:
            raise OSError("disk unavailable")
        return MaintenanceReport(reminded=1)


class TestMaintenanceScheduler:
    """维护扫描定时器"""

    async def test_run_once_returns_report(self):
        scheduler = MaintenanceScheduler(_StubService(), interval_s=60)
        report = await scheduler.run_once()
        assert report is not None
        assert report.reminded == 1

    async def test_run_once_swallows_sweep_failure(self):
        scheduler = MaintenanceScheduler(_StubService(fail_first=True), interval_s=60)
        assert await scheduler.run_once() is None

    async def test_loop_survives_failure(self):
        service = _StubService(fail_first=True)
        scheduler = MaintenanceScheduler(service, interval_s=0.01)

        scheduler.start()
        assert scheduler.running is True
        for _ in range(100):
            if service.calls >= 3:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert service.calls >= 3
        assert scheduler.running is False

    async def test_start_is_idempotent(self):
        scheduler = MaintenanceScheduler(_StubService(), interval_s=60)
        scheduler.start()
        first = scheduler._task
        scheduler.start()
        assert scheduler._task is first
        await scheduler.stop()

    async def test_stop_without_start(self):
        scheduler = MaintenanceScheduler(_StubService(), interval_s=60)
        await scheduler.stop()
        assert scheduler.running is False

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            MaintenanceScheduler(_StubService(), interval_s=0)
