"""维护扫描测试

测试内容：
1. 营业时间内逾期提醒 / 营业时间外不提醒
2. 完成 20 天的任务自动归档
3. 归档超过保留期的任务被清理，历史保留
4. 连续两次扫描，第二次无变更
5. 单个任务失败不影响其余任务
6. 仅在有变更时写入，并为每个保留的任务广播一次
"""

import asyncio
from datetime import timedelta

import pytest
from loantasks.core.config import AppConfig
from loantasks.core.models import (
    SYSTEM_ACTOR,
    CreateTaskInput,
    HistoryAction,
    NotificationKind,
    NotificationTarget,
    TaskStatus,
    TaskType,
)
from loantasks.gateway.services import task_service as task_service_module
from loantasks.gateway.services.task_service import TaskService


class TestReminders:
    """逾期提醒"""

    async def test_overdue_claimed_task_reminded(
        self, service: TaskService, json_store, make_task, clock, officer, notifier
    ):
        await json_store.upsert(
            make_task(
                status=TaskStatus.CLAIMED,
                assignee=officer.ref(),
                due_at=clock.now - timedelta(hours=2),
            )
        )

        report = await service.run_maintenance_sweep(clock.now)

        assert report.reminded == 1
        assert report.auto_archived == 0
        assert report.purged == 0
        task = await json_store.find_by_id("task-1")
        assert task.last_reminder_at == clock.now
        assert task.updated_at == clock.now
        assert [e.target for e in notifier.events] == list(NotificationTarget)
        assert {e.kind for e in notifier.events} == {NotificationKind.TASK_REMINDER}
        assert notifier.events[0].actor == SYSTEM_ACTOR

    async def test_outside_business_hours_no_mutation(
        self, service: TaskService, json_store, make_task, clock, officer, notifier
    ):
        original = make_task(
            status=TaskStatus.CLAIMED,
            assignee=officer.ref(),
            due_at=clock.now - timedelta(hours=2),
        )
        await json_store.upsert(original)
        before = json_store.path.read_bytes()

        # 周三 20:00 PST
        report = await service.run_maintenance_sweep(clock.now + timedelta(hours=10))

        assert report.reminded == 0
        assert report.mutated is False
        assert await json_store.find_by_id("task-1") == original
        assert json_store.path.read_bytes() == before
        assert notifier.events == []

    async def test_reminder_throttled_within_an_hour(
        self, service: TaskService, json_store, make_task, clock
    ):
        await json_store.upsert(
            make_task(
                due_at=clock.now - timedelta(hours=3),
                last_reminder_at=clock.now - timedelta(minutes=30),
            )
        )
        report = await service.run_maintenance_sweep(clock.now)
        assert report.reminded == 0

        report = await service.run_maintenance_sweep(clock.now + timedelta(minutes=30))
        assert report.reminded == 1

    async def test_reminder_delivery_failure_reported(
        self, json_store, channel_down_notifier, sse_hub, app_config, clock, make_task
    ):
        """提醒投递失败：提醒时间戳已提交，任务记入 failed_task_ids"""
        service = TaskService(json_store, channel_down_notifier, sse_hub, app_config, clock=clock)
        await json_store.upsert(make_task(due_at=clock.now - timedelta(hours=1)))

        report = await service.run_maintenance_sweep(clock.now)

        assert report.reminded == 1
        assert report.failed_task_ids == ["task-1"]
        assert (await json_store.find_by_id("task-1")).last_reminder_at == clock.now


class TestAutoArchive:
    """自动归档"""

    async def test_completed_twenty_days_ago_archived(
        self, service: TaskService, json_store, make_task, clock
    ):
        await json_store.upsert(
            make_task(
                status=TaskStatus.COMPLETED,
                completed_at=clock.now - timedelta(days=20),
                updated_at=clock.now - timedelta(days=20),
            )
        )

        report = await service.run_maintenance_sweep(clock.now)

        assert report.auto_archived == 1
        task = await json_store.find_by_id("task-1")
        assert task.status == TaskStatus.ARCHIVED
        assert task.archived_at == clock.now

        history = await json_store.history_for_task("task-1")
        assert history[-1].action == HistoryAction.TASK_STATUS_CHANGED
        assert history[-1].by == SYSTEM_ACTOR

    async def test_cancelled_falls_back_to_updated_at(
        self, service: TaskService, json_store, make_task, clock
    ):
        await json_store.upsert(
            make_task(status=TaskStatus.CANCELLED, updated_at=clock.now - timedelta(days=15))
        )
        report = await service.run_maintenance_sweep(clock.now)
        assert report.auto_archived == 1

    async def test_recently_completed_untouched(
        self, service: TaskService, json_store, make_task, clock
    ):
        await json_store.upsert(
            make_task(status=TaskStatus.COMPLETED, completed_at=clock.now - timedelta(days=3))
        )
        report = await service.run_maintenance_sweep(clock.now)
        assert report.mutated is False


class TestRetentionPurge:
    """保留期清理"""

    async def test_purge_only_expired(self, service: TaskService, json_store, make_task, clock):
        await json_store.upsert(
            make_task(
                id="old",
                status=TaskStatus.ARCHIVED,
                archived_at=clock.now - timedelta(days=95),
            )
        )
        await json_store.upsert(
            make_task(
                id="recent",
                status=TaskStatus.ARCHIVED,
                archived_at=clock.now - timedelta(days=40),
            )
        )

        report = await service.run_maintenance_sweep(clock.now)

        assert report.purged == 1
        assert [t.id for t in await json_store.list_all()] == ["recent"]

    async def test_retention_from_config(
        self, json_store, notifier, sse_hub, clock, make_task
    ):
        service = TaskService(
            json_store, notifier, sse_hub, AppConfig(archive_retention_days=30), clock=clock
        )
        await json_store.upsert(
            make_task(status=TaskStatus.ARCHIVED, archived_at=clock.now - timedelta(days=40))
        )
        report = await service.run_maintenance_sweep(clock.now)
        assert report.purged == 1

    async def test_history_retained_after_purge(
        self, service: TaskService, officer, json_store, clock
    ):
        task = await service.create_task(
            CreateTaskInput(loan_name="Old Loan", task_type=TaskType.VALUE, notes="n"),
            officer,
        )
        await service.transition_task(task.id, TaskStatus.CANCELLED, officer)

        # 14 天后自动归档，再过 90 天清理
        await service.run_maintenance_sweep(clock.now + timedelta(days=15))
        report = await service.run_maintenance_sweep(clock.now + timedelta(days=106))

        assert report.purged == 1
        assert await json_store.find_by_id(task.id) is None
        actions = [e.action for e in await json_store.history_for_task(task.id)]
        assert actions == [
            HistoryAction.TASK_CREATED,
            HistoryAction.TASK_STATUS_CHANGED,
            HistoryAction.TASK_STATUS_CHANGED,
        ]


class TestSweepContract:
    """读全部、算全部、写全部"""

    async def test_second_sweep_is_noop(self, service: TaskService, json_store, make_task, clock):
        await json_store.upsert(make_task(id="overdue", due_at=clock.now - timedelta(hours=2)))
        await json_store.upsert(
            make_task(
                id="done",
                status=TaskStatus.COMPLETED,
                completed_at=clock.now - timedelta(days=20),
            )
        )
        await json_store.upsert(
            make_task(
                id="expired",
                status=TaskStatus.ARCHIVED,
                archived_at=clock.now - timedelta(days=95),
            )
        )

        first = await service.run_maintenance_sweep(clock.now)
        assert (first.reminded, first.auto_archived, first.purged) == (1, 1, 1)

        before = json_store.path.read_bytes()
        second = await service.run_maintenance_sweep(clock.now)
        assert (second.reminded, second.auto_archived, second.purged) == (0, 0, 0)
        assert json_store.path.read_bytes() == before

    async def test_broadcast_per_retained_task(
        self, service: TaskService, json_store, make_task, clock, sse_hub
    ):
        await json_store.upsert(make_task(id="overdue", due_at=clock.now - timedelta(hours=2)))
        await json_store.upsert(make_task(id="fine", due_at=clock.now + timedelta(days=2)))
        await json_store.upsert(
            make_task(
                id="expired",
                status=TaskStatus.ARCHIVED,
                archived_at=clock.now - timedelta(days=95),
            )
        )
        queue = await sse_hub.subscribe()

        await service.run_maintenance_sweep(clock.now)

        broadcast_ids = set()
        while not queue.empty():
            broadcast_ids.add(queue.get_nowait().task.id)
        assert broadcast_ids == {"overdue", "fine"}

    async def test_no_broadcast_without_mutation(
        self, service: TaskService, json_store, make_task, clock, sse_hub
    ):
        await json_store.upsert(make_task(due_at=clock.now + timedelta(days=2)))
        queue = await sse_hub.subscribe()

        await service.run_maintenance_sweep(clock.now)
        assert queue.empty()

    async def test_single_task_failure_isolated(
        self,
        service: TaskService,
        json_store,
        make_task,
        clock,
        monkeypatch: pytest.MonkeyPatch,
    ):
        original = task_service_module.should_auto_archive

        def flaky(task, now):
            if task.id == "bad":
                raise RuntimeError("corrupt record")
            return original(task, now)

        monkeypatch.setattr(task_service_module, "should_auto_archive", flaky)
        await json_store.upsert(make_task(id="bad", due_at=clock.now - timedelta(hours=2)))
        await json_store.upsert(make_task(id="good", due_at=clock.now - timedelta(hours=2)))

        report = await service.run_maintenance_sweep(clock.now)

        assert report.failed_task_ids == ["bad"]
        assert report.reminded == 1
        assert (await json_store.find_by_id("good")).last_reminder_at == clock.now
        # 失败的任务原样保留
        assert (await json_store.find_by_id("bad")).last_reminder_at is None

    async def test_naive_now_rejected(self, service: TaskService, clock):
        with pytest.raises(ValueError):
            await service.run_maintenance_sweep(clock.now.replace(tzinfo=None))

    async def test_defaults_to_clock(self, service: TaskService, json_store, make_task, clock):
        await json_store.upsert(make_task(due_at=clock.now - timedelta(hours=2)))
        report = await service.run_maintenance_sweep()
        assert report.reminded == 1

    async def test_broadcast_stamped_with_sweep_instant(
        self, service: TaskService, json_store, make_task, clock, sse_hub
    ):
        """显式传入的扫描时刻同时用于变更与广播"""
        await json_store.upsert(make_task(due_at=clock.now - timedelta(hours=2)))
        queue = await sse_hub.subscribe()
        sweep_now = clock.now + timedelta(minutes=30)

        await service.run_maintenance_sweep(sweep_now)

        event = queue.get_nowait()
        assert event.task.last_reminder_at == sweep_now
        assert event.ts == sweep_now


class TestSweepClaimRace:
    """认领与维护扫描并发：任一先后顺序都不丢更新"""

    @pytest.mark.parametrize("sweep_first", [False, True])
    async def test_claim_and_sweep_both_kept(
        self,
        service: TaskService,
        json_store,
        make_task,
        clock,
        other_officer,
        sweep_first: bool,
    ):
        await json_store.upsert(make_task(due_at=clock.now - timedelta(hours=2)))

        claim = service.claim_task("task-1", other_officer)
        sweep = service.run_maintenance_sweep(clock.now)
        if sweep_first:
            report, _ = await asyncio.gather(sweep, claim)
        else:
            _, report = await asyncio.gather(claim, sweep)

        assert report.reminded == 1
        stored = await json_store.find_by_id("task-1")
        assert stored.status == TaskStatus.CLAIMED
        assert stored.assignee == other_officer.ref()
        assert stored.last_reminder_at == clock.now
        assert len(await json_store.history_for_task("task-1")) == 1
