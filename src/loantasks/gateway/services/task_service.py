"""TaskService -- 任务创建/认领/流转/维护扫描业务逻辑

每个变更操作的流程：
1. Workflow 引擎校验流转与权限
2. 构造新的不可变 Task 值（仅创建时计算 due_at）
3. Store 原子提交任务 + 配对的历史事件
4. 提交成功后广播 task.changed，并向三个投递目标各发一条通知
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from loantasks.core.calendar import compute_due_at
from loantasks.core.config import AppConfig
from loantasks.core.exceptions import (
    NotificationDeliveryError,
    PermissionDeniedError,
    PermissionRule,
    TaskNotFoundError,
)
from loantasks.core.models import (
    ACTIVE_STATUSES,
    SYSTEM_ACTOR,
    BroadcastEvent,
    CreateTaskInput,
    HistoryAction,
    HistoryEvent,
    MaintenanceReport,
    NotificationEvent,
    NotificationKind,
    NotificationTarget,
    Task,
    TaskStatus,
    UrgencyLevel,
    UserIdentity,
    UserRef,
)
from loantasks.core.store import TaskStore
from loantasks.core.workflow import (
    can_edit_review_note,
    check_claim,
    check_transition,
    check_unclaim,
    next_allowed_statuses,
    should_auto_archive,
    should_purge_archived,
    should_send_reminder,
)
from ulid import ULID

from .notifier import NotificationSink
from .sse_hub import SSEHub

log = structlog.get_logger()


def utc_now() -> datetime:
    return datetime.now(UTC)


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


_TERMINAL_STAMP_FIELDS: dict[TaskStatus, str] = {
    TaskStatus.COMPLETED: "completed_at",
    TaskStatus.CANCELLED: "cancelled_at",
    TaskStatus.ARCHIVED: "archived_at",
}


class TaskService:
    """任务业务服务

    Args:
        store: 任务存储
        notifier: 通知投递
        sse_hub: 实时广播（可为 None）
        config: 业务规则配置
        clock: 当前时刻来源，返回带时区的 datetime
    """

    def __init__(
        self,
        store: TaskStore,
        notifier: NotificationSink,
        sse_hub: SSEHub | None,
        config: AppConfig,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._sse_hub = sse_hub
        self._config = config
        self._clock = clock
        # 读-校验-提交 临界区：认领与维护扫描并发时不会互相覆盖
        self._write_lock = asyncio.Lock()

    @property
    def config(self) -> AppConfig:
        return self._config

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    async def list_tasks(self, status: TaskStatus | None = None) -> list[Task]:
        """查询任务列表，按 updated_at 倒序"""
        tasks = await self._store.list_all()
        if status is not None:
            tasks = [t for t in tasks if t.status == status]
        return tasks

    async def get_task(self, task_id: str) -> Task | None:
        """查询任务详情"""
        return await self._store.find_by_id(task_id)

    async def get_history(self, task_id: str) -> list[HistoryEvent]:
        """查询任务历史，按时间正序"""
        return await self._store.history_for_task(task_id)

    async def allowed_transitions(self, task_id: str) -> list[TaskStatus]:
        task = await self._require_task(task_id)
        return next_allowed_statuses(task)

    # ------------------------------------------------------------------
    # 变更
    # ------------------------------------------------------------------

    async def create_task(self, data: CreateTaskInput, actor: UserIdentity) -> Task:
        """创建任务

        未指定 due_at 时按紧急度计算；紧急度默认 GREEN，状态为 OPEN。
        """
        now = self._clock()
        urgency = data.urgency or UrgencyLevel.GREEN
        if data.due_at is not None:
            due_at = data.due_at.astimezone(UTC)
        else:
            due_at = compute_due_at(urgency, now, self._config)

        task = Task(
            id=str(ULID()),
            loan_name=data.loan_name.strip(),
            task_type=data.task_type,
            due_at=due_at,
            urgency=urgency,
            notes=data.notes.strip(),
            humperdink_link=_clean_optional(data.humperdink_link),
            server_location=_clean_optional(data.server_location),
            status=TaskStatus.OPEN,
            created_at=now,
            updated_at=now,
            created_by=actor.ref(),
        )
        event = self._make_history(
            task.id, actor.ref(), HistoryAction.TASK_CREATED,
            f"Created {task.task_type} task", now,
        )

        async with self._write_lock:
            await self._store.upsert(task, event)

        log.info(
            "task_created",
            task_id=task.id,
            task_type=task.task_type.value,
            urgency=urgency.value,
            due_at=due_at.isoformat(),
        )
        await self._publish(
            task,
            NotificationKind.TASK_CREATED,
            actor.ref(),
            f"{actor.display_name} created task {task.loan_name}",
        )
        return task

    async def claim_task(self, task_id: str, actor: UserIdentity) -> Task:
        """认领任务：OPEN -> CLAIMED，设置 assignee"""
        async with self._write_lock:
            task = await self._require_task(task_id)
            check_claim(task, actor)

            now = self._clock()
            updated = task.model_copy(
                update={
                    "status": TaskStatus.CLAIMED,
                    "assignee": actor.ref(),
                    "updated_at": now,
                }
            )
            event = self._make_history(
                task.id, actor.ref(), HistoryAction.TASK_CLAIMED,
                f"Claimed by {actor.display_name}", now,
            )
            await self._store.upsert(updated, event)

        log.info("task_claimed", task_id=task_id, assignee=actor.id)
        await self._publish(
            updated,
            NotificationKind.TASK_CLAIMED,
            actor.ref(),
            f"{actor.display_name} claimed {updated.loan_name}",
        )
        return updated

    async def unclaim_task(self, task_id: str, actor: UserIdentity) -> Task:
        """退回认领：CLAIMED -> OPEN，清除 assignee"""
        async with self._write_lock:
            task = await self._require_task(task_id)
            check_unclaim(task, actor)

            now = self._clock()
            updated = task.model_copy(
                update={
                    "status": TaskStatus.OPEN,
                    "assignee": None,
                    "updated_at": now,
                }
            )
            event = self._make_history(
                task.id, actor.ref(), HistoryAction.TASK_UNCLAIMED,
                f"Returned to open queue by {actor.display_name}", now,
            )
            await self._store.upsert(updated, event)

        log.info("task_unclaimed", task_id=task_id, by=actor.id)
        await self._publish(
            updated,
            NotificationKind.TASK_UNCLAIMED,
            actor.ref(),
            f"{actor.display_name} unclaimed {updated.loan_name}",
        )
        return updated

    async def transition_task(
        self,
        task_id: str,
        target: TaskStatus,
        actor: UserIdentity,
        review_notes: str | None = None,
    ) -> Task:
        """状态流转

        Raises:
            TaskNotFoundError: 任务不存在
            InvalidTransitionError: 目标状态不可达
            PermissionDeniedError: 权限规则未通过
        """
        review_notes = _clean_optional(review_notes)
        async with self._write_lock:
            task = await self._require_task(task_id)
            check_transition(task, target, actor)

            now = self._clock()
            updates: dict = {"status": target, "updated_at": now}
            if stamp_field := _TERMINAL_STAMP_FIELDS.get(target):
                updates[stamp_field] = now
            if target == TaskStatus.NEEDS_REVIEW and review_notes:
                updates["review_notes"] = review_notes
            updated = task.model_copy(update=updates)

            detail = f"{task.status} -> {target}"
            if review_notes:
                detail = f"{detail} | Review: {review_notes}"
            event = self._make_history(
                task.id, actor.ref(), HistoryAction.TASK_STATUS_CHANGED, detail, now
            )
            await self._store.upsert(updated, event)

        log.info(
            "task_status_changed",
            task_id=task_id,
            from_status=task.status.value,
            to_status=target.value,
            by=actor.id,
        )
        kind = (
            NotificationKind.TASK_ARCHIVED
            if target == TaskStatus.ARCHIVED
            else NotificationKind.TASK_STATUS_CHANGED
        )
        await self._publish(
            updated,
            kind,
            actor.ref(),
            f"{actor.display_name} moved {updated.loan_name} to {target}",
        )
        return updated

    async def add_review_note(self, task_id: str, text: str, actor: UserIdentity) -> Task:
        """记录审阅备注（creator / assignee / admin，已归档任务不可修改）"""
        text = text.strip()
        if not text:
            raise ValueError("review note must not be blank")

        async with self._write_lock:
            task = await self._require_task(task_id)
            if not can_edit_review_note(task, actor):
                raise PermissionDeniedError(
                    PermissionRule.REVIEW_NOTE,
                    "Only assignee, creator, or admin can add a review note",
                )

            now = self._clock()
            updated = task.model_copy(update={"review_notes": text, "updated_at": now})
            event = self._make_history(
                task.id, actor.ref(), HistoryAction.TASK_REVIEW_NOTE_ADDED,
                f"Review: {text}", now,
            )
            await self._store.upsert(updated, event)

        log.info("task_review_note_added", task_id=task_id, by=actor.id)
        await self._publish(
            updated,
            NotificationKind.TASK_REVIEW_NOTE,
            actor.ref(),
            f"{actor.display_name} added a review note to {updated.loan_name}",
        )
        return updated

    # ------------------------------------------------------------------
    # 维护扫描
    # ------------------------------------------------------------------

    async def run_maintenance_sweep(self, now: datetime | None = None) -> MaintenanceReport:
        """维护扫描：自动归档 -> 逾期提醒 -> 保留期清理

        读全部、算全部、写全部：任一计数非零时整体写入一次，
        提交成功后再发送提醒通知并为每个保留的任务广播一次。
        单个任务处理失败记录到 failed_task_ids，不影响其余任务。
        """
        now = now or self._clock()
        if now.tzinfo is None:
            raise ValueError("maintenance sweep requires a timezone-aware instant")

        report = MaintenanceReport()
        reminders: list[Task] = []
        archive_events: list[HistoryEvent] = []
        retained: list[Task] = []

        async with self._write_lock:
            tasks = await self._store.list_all()

            processed: list[Task] = []
            for task in tasks:
                try:
                    next_task = self._sweep_task(task, now)
                except Exception:
                    log.exception("maintenance_task_failed", task_id=task.id)
                    report.failed_task_ids.append(task.id)
                    processed.append(task)
                    continue

                if next_task.status != task.status:
                    report.auto_archived += 1
                    archive_events.append(
                        self._make_history(
                            task.id, SYSTEM_ACTOR, HistoryAction.TASK_STATUS_CHANGED,
                            f"{task.status} -> {next_task.status} (auto-archive)", now,
                        )
                    )
                if next_task.last_reminder_at != task.last_reminder_at:
                    report.reminded += 1
                    reminders.append(next_task)
                processed.append(next_task)

            retention_days = self._config.archive_retention_days
            for task in processed:
                if should_purge_archived(task, now, retention_days):
                    report.purged += 1
                else:
                    retained.append(task)

            if report.mutated:
                await self._store.replace_all(retained, archive_events)

        if report.mutated:
            for task in retained:
                await self._broadcast(task, ts=now)

        for task in reminders:
            try:
                await self._notify_all_targets(
                    NotificationKind.TASK_REMINDER,
                    task,
                    SYSTEM_ACTOR,
                    f"Task {task.loan_name} is overdue",
                )
            except NotificationDeliveryError:
                report.failed_task_ids.append(task.id)

        if report.mutated or report.failed_task_ids:
            log.info(
                "maintenance_sweep_completed",
                reminded=report.reminded,
                auto_archived=report.auto_archived,
                purged=report.purged,
                failed=len(report.failed_task_ids),
            )
        return report

    def _sweep_task(self, task: Task, now: datetime) -> Task:
        """单个任务的自动归档与提醒判定，返回新值（无变化时返回原值）"""
        if should_auto_archive(task, now):
            task = task.model_copy(
                update={
                    "status": TaskStatus.ARCHIVED,
                    "archived_at": now,
                    "updated_at": now,
                }
            )

        if task.status in ACTIVE_STATUSES and should_send_reminder(task, now, self._config):
            task = task.model_copy(update={"last_reminder_at": now, "updated_at": now})

        return task

    # ------------------------------------------------------------------
    # 内部辅助
    # ------------------------------------------------------------------

    async def _require_task(self, task_id: str) -> Task:
        task = await self._store.find_by_id(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    @staticmethod
    def _make_history(
        task_id: str,
        actor: UserRef,
        action: HistoryAction,
        detail: str,
        at: datetime,
    ) -> HistoryEvent:
        return HistoryEvent(
            id=str(ULID()),
            task_id=task_id,
            action=action,
            detail=detail,
            at=at,
            by=actor,
        )

    async def _publish(
        self,
        task: Task,
        kind: NotificationKind,
        actor: UserRef,
        message: str,
    ) -> None:
        await self._broadcast(task)
        await self._notify_all_targets(kind, task, actor, message)

    async def _broadcast(self, task: Task, ts: datetime | None = None) -> None:
        if self._sse_hub:
            await self._sse_hub.broadcast(BroadcastEvent(task=task, ts=ts or self._clock()))

    async def _notify_all_targets(
        self,
        kind: NotificationKind,
        task: Task,
        actor: UserRef,
        message: str,
    ) -> None:
        """向 IN_APP / DM / CHANNEL 各投递一次；全部尝试后再汇总失败"""
        created_at = self._clock()
        failures: dict[NotificationTarget, Exception] = {}
        for target in NotificationTarget:
            event = NotificationEvent(
                kind=kind,
                task=task,
                actor=actor,
                message=message,
                target=target,
                created_at=created_at,
            )
            try:
                await self._notifier.notify(event)
            except Exception as e:
                log.warning(
                    "notification_delivery_failed",
                    task_id=task.id,
                    kind=kind.value,
                    target=target.value,
                    error_type=type(e).__name__,
                )
                failures[target] = e

        if failures:
            raise NotificationDeliveryError(task, failures)
