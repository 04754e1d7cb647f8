"""Workflow 引擎 -- 状态流转、权限谓词、维护扫描谓词

纯函数，无副作用。流转合法性 = 目标状态属于 next_allowed_statuses(task)。
"""

from datetime import datetime, timedelta

from .calendar import is_within_business_hours
from .config import AUTO_ARCHIVE_AFTER_DAYS, REMINDER_THROTTLE_MINUTES, AppConfig
from .exceptions import InvalidTransitionError, PermissionDeniedError, PermissionRule
from .models.enums import MERGE_FLOW_TYPE, RESTRICTED_TYPE, TaskStatus, UserRole
from .models.task import Task, UserIdentity

STANDARD_FLOW: tuple[TaskStatus, ...] = (
    TaskStatus.OPEN,
    TaskStatus.CLAIMED,
    TaskStatus.COMPLETED,
    TaskStatus.ARCHIVED,
)

MERGE_FLOW: tuple[TaskStatus, ...] = (
    TaskStatus.OPEN,
    TaskStatus.CLAIMED,
    TaskStatus.MERGE_DONE,
    TaskStatus.MERGE_APPROVED,
    TaskStatus.COMPLETED,
    TaskStatus.ARCHIVED,
)

# 与类别无关、始终可用的旁路流转
SIDE_EDGES: dict[TaskStatus, tuple[TaskStatus, ...]] = {
    TaskStatus.OPEN: (TaskStatus.CANCELLED,),
    TaskStatus.CLAIMED: (TaskStatus.NEEDS_REVIEW, TaskStatus.CANCELLED),
    TaskStatus.NEEDS_REVIEW: (
        TaskStatus.CLAIMED,
        TaskStatus.COMPLETED,
        TaskStatus.CANCELLED,
    ),
    TaskStatus.MERGE_DONE: (TaskStatus.CANCELLED,),
    TaskStatus.MERGE_APPROVED: (TaskStatus.CANCELLED,),
}

_COMPLETABLE_FROM = frozenset(
    {TaskStatus.CLAIMED, TaskStatus.MERGE_APPROVED, TaskStatus.NEEDS_REVIEW}
)


def flow_for(task: Task) -> tuple[TaskStatus, ...]:
    return MERGE_FLOW if task.task_type == MERGE_FLOW_TYPE else STANDARD_FLOW


def next_allowed_statuses(task: Task) -> list[TaskStatus]:
    """当前任务可流转的目标状态：类别流程的前进一步 + 旁路流转（去重、保序）"""
    flow = flow_for(task)
    candidates: list[TaskStatus] = []
    if task.status in flow:
        index = flow.index(task.status)
        if index < len(flow) - 1:
            candidates.append(flow[index + 1])
    candidates.extend(SIDE_EDGES.get(task.status, ()))
    return list(dict.fromkeys(candidates))


def validate_transition(task: Task, target: TaskStatus) -> bool:
    return target in next_allowed_statuses(task)


# ---------------------------------------------------------------------------
# 权限谓词
# ---------------------------------------------------------------------------


def _lacks_restricted_role(task: Task, user: UserIdentity) -> bool:
    return task.task_type == RESTRICTED_TYPE and not user.has_role(UserRole.FILE_CHECKER)


def can_claim(task: Task, user: UserIdentity) -> bool:
    if task.status != TaskStatus.OPEN:
        return False
    return not _lacks_restricted_role(task, user)


def can_unclaim(task: Task, user: UserIdentity) -> bool:
    if task.status != TaskStatus.CLAIMED:
        return False
    return task.is_assigned_to(user) or user.is_admin


def can_cancel(task: Task, user: UserIdentity) -> bool:
    return task.is_created_by(user) or user.is_admin


def can_mark_needs_review(task: Task, user: UserIdentity) -> bool:
    if task.status != TaskStatus.CLAIMED:
        return False
    return task.is_created_by(user) or task.is_assigned_to(user)


def can_resolve_needs_review(task: Task, user: UserIdentity) -> bool:
    if task.status != TaskStatus.NEEDS_REVIEW:
        return False
    return task.is_created_by(user) or task.is_assigned_to(user) or user.is_admin


def can_complete(task: Task, user: UserIdentity) -> bool:
    # 受限类别不论与任务的关系如何都需要 FILE_CHECKER
    if _lacks_restricted_role(task, user):
        return False
    if task.status not in _COMPLETABLE_FROM:
        return False
    return task.is_created_by(user) or task.is_assigned_to(user) or user.is_admin


def can_edit_review_note(task: Task, user: UserIdentity) -> bool:
    if task.status == TaskStatus.ARCHIVED:
        return False
    return task.is_created_by(user) or task.is_assigned_to(user) or user.is_admin


# ---------------------------------------------------------------------------
# 校验（抛出异常）
# ---------------------------------------------------------------------------


def check_claim(task: Task, user: UserIdentity) -> None:
    """校验认领

    Raises:
        InvalidTransitionError: 任务不在 OPEN
        PermissionDeniedError: 受限类别且缺少 FILE_CHECKER 角色
    """
    if task.status != TaskStatus.OPEN:
        raise InvalidTransitionError(task.status, TaskStatus.CLAIMED)
    if not can_claim(task, user):
        raise PermissionDeniedError(
            PermissionRule.CLAIM,
            f"Only file checkers can claim {task.task_type} tasks",
        )


def check_unclaim(task: Task, user: UserIdentity) -> None:
    """校验退回认领

    Raises:
        InvalidTransitionError: 任务不在 CLAIMED
        PermissionDeniedError: 既非当前 assignee 也非 admin
    """
    if task.status != TaskStatus.CLAIMED:
        raise InvalidTransitionError(task.status, TaskStatus.OPEN)
    if not can_unclaim(task, user):
        raise PermissionDeniedError(
            PermissionRule.UNCLAIM,
            "Only assignee or admin can unclaim this task",
        )


def check_transition(task: Task, target: TaskStatus, user: UserIdentity) -> None:
    """校验状态流转：先校验边是否存在，再校验权限

    Raises:
        InvalidTransitionError: 目标状态不在合法流转集合中
        PermissionDeniedError: 对应权限规则未通过
    """
    if not validate_transition(task, target):
        raise InvalidTransitionError(task.status, target)

    if target == TaskStatus.CANCELLED and not can_cancel(task, user):
        raise PermissionDeniedError(
            PermissionRule.CANCEL,
            "Only the task creator or admin can cancel a task",
        )

    if target == TaskStatus.NEEDS_REVIEW and not can_mark_needs_review(task, user):
        raise PermissionDeniedError(
            PermissionRule.MARK_NEEDS_REVIEW,
            "Only assignee or creator can mark as needs review",
        )

    if (
        task.status == TaskStatus.NEEDS_REVIEW
        and target in (TaskStatus.CLAIMED, TaskStatus.COMPLETED)
        and not can_resolve_needs_review(task, user)
    ):
        raise PermissionDeniedError(
            PermissionRule.RESOLVE_NEEDS_REVIEW,
            "Only assignee, creator, or admin can move a needs review task",
        )

    if target == TaskStatus.COMPLETED and not can_complete(task, user):
        raise PermissionDeniedError(
            PermissionRule.COMPLETE,
            "User cannot complete this task",
        )


# ---------------------------------------------------------------------------
# 维护扫描谓词
# ---------------------------------------------------------------------------


def is_overdue(task: Task, now: datetime) -> bool:
    if task.status in (TaskStatus.COMPLETED, TaskStatus.ARCHIVED, TaskStatus.CANCELLED):
        return False
    return task.due_at < now


def should_send_reminder(task: Task, now: datetime, config: AppConfig) -> bool:
    """逾期 + 距上次提醒满 60 分钟（或从未提醒）+ 当前处于营业时间"""
    if not is_overdue(task, now):
        return False

    if task.last_reminder_at is not None:
        if now - task.last_reminder_at < timedelta(minutes=REMINDER_THROTTLE_MINUTES):
            return False

    return is_within_business_hours(now, config)


def archive_reference_time(task: Task) -> datetime:
    """自动归档的参考时刻：completed_at / cancelled_at，缺失时回落到 updated_at"""
    return task.completed_at or task.cancelled_at or task.updated_at


def should_auto_archive(task: Task, now: datetime) -> bool:
    if task.status not in (TaskStatus.COMPLETED, TaskStatus.CANCELLED):
        return False
    return now - archive_reference_time(task) > timedelta(days=AUTO_ARCHIVE_AFTER_DAYS)


def should_purge_archived(task: Task, now: datetime, retention_days: int) -> bool:
    if task.status != TaskStatus.ARCHIVED or task.archived_at is None:
        return False
    return now - task.archived_at > timedelta(days=retention_days)
