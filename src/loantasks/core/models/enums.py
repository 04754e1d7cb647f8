"""枚举定义 -- 任务类型、紧急度、角色、状态与事件标签

包含 TaskStatus 生命周期状态、ACTIVE_STATUSES 活跃状态集合
以及 TERMINAL_STATES 终态集合。流转规则见 workflow 模块。
"""

from enum import StrEnum


class TaskType(StrEnum):
    """任务类别 -- 决定流程（标准 / merge）与权限限制"""

    LOI = "LOI"
    VALUE = "VALUE"
    FRAUD = "FRAUD"
    LOAN_DOCS = "LOAN_DOCS"


# merge 流程类别
MERGE_FLOW_TYPE = TaskType.LOAN_DOCS

# 需要 FILE_CHECKER 角色才能认领/完成的类别
RESTRICTED_TYPE = TaskType.FRAUD


class UrgencyLevel(StrEnum):
    """紧急度 -- 截止时间策略标签"""

    GREEN = "GREEN"
    YELLOW = "YELLOW"
    ORANGE = "ORANGE"
    RED = "RED"


class UserRole(StrEnum):
    LOAN_OFFICER = "LOAN_OFFICER"
    FILE_CHECKER = "FILE_CHECKER"
    ADMIN = "ADMIN"


class TaskStatus(StrEnum):
    """Task 生命周期状态（有序）"""

    OPEN = "OPEN"
    CLAIMED = "CLAIMED"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    MERGE_DONE = "MERGE_DONE"
    MERGE_APPROVED = "MERGE_APPROVED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    ARCHIVED = "ARCHIVED"


# 维护扫描中可以收到逾期提醒的状态
ACTIVE_STATUSES: frozenset[TaskStatus] = frozenset(
    {
        TaskStatus.OPEN,
        TaskStatus.CLAIMED,
        TaskStatus.NEEDS_REVIEW,
        TaskStatus.MERGE_DONE,
        TaskStatus.MERGE_APPROVED,
    }
)

TERMINAL_STATES: frozenset[TaskStatus] = frozenset(
    {
        TaskStatus.COMPLETED,
        TaskStatus.CANCELLED,
        TaskStatus.ARCHIVED,
    }
)


class HistoryAction(StrEnum):
    """历史事件动作标签"""

    TASK_CREATED = "TASK_CREATED"
    TASK_CLAIMED = "TASK_CLAIMED"
    TASK_UNCLAIMED = "TASK_UNCLAIMED"
    TASK_STATUS_CHANGED = "TASK_STATUS_CHANGED"
    TASK_REVIEW_NOTE_ADDED = "TASK_REVIEW_NOTE_ADDED"


class NotificationKind(StrEnum):
    """通知事件类型"""

    TASK_CREATED = "TASK_CREATED"
    TASK_CLAIMED = "TASK_CLAIMED"
    TASK_UNCLAIMED = "TASK_UNCLAIMED"
    TASK_STATUS_CHANGED = "TASK_STATUS_CHANGED"
    TASK_REMINDER = "TASK_REMINDER"
    TASK_ARCHIVED = "TASK_ARCHIVED"
    TASK_REVIEW_NOTE = "TASK_REVIEW_NOTE"


class NotificationTarget(StrEnum):
    """通知投递目标 -- 每个事件对三个目标各扇出一次"""

    IN_APP = "IN_APP"
    DM = "DM"
    CHANNEL = "CHANNEL"
