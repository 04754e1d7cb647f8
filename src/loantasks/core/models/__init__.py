"""loantasks Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    ACTIVE_STATUSES,
    MERGE_FLOW_TYPE,
    RESTRICTED_TYPE,
    TERMINAL_STATES,
    HistoryAction,
    NotificationKind,
    NotificationTarget,
    TaskStatus,
    TaskType,
    UrgencyLevel,
    UserRole,
)
from .event import BroadcastEvent, HistoryEvent, MaintenanceReport, NotificationEvent
from .task import SYSTEM_ACTOR, CreateTaskInput, Task, UserIdentity, UserRef

__all__ = [
    # 枚举
    "TaskStatus",
    "TaskType",
    "UrgencyLevel",
    "UserRole",
    "HistoryAction",
    "NotificationKind",
    "NotificationTarget",
    # 状态集合
    "ACTIVE_STATUSES",
    "TERMINAL_STATES",
    "MERGE_FLOW_TYPE",
    "RESTRICTED_TYPE",
    # Task
    "Task",
    "CreateTaskInput",
    "UserIdentity",
    "UserRef",
    "SYSTEM_ACTOR",
    # Event
    "HistoryEvent",
    "NotificationEvent",
    "BroadcastEvent",
    "MaintenanceReport",
]
