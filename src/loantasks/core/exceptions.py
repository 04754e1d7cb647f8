"""任务操作异常体系

InvalidTransitionError 与 PermissionDeniedError 必须可区分：
调用方据此区分“流转不存在”与“无权执行”。两者同时适用时先报 InvalidTransition。
"""

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models.enums import NotificationTarget, TaskStatus
    from .models.task import Task


class PermissionRule(StrEnum):
    """被拒绝时触发的具体权限规则"""

    CLAIM = "CLAIM"
    UNCLAIM = "UNCLAIM"
    CANCEL = "CANCEL"
    MARK_NEEDS_REVIEW = "MARK_NEEDS_REVIEW"
    RESOLVE_NEEDS_REVIEW = "RESOLVE_NEEDS_REVIEW"
    COMPLETE = "COMPLETE"
    REVIEW_NOTE = "REVIEW_NOTE"


class TaskError(Exception):
    """任务操作基础异常"""

    code = "TASK_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TaskNotFoundError(TaskError):
    """引用的任务不存在，不做内部重试"""

    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task with id {task_id} does not exist")
        self.task_id = task_id


class InvalidTransitionError(TaskError):
    """目标状态不在当前状态/类别的合法流转集合中"""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: "TaskStatus", to_status: "TaskStatus") -> None:
        super().__init__(f"Cannot move from {from_status} to {to_status}")
        self.from_status = from_status
        self.to_status = to_status


class PermissionDeniedError(TaskError):
    """权限谓词未通过"""

    code = "PERMISSION_DENIED"

    def __init__(self, rule: PermissionRule, message: str) -> None:
        super().__init__(message)
        self.rule = rule


class NotificationDeliveryError(TaskError):
    """变更已提交，但部分投递目标失败

    task 为已持久化的任务值，调用方可视变更为成功。
    """

    code = "NOTIFICATION_DELIVERY_FAILED"

    def __init__(
        self,
        task: "Task",
        failures: "dict[NotificationTarget, Exception]",
    ) -> None:
        targets = ", ".join(sorted(str(t) for t in failures))
        super().__init__(f"Notification delivery failed for targets: {targets}")
        self.task = task
        self.failures = failures
