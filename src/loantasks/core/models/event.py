"""Event Domain Models -- 历史事件、通知事件、广播事件

HistoryEvent 只追加，不更新、不删除。
NotificationEvent / BroadcastEvent 由 TaskService 产生，不持久化。
"""

from typing import Literal

from pydantic import AwareDatetime, BaseModel, Field

from .enums import HistoryAction, NotificationKind, NotificationTarget
from .task import DocumentModel, Task, UserRef


class HistoryEvent(DocumentModel):
    """任务历史事件（append-only）"""

    id: str = Field(description="唯一标识，ULID 格式")
    task_id: str = Field(description="关联的 Task ID")
    action: HistoryAction
    at: AwareDatetime = Field(description="事件时间戳")
    by: UserRef = Field(description="操作者")
    detail: str = ""


class NotificationEvent(DocumentModel):
    """通知事件 -- 每个投递目标一条"""

    kind: NotificationKind
    task: Task = Field(description="任务快照")
    actor: UserRef
    message: str
    target: NotificationTarget
    created_at: AwareDatetime


class BroadcastEvent(DocumentModel):
    """实时广播事件 -- 订阅者据此收敛到任务最新状态"""

    type: Literal["task.changed"] = "task.changed"
    task: Task
    ts: AwareDatetime


class MaintenanceReport(BaseModel):
    """一次维护扫描的统计结果"""

    reminded: int = 0
    auto_archived: int = 0
    purged: int = 0
    failed_task_ids: list[str] = Field(default_factory=list)

    @property
    def mutated(self) -> bool:
        return bool(self.reminded or self.auto_archived or self.purged)
