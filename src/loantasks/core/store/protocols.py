"""Store Protocol 接口定义

所有写操作严格串行（同一份文档上的读-改-写），
读操作返回的任务按 updated_at 倒序，历史按事件时间正序。
"""

from collections.abc import Iterable
from typing import Protocol

from ..models.event import HistoryEvent
from ..models.task import Task


class TaskStore(Protocol):
    """任务 + 历史存储接口"""

    async def list_all(self) -> list[Task]:
        """全部任务，按 updated_at 倒序"""
        ...

    async def find_by_id(self, task_id: str) -> Task | None:
        """根据 id 查询任务"""
        ...

    async def upsert(self, task: Task, event: HistoryEvent | None = None) -> None:
        """按 id 插入或替换任务，并原子地追加配对的历史事件"""
        ...

    async def replace_all(
        self,
        tasks: Iterable[Task],
        events: Iterable[HistoryEvent] = (),
    ) -> None:
        """整体替换任务集合（维护扫描批量写入）"""
        ...

    async def append_history(self, event: HistoryEvent) -> None:
        """追加历史事件（append-only）"""
        ...

    async def history_for_task(self, task_id: str) -> list[HistoryEvent]:
        """指定任务的历史，按事件时间正序"""
        ...

    async def close(self) -> None:
        """释放底层资源"""
        ...
