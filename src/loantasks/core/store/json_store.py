"""JsonDocumentStore -- 单文件 JSON 文档存储

文档形如 {"tasks": [...], "history": [...]}。
所有写操作经同一把 asyncio.Lock 按 FIFO 顺序执行读-改-写，
后入队的写一定能看到先前写的结果。
写入先落临时文件、fsync，再 os.replace 原子替换，文档不会被写坏一半。
"""

import asyncio
import json
import os
import tempfile
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import structlog

from ..models.event import HistoryEvent
from ..models.task import Task

log = structlog.get_logger()

Document = dict[str, list[dict[str, Any]]]


def _empty_document() -> Document:
    return {"tasks": [], "history": []}


class JsonDocumentStore:
    """TaskStore 的 JSON 文件实现"""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def init(self) -> None:
        """确保目录与文档存在"""
        await asyncio.to_thread(self._init_sync)

    def _init_sync(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if not self._path.exists():
            self._write_sync(_empty_document())
            log.info("json_store_initialized", path=str(self._path))

    # ---- 底层读写（在线程中执行） ----

    def _read_sync(self) -> Document:
        raw = self._path.read_text(encoding="utf-8")
        parsed = json.loads(raw) if raw.strip() else {}
        return {
            "tasks": parsed.get("tasks") or [],
            "history": parsed.get("history") or [],
        }

    def _write_sync(self, data: Document) -> None:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def _read(self) -> Document:
        return await asyncio.to_thread(self._read_sync)

    async def _mutate(self, operation: Callable[[Document], None]) -> None:
        """串行执行一次读-改-写"""
        async with self._write_lock:
            data = await self._read()
            operation(data)
            await asyncio.to_thread(self._write_sync, data)

    # ---- TaskStore 接口 ----

    async def list_all(self) -> list[Task]:
        data = await self._read()
        tasks = [Task.model_validate(raw) for raw in data["tasks"]]
        return sorted(tasks, key=lambda t: t.updated_at, reverse=True)

    async def find_by_id(self, task_id: str) -> Task | None:
        data = await self._read()
        for raw in data["tasks"]:
            if raw.get("id") == task_id:
                return Task.model_validate(raw)
        return None

    async def upsert(self, task: Task, event: HistoryEvent | None = None) -> None:
        doc = task.to_document()

        def operation(data: Document) -> None:
            for index, raw in enumerate(data["tasks"]):
                if raw.get("id") == task.id:
                    data["tasks"][index] = doc
                    break
            else:
                data["tasks"].append(doc)
            if event is not None:
                data["history"].append(event.to_document())

        await self._mutate(operation)

    async def replace_all(
        self,
        tasks: Iterable[Task],
        events: Iterable[HistoryEvent] = (),
    ) -> None:
        task_docs = [t.to_document() for t in tasks]
        event_docs = [e.to_document() for e in events]

        def operation(data: Document) -> None:
            data["tasks"] = task_docs
            data["history"].extend(event_docs)

        await self._mutate(operation)

    async def append_history(self, event: HistoryEvent) -> None:
        doc = event.to_document()
        await self._mutate(lambda data: data["history"].append(doc))

    async def history_for_task(self, task_id: str) -> list[HistoryEvent]:
        data = await self._read()
        events = [
            HistoryEvent.model_validate(raw)
            for raw in data["history"]
            if raw.get("taskId") == task_id
        ]
        return sorted(events, key=lambda e: e.at)

    async def close(self) -> None:
        # 等待排队中的写完成
        async with self._write_lock:
            pass
