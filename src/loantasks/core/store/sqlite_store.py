"""SqliteDocumentStore -- aiosqlite 上的任务 + 历史文档存储

每次写操作在同一把 asyncio.Lock 内以单个事务提交，失败时回滚，
与 JsonDocumentStore 提供相同的串行化与原子性保证。
"""

import asyncio
import json
from collections.abc import Iterable

import aiosqlite

from ..models.event import HistoryEvent
from ..models.task import Task


def _dumps(doc: dict) -> str:
    return json.dumps(doc, ensure_ascii=False)


class SqliteDocumentStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self._write_lock = asyncio.Lock()

    @property
    def conn(self) -> aiosqlite.Connection:
        return self._conn

    async def _upsert_row(self, task: Task) -> None:
        await self._conn.execute(
            """
            INSERT INTO tasks (task_id, updated_ts, body)
            VALUES (?, ?, ?)
            ON CONFLICT(task_id) DO UPDATE SET
                updated_ts = excluded.updated_ts,
                body = excluded.body
            """,
            (task.id, task.updated_at.timestamp(), _dumps(task.to_document())),
        )

    async def _insert_event_row(self, event: HistoryEvent) -> None:
        await self._conn.execute(
            "INSERT INTO history (event_id, task_id, at_ts, body) VALUES (?, ?, ?, ?)",
            (event.id, event.task_id, event.at.timestamp(), _dumps(event.to_document())),
        )

    async def list_all(self) -> list[Task]:
        cursor = await self._conn.execute(
            "SELECT body FROM tasks ORDER BY updated_ts DESC"
        )
        rows = await cursor.fetchall()
        return [Task.model_validate_json(row[0]) for row in rows]

    async def find_by_id(self, task_id: str) -> Task | None:
        cursor = await self._conn.execute(
            "SELECT body FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return Task.model_validate_json(row[0])

    async def upsert(self, task: Task, event: HistoryEvent | None = None) -> None:
        async with self._write_lock:
            try:
                await self._upsert_row(task)
                if event is not None:
                    await self._insert_event_row(event)
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise

    async def replace_all(
        self,
        tasks: Iterable[Task],
        events: Iterable[HistoryEvent] = (),
    ) -> None:
        tasks = list(tasks)
        events = list(events)
        async with self._write_lock:
            try:
                await self._conn.execute("DELETE FROM tasks")
                for task in tasks:
                    await self._upsert_row(task)
                for event in events:
                    await self._insert_event_row(event)
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise

    async def append_history(self, event: HistoryEvent) -> None:
        async with self._write_lock:
            try:
                await self._insert_event_row(event)
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise

    async def history_for_task(self, task_id: str) -> list[HistoryEvent]:
        cursor = await self._conn.execute(
            "SELECT body FROM history WHERE task_id = ? ORDER BY at_ts ASC, rowid ASC",
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [HistoryEvent.model_validate_json(row[0]) for row in rows]

    async def close(self) -> None:
        async with self._write_lock:
            await self._conn.close()
