"""loantasks Core Store -- 任务与历史的持久化实现

提供工厂函数按后端类型创建 TaskStore 实例。
"""

from pathlib import Path

import aiosqlite
import structlog

from ..config import StoreBackend
from .json_store import JsonDocumentStore
from .protocols import TaskStore
from .sqlite_init import init_db
from .sqlite_store import SqliteDocumentStore

log = structlog.get_logger()


async def create_json_store(path: str | Path) -> JsonDocumentStore:
    """创建并初始化 JSON 文档存储"""
    store = JsonDocumentStore(path)
    await store.init()
    return store


async def create_sqlite_store(db_path: str | Path) -> SqliteDocumentStore:
    """创建并初始化 SQLite 文档存储"""
    # 确保数据库目录存在
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(str(db_path))
    await init_db(conn)
    return SqliteDocumentStore(conn)


async def create_store(backend: StoreBackend, path: str | Path) -> TaskStore:
    """按后端类型创建 TaskStore

    Args:
        backend: "json" 或 "sqlite"
        path: JSON 文档路径或 SQLite 数据库路径

    Returns:
        已初始化的 TaskStore
    """
    log.info("store_opening", backend=backend, path=str(path))
    if backend == "sqlite":
        return await create_sqlite_store(path)
    return await create_json_store(path)


__all__ = [
    "TaskStore",
    "JsonDocumentStore",
    "SqliteDocumentStore",
    "create_store",
    "create_json_store",
    "create_sqlite_store",
    "init_db",
]
