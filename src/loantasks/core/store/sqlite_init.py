"""SQLite 数据库初始化 -- PRAGMA 配置 + 文档表 DDL + 索引创建

任务与历史均以 JSON 文档形式保存在 body 列；
updated_ts / at_ts 为 epoch 秒，仅用于排序。
"""

import aiosqlite

# tasks 表 DDL
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id     TEXT PRIMARY KEY,
    updated_ts  REAL NOT NULL,
    body        TEXT NOT NULL
);
"""

# history 表 DDL（append-only，不对 tasks 设外键：任务清理后历史保留）
_HISTORY_DDL = """
CREATE TABLE IF NOT EXISTS history (
    event_id    TEXT PRIMARY KEY,
    task_id     TEXT NOT NULL,
    at_ts       REAL NOT NULL,
    body        TEXT NOT NULL
);
"""

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_updated_ts ON tasks(updated_ts DESC);",
    "CREATE INDEX IF NOT EXISTS idx_history_task_at ON history(task_id, at_ts);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    await conn.execute(_TASKS_DDL)
    await conn.execute(_HISTORY_DDL)

    for idx_sql in _INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效"""
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
