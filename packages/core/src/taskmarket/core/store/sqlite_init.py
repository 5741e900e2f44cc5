"""SQLite 数据库初始化

PRAGMA 配置 + 四张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL（is_assigned 由 status 派生，不建列）
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id          TEXT PRIMARY KEY,
    name             TEXT NOT NULL,
    description      TEXT NOT NULL,
    price            REAL NOT NULL,
    due_date         TEXT NOT NULL,
    date_created     TEXT NOT NULL,
    updated_at       TEXT NOT NULL,
    status           TEXT NOT NULL DEFAULT 'PENDING',
    assigned_to      TEXT,
    business_id      TEXT NOT NULL,
    solution         TEXT NOT NULL DEFAULT '',
    review_comments  TEXT,
    reviewed_at      TEXT,
    reviewed_by      TEXT,
    milestones       TEXT NOT NULL DEFAULT '{}',
    version          INTEGER NOT NULL DEFAULT 0
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_business_id ON tasks(business_id);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_assigned_to ON tasks(assigned_to);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_date_created ON tasks(date_created DESC);",
]

# businesses 表 DDL（tasks 列为 JSON 数组）
_BUSINESSES_DDL = """
CREATE TABLE IF NOT EXISTS businesses (
    business_id    TEXT PRIMARY KEY,
    business_name  TEXT NOT NULL DEFAULT '',
    owner_uid      TEXT,
    created_at     TEXT NOT NULL,
    tasks          TEXT NOT NULL DEFAULT '[]'
);
"""

# principals 表 DDL（principal -> 商家/员工身份）
_PRINCIPALS_DDL = """
CREATE TABLE IF NOT EXISTS principals (
    uid          TEXT PRIMARY KEY,
    business_id  TEXT,
    employee_id  TEXT
);
"""

# task_events 表 DDL（审计日志，任务删除后保留，因此不设外键）
_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS task_events (
    event_id      TEXT PRIMARY KEY,
    task_id       TEXT NOT NULL,
    task_seq      INTEGER NOT NULL,
    ts            TEXT NOT NULL,
    type          TEXT NOT NULL,
    actor         TEXT NOT NULL,
    principal_id  TEXT,
    payload       TEXT NOT NULL DEFAULT '{}'
);
"""

_EVENTS_INDEXES = [
    # 任务内事件序号唯一约束（确保 task_seq 严格单调递增）
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_task_events_task_seq "
    "ON task_events(task_id, task_seq);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_TASKS_DDL)
    await conn.execute(_BUSINESSES_DDL)
    await conn.execute(_PRINCIPALS_DDL)
    await conn.execute(_EVENTS_DDL)

    # 创建索引
    for idx_sql in _TASKS_INDEXES + _EVENTS_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
