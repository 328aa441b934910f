"""SQLite schema for grounded (code-first, created on startup)."""

import logging

from grounded.core.db_client import DBClient


logger = logging.getLogger(__name__)


TABLE_SCHEMAS: dict[str, str] = {
    "users": """CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        firebase_uid TEXT NOT NULL UNIQUE,
        email TEXT,
        display_name TEXT,
        current_streak INTEGER NOT NULL DEFAULT 0,
        longest_streak INTEGER NOT NULL DEFAULT 0,
        last_streak_date TEXT,
        created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
        updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
    )""",
    "tasks": """CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        date TEXT NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        tags TEXT NOT NULL DEFAULT '[]',
        recurrence TEXT NOT NULL DEFAULT '{}',
        is_completed INTEGER NOT NULL DEFAULT 0,
        is_deleted INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
        updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
    )""",
    "subtasks": """CREATE TABLE IF NOT EXISTS subtasks (
        id TEXT PRIMARY KEY,
        task_id TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        is_completed INTEGER NOT NULL DEFAULT 0,
        order_index INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
        updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
    )""",
    "chat_sessions": """CREATE TABLE IF NOT EXISTS chat_sessions (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL DEFAULT 'New Chat',
        is_active INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
        updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
    )""",
    "chat_messages": """CREATE TABLE IF NOT EXISTS chat_messages (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL REFERENCES chat_sessions(id) ON DELETE CASCADE,
        text TEXT NOT NULL,
        is_user INTEGER NOT NULL DEFAULT 0,
        confirmation TEXT,
        tasks TEXT,
        created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
    )""",
    "recent_chats": """CREATE TABLE IF NOT EXISTS recent_chats (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        query TEXT NOT NULL,
        created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
        UNIQUE(user_id, query)
    )""",
}

INDEXES: list[str] = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_user_id ON tasks (user_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_user_date ON tasks (user_id, date)",
    "CREATE INDEX IF NOT EXISTS idx_subtasks_task_id ON subtasks (task_id)",
    "CREATE INDEX IF NOT EXISTS idx_chat_sessions_user_id ON chat_sessions (user_id)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_chat_sessions_one_active "
    "ON chat_sessions (user_id) WHERE is_active = 1",
    "CREATE INDEX IF NOT EXISTS idx_chat_messages_session_id ON chat_messages (session_id)",
    "CREATE INDEX IF NOT EXISTS idx_recent_chats_user_id ON recent_chats (user_id)",
]


async def init_db(db: DBClient) -> None:
    """Create every table and index if they do not exist yet."""
    statements = [*TABLE_SCHEMAS.values(), *INDEXES]
    await db.execute_script(";\n".join(statements) + ";")
    logger.info("Database schema initialized", extra={"tables": list(TABLE_SCHEMAS)})
