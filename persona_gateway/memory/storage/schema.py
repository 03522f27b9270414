from __future__ import annotations

import os
from pathlib import Path

import aiosqlite

from .utils import _sqlite_connection


class GatewaySchemaMixin:
    SCHEMA_VERSION = 2

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _allow_destructive_reset_on_mismatch() -> bool:
        raw = os.getenv("GATEWAY_SQLITE_RESET_ON_SCHEMA_MISMATCH", "")
        return raw.strip().lower() in {"1", "true", "yes", "y", "on"}

    async def _has_user_tables(self, db: aiosqlite.Connection) -> bool:
        async with db.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' LIMIT 1"
        ) as cursor:
            row = await cursor.fetchone()
        return bool(row)

    async def init(self) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            async with db.execute("PRAGMA user_version") as cursor:
                row = await cursor.fetchone()
            version = int(row[0]) if row else 0
            has_tables = await self._has_user_tables(db)

            if has_tables and version != self.SCHEMA_VERSION:
                if not self._allow_destructive_reset_on_mismatch():
                    raise RuntimeError(
                        "SQLite schema version mismatch detected. "
                        f"Found user_version={version}, supported={self.SCHEMA_VERSION}. "
                        "Set GATEWAY_SQLITE_RESET_ON_SCHEMA_MISMATCH=1 to allow destructive reset."
                    )
                await self._drop_schema(db)

            await self._create_schema(db)
            await db.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")
            await db.commit()

    async def _drop_schema(self, db: aiosqlite.Connection) -> None:
        for table in (
            "history_messages",
            "character_sessions",
            "characters",
            "channels",
            "guilds",
            "blocked_users",
        ):
            await db.execute(f"DROP TABLE IF EXISTS {table}")

    async def _create_schema(self, db: aiosqlite.Connection) -> None:
        await db.executescript(
            """
            CREATE TABLE IF NOT EXISTS blocked_users (
                user_id INTEGER PRIMARY KEY,
                banned_at TEXT NOT NULL,
                duration_hours INTEGER NOT NULL DEFAULT 24
            );

            CREATE TABLE IF NOT EXISTS guilds (
                guild_id INTEGER PRIMARY KEY,
                cai_user_token TEXT,
                cai_plus_mode INTEGER,
                openai_api_endpoint TEXT,
                openai_api_token TEXT,
                openai_model TEXT,
                openai_temperature REAL,
                openai_freq_penalty REAL,
                openai_presence_penalty REAL,
                openai_max_tokens INTEGER,
                jailbreak_prompt TEXT,
                messages_format TEXT,
                created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS channels (
                channel_id INTEGER PRIMARY KEY,
                guild_id INTEGER NOT NULL,
                created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY(guild_id) REFERENCES guilds(guild_id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS characters (
                character_id TEXT PRIMARY KEY,
                tgt TEXT,
                name TEXT NOT NULL,
                title TEXT,
                greeting TEXT NOT NULL DEFAULT '',
                description TEXT,
                author_name TEXT,
                avatar_url TEXT,
                definition TEXT,
                image_gen_enabled INTEGER NOT NULL DEFAULT 0,
                interactions INTEGER NOT NULL DEFAULT 0,
                stars INTEGER,
                updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS character_sessions (
                session_id INTEGER PRIMARY KEY,
                webhook_token TEXT NOT NULL,
                call_prefix TEXT NOT NULL,
                channel_id INTEGER NOT NULL,
                guild_id INTEGER NOT NULL,
                character_id TEXT NOT NULL,
                backend_kind TEXT NOT NULL,
                cai_history_id TEXT,
                temperature REAL,
                freq_penalty REAL,
                presence_penalty REAL,
                max_tokens INTEGER,
                model TEXT,
                endpoint TEXT,
                api_token TEXT,
                system_prompt TEXT,
                created_at TEXT NOT NULL,
                last_call_at TEXT,
                FOREIGN KEY(channel_id) REFERENCES channels(channel_id) ON DELETE CASCADE,
                FOREIGN KEY(character_id) REFERENCES characters(character_id)
            );

            CREATE TABLE IF NOT EXISTS history_messages (
                message_id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id INTEGER NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY(session_id) REFERENCES character_sessions(session_id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_character_sessions_channel
            ON character_sessions(channel_id, session_id);

            CREATE INDEX IF NOT EXISTS idx_history_messages_session
            ON history_messages(session_id, message_id);
            """
        )
