from __future__ import annotations

from datetime import datetime
from typing import Any

import aiosqlite

from ...models import BackendKind, ConversationSession, HistoryMessage, SessionTuning
from .utils import _from_iso, _opt_float, _opt_int, _sqlite_connection, _to_iso


def _session_from_row(row: Any) -> ConversationSession:
    return ConversationSession(
        id=int(row["session_id"]),
        outbound_identity_id=int(row["session_id"]),
        outbound_secret=str(row["webhook_token"]),
        call_prefix=str(row["call_prefix"]),
        channel_id=int(row["channel_id"]),
        guild_id=int(row["guild_id"]),
        persona_id=str(row["character_id"]),
        backend_kind=BackendKind(str(row["backend_kind"])),
        external_session_ref=row["cai_history_id"],
        tuning=SessionTuning(
            temperature=_opt_float(row["temperature"]),
            freq_penalty=_opt_float(row["freq_penalty"]),
            presence_penalty=_opt_float(row["presence_penalty"]),
            max_tokens=_opt_int(row["max_tokens"]),
            model=row["model"],
            endpoint=row["endpoint"],
            token=row["api_token"],
            system_prompt=row["system_prompt"],
        ),
        created_at=_from_iso(row["created_at"]),
        last_call_at=_from_iso(row["last_call_at"]),
    )


class GatewaySessionsMixin:
    async def save_session(
        self,
        session: ConversationSession,
        first_message: HistoryMessage | None = None,
    ) -> ConversationSession:
        """Write the session and its opening history entry in one transaction."""
        tuning = session.tuning
        async with _sqlite_connection(self.db_path) as db:
            try:
                await db.execute(
                    """
                    INSERT INTO character_sessions (
                        session_id, webhook_token, call_prefix, channel_id, guild_id, character_id,
                        backend_kind, cai_history_id, temperature, freq_penalty, presence_penalty,
                        max_tokens, model, endpoint, api_token, system_prompt, created_at, last_call_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        int(session.id),
                        session.outbound_secret,
                        session.call_prefix,
                        int(session.channel_id),
                        int(session.guild_id),
                        session.persona_id,
                        session.backend_kind.value,
                        session.external_session_ref,
                        tuning.temperature,
                        tuning.freq_penalty,
                        tuning.presence_penalty,
                        tuning.max_tokens,
                        tuning.model,
                        tuning.endpoint,
                        tuning.token,
                        tuning.system_prompt,
                        _to_iso(session.created_at),
                        _to_iso(session.last_call_at),
                    ),
                )
                if first_message is not None:
                    await db.execute(
                        "INSERT INTO history_messages (session_id, role, content) VALUES (?, ?, ?)",
                        (int(session.id), first_message.role, first_message.content),
                    )
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        return session

    async def get_session(self, session_id: int) -> ConversationSession | None:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM character_sessions WHERE session_id = ?",
                (int(session_id),),
            ) as cursor:
                row = await cursor.fetchone()
        return _session_from_row(row) if row is not None else None

    async def list_channel_sessions(self, channel_id: int) -> list[ConversationSession]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM character_sessions WHERE channel_id = ? ORDER BY session_id",
                (int(channel_id),),
            ) as cursor:
                rows = await cursor.fetchall()
        return [_session_from_row(row) for row in rows]

    async def touch_session(self, session_id: int, at: datetime) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                "UPDATE character_sessions SET last_call_at = ? WHERE session_id = ?",
                (_to_iso(at), int(session_id)),
            )
            await db.commit()

    async def delete_session(self, session_id: int) -> bool:
        async with _sqlite_connection(self.db_path) as db:
            cursor = await db.execute("DELETE FROM character_sessions WHERE session_id = ?", (int(session_id),))
            await db.commit()
            return cursor.rowcount > 0

    async def append_history_message(self, session_id: int, role: str, content: str) -> HistoryMessage:
        async with _sqlite_connection(self.db_path) as db:
            cursor = await db.execute(
                "INSERT INTO history_messages (session_id, role, content) VALUES (?, ?, ?)",
                (int(session_id), role, content),
            )
            await db.commit()
            ordinal = int(cursor.lastrowid)
        return HistoryMessage(session_id=int(session_id), role=role, content=content, ordinal=ordinal)

    async def update_history_message(self, session_id: int, ordinal: int, content: str) -> bool:
        async with _sqlite_connection(self.db_path) as db:
            cursor = await db.execute(
                "UPDATE history_messages SET content = ? WHERE session_id = ? AND message_id = ?",
                (content, int(session_id), int(ordinal)),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def get_history(self, session_id: int) -> list[HistoryMessage]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT message_id, session_id, role, content
                FROM history_messages
                WHERE session_id = ?
                ORDER BY message_id ASC
                """,
                (int(session_id),),
            ) as cursor:
                rows = await cursor.fetchall()
        return [
            HistoryMessage(
                session_id=int(row["session_id"]),
                role=str(row["role"]),
                content=str(row["content"]),
                ordinal=int(row["message_id"]),
            )
            for row in rows
        ]
