from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

from ...models import BanRecord
from .utils import _from_iso, _sqlite_connection, _to_iso


class GatewayBansMixin:
    async def get_ban(self, user_id: int) -> BanRecord | None:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT user_id, banned_at, duration_hours FROM blocked_users WHERE user_id = ?",
                (int(user_id),),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return BanRecord(
            user_id=int(row["user_id"]),
            banned_at=_from_iso(row["banned_at"]),
            duration_hours=int(row["duration_hours"]),
        )

    async def add_ban(self, record: BanRecord) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO blocked_users (user_id, banned_at, duration_hours)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    banned_at = excluded.banned_at,
                    duration_hours = excluded.duration_hours
                """,
                (int(record.user_id), _to_iso(record.banned_at), int(record.duration_hours)),
            )
            await db.commit()

    async def lift_expired_bans(self, now: datetime) -> list[int]:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT user_id, banned_at, duration_hours FROM blocked_users WHERE duration_hours > 0"
            ) as cursor:
                rows = await cursor.fetchall()

            expired = [
                int(row["user_id"])
                for row in rows
                if BanRecord(
                    user_id=int(row["user_id"]),
                    banned_at=_from_iso(row["banned_at"]),
                    duration_hours=int(row["duration_hours"]),
                ).is_expired(now)
            ]
            if expired:
                await db.executemany("DELETE FROM blocked_users WHERE user_id = ?", [(uid,) for uid in expired])
                await db.commit()
        return expired
