from __future__ import annotations

import aiosqlite

from ...models import ChannelRecord, GuildOverrides
from .utils import _opt_bool, _opt_float, _opt_int, _sqlite_connection

_OVERRIDE_COLUMNS = (
    "cai_user_token",
    "cai_plus_mode",
    "openai_api_endpoint",
    "openai_api_token",
    "openai_model",
    "openai_temperature",
    "openai_freq_penalty",
    "openai_presence_penalty",
    "openai_max_tokens",
    "jailbreak_prompt",
    "messages_format",
)


class GatewayGuildsMixin:
    async def get_guild_overrides(self, guild_id: int) -> GuildOverrides | None:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT guild_id, {', '.join(_OVERRIDE_COLUMNS)} FROM guilds WHERE guild_id = ?",
                (int(guild_id),),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return GuildOverrides(
            guild_id=int(row["guild_id"]),
            cai_user_token=row["cai_user_token"],
            cai_plus_mode=_opt_bool(row["cai_plus_mode"]),
            openai_api_endpoint=row["openai_api_endpoint"],
            openai_api_token=row["openai_api_token"],
            openai_model=row["openai_model"],
            openai_temperature=_opt_float(row["openai_temperature"]),
            openai_freq_penalty=_opt_float(row["openai_freq_penalty"]),
            openai_presence_penalty=_opt_float(row["openai_presence_penalty"]),
            openai_max_tokens=_opt_int(row["openai_max_tokens"]),
            jailbreak_prompt=row["jailbreak_prompt"],
            messages_format=row["messages_format"],
        )

    async def set_guild_overrides(self, overrides: GuildOverrides) -> None:
        values = (
            overrides.cai_user_token,
            None if overrides.cai_plus_mode is None else int(overrides.cai_plus_mode),
            overrides.openai_api_endpoint,
            overrides.openai_api_token,
            overrides.openai_model,
            overrides.openai_temperature,
            overrides.openai_freq_penalty,
            overrides.openai_presence_penalty,
            overrides.openai_max_tokens,
            overrides.jailbreak_prompt,
            overrides.messages_format,
        )
        assignments = ", ".join(f"{column} = excluded.{column}" for column in _OVERRIDE_COLUMNS)
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                f"""
                INSERT INTO guilds (guild_id, {', '.join(_OVERRIDE_COLUMNS)})
                VALUES (?, {', '.join('?' for _ in _OVERRIDE_COLUMNS)})
                ON CONFLICT(guild_id) DO UPDATE SET {assignments}
                """,
                (int(overrides.guild_id), *values),
            )
            await db.commit()

    async def upsert_channel(self, channel_id: int, guild_id: int) -> ChannelRecord:
        """Find the tracked channel or start tracking it (and its guild)."""
        async with _sqlite_connection(self.db_path) as db:
            await db.execute("INSERT OR IGNORE INTO guilds (guild_id) VALUES (?)", (int(guild_id),))
            await db.execute(
                "INSERT OR IGNORE INTO channels (channel_id, guild_id) VALUES (?, ?)",
                (int(channel_id), int(guild_id)),
            )
            await db.commit()
            async with db.execute(
                "SELECT channel_id, guild_id FROM channels WHERE channel_id = ?",
                (int(channel_id),),
            ) as cursor:
                row = await cursor.fetchone()
        return ChannelRecord(channel_id=int(row[0]), guild_id=int(row[1]))
