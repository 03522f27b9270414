from __future__ import annotations

import logging
from typing import Any

import discord

from ...models import BackendKind, ChannelRef, PersonaRecord
from ...persona.mapping import PersonaValidationError, SearchQueryData, persona_from_cai, persona_from_chub
from ...services.chub_client import ChubSearchParams
from ...services.http_base import ChatBackendError
from ..common import chunk_text, failure_embed, inline_embed, success_embed, truncate

logger = logging.getLogger("persona_gateway")

SEARCH_RESULTS_SHOWN = 10


class CommandsMixin:
    def _parse_command(self, content: str) -> tuple[str, list[str]] | None:
        prefix = self.settings.command_prefix
        if not content.startswith(prefix):
            return None
        parts = content[len(prefix) :].strip().split(maxsplit=2)
        if not parts:
            return None
        return parts[0].lower(), parts[1:]

    async def _try_handle_command(self, message: discord.Message) -> bool:
        parsed = self._parse_command(message.content)
        if parsed is None:
            return False
        name, args = parsed
        handler = {"spawn": self._cmd_spawn, "search": self._cmd_search}.get(name)
        if handler is None:
            return False

        if not await self._admit_message(message):
            return True
        if len(args) < 2:
            await message.reply(
                embed=failure_embed(f"Usage: `{self.settings.command_prefix}{name} <chub|cai> <...>`"),
                mention_author=False,
            )
            return True

        try:
            kind = BackendKind.parse(args[0])
        except ValueError:
            await message.reply(embed=failure_embed(f"Unknown source `{args[0]}`"), mention_author=False)
            return True
        await handler(message, kind, args[1].strip())
        return True

    async def _fetch_persona(self, kind: BackendKind, persona_id: str) -> PersonaRecord:
        raw: dict[str, Any] | None
        if kind is BackendKind.CHARACTER_AI:
            if self.cai_client is None:
                raise ChatBackendError("character.ai integration is disabled")
            raw = await self.cai_client.get_character(persona_id)
            if raw is None:
                raise PersonaValidationError(f"character `{persona_id}` was not found")
            return persona_from_cai(raw)

        raw = await self.chub_client.get_character(persona_id)
        if raw is None:
            raise PersonaValidationError(f"character `{persona_id}` was not found")
        return persona_from_chub(raw)

    async def _cmd_spawn(self, message: discord.Message, kind: BackendKind, persona_id: str) -> None:
        if message.guild is None:
            await message.reply(embed=failure_embed("Characters can be spawned only in servers"), mention_author=False)
            return

        try:
            persona = await self._fetch_persona(kind, persona_id)
        except (ChatBackendError, PersonaValidationError) as exc:
            await message.reply(embed=failure_embed(f"Failed to get character: {exc}"), mention_author=False)
            return

        result = await self.provisioner.create_session(
            kind,
            persona,
            ChannelRef(channel_id=message.channel.id, guild_id=message.guild.id),
            message.author.id,
        )
        if not result.ok or result.session is None:
            await message.reply(embed=failure_embed(str(result.failure_reason)), mention_author=False)
            return

        session = result.session
        await message.reply(
            embed=success_embed(f"**{persona.name}** joined the channel. Call prefix: `{session.call_prefix}`"),
            mention_author=False,
        )
        if persona.greeting:
            for chunk in chunk_text(persona.greeting):
                await self.platform.post_as_identity(session.outbound_identity_id, session.outbound_secret, chunk)

    async def _cmd_search(self, message: discord.Message, kind: BackendKind, query: str) -> None:
        data: SearchQueryData
        if kind is BackendKind.CHARACTER_AI:
            if self.cai_client is None:
                await message.reply(embed=failure_embed("character.ai integration is disabled"), mention_author=False)
                return
            data = await self.cai_client.search(query)
        else:
            data = await self.chub_client.search(ChubSearchParams(text=query))

        if not data.is_successful:
            await message.reply(embed=failure_embed(f"Search failed: {data.error_reason}"), mention_author=False)
            return
        if data.is_empty:
            await message.reply(
                embed=inline_embed(f"Nothing was found for **{data.original_query}**", discord.Color.orange()),
                mention_author=False,
            )
            return

        lines = [f"Results for **{data.original_query}**:"]
        for index, persona in enumerate(data.personas[:SEARCH_RESULTS_SHOWN], start=1):
            subtitle = f" - {truncate(persona.title, 80)}" if persona.title else ""
            lines.append(f"{index}. **{persona.name}**{subtitle}\n`{persona.id}`")
        await message.reply(embed=inline_embed("\n".join(lines), discord.Color.blurple()), mention_author=False)
