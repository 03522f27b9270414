from __future__ import annotations

import logging
from datetime import datetime, timezone

import discord

from ...models import ConversationSession, GuildOverrides, HistoryMessage, PersonaRecord
from ...prompts.context_window import TuningDefaults, resolve_system_prompt_template
from ...services.http_base import ChatBackendError
from ..common import (
    REPLY_BUTTONS,
    ReplySwipes,
    chunk_text,
    collapse_spaces,
    failure_embed,
    format_user_message,
    strip_call_prefix,
    truncate,
)

logger = logging.getLogger("persona_gateway")

DISCORD_MESSAGE_LIMIT = 2000


class DialogueMixin:
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.webhook_id is not None:
            return
        if message.guild is None:
            return

        if await self._try_handle_command(message):
            return

        matched = await self._match_session(message)
        if matched is None:
            return
        session, text = matched

        if not await self._admit_message(message):
            return
        if not session.backend_kind.keeps_remote_history:
            await self._reply_windowed(session, message, text)
        else:
            logger.info("Session=%s keeps history remotely; no local reply path", session.id)

    async def _match_session(self, message: discord.Message) -> tuple[ConversationSession, str] | None:
        content = message.content or ""
        if not content.lstrip().startswith(".."):
            return None
        for session in await self.store.list_channel_sessions(message.channel.id):
            text = strip_call_prefix(content, session.call_prefix)
            if text is not None:
                return session, text
        return None

    def _tuning_defaults(self) -> TuningDefaults:
        return TuningDefaults(
            endpoint=self.settings.default_openai_api_endpoint,
            token=self.settings.default_openai_api_token,
            model=self.settings.default_openai_model,
        )

    async def _complete_windowed(
        self,
        session: ConversationSession,
        persona: PersonaRecord,
        guild: GuildOverrides | None,
        history: list[HistoryMessage],
        *,
        exclude_most_recent: bool = False,
    ) -> str:
        request = self.context_builder.build(
            persona,
            resolve_system_prompt_template(session.tuning, guild),
            history,
            defaults=self._tuning_defaults(),
            session_tuning=session.tuning,
            guild=guild,
            exclude_most_recent=exclude_most_recent,
        )
        return await self.openai_client.complete(request)

    def _forget_swipes(self, session_id: int) -> None:
        for message_id in [mid for mid, swipes in self.reply_swipes.items() if swipes.session_id == session_id]:
            del self.reply_swipes[message_id]

    async def _reply_windowed(self, session: ConversationSession, message: discord.Message, text: str) -> None:
        text = collapse_spaces(text)
        if not text:
            return

        async with self.session_locks[session.id]:
            persona = await self.store.get_persona(session.persona_id)
            if persona is None:
                logger.warning("Session=%s references missing persona=%s", session.id, session.persona_id)
                return
            guild = await self.store.get_guild_overrides(session.guild_id)
            self._forget_swipes(session.id)

            user_label = message.author.display_name
            content = format_user_message(guild.messages_format if guild else None, user_label, text)
            await self.store.append_history_message(session.id, "user", content)
            history = await self.store.get_history(session.id)

            try:
                async with message.channel.typing():
                    reply = await self._complete_windowed(session, persona, guild, history)
            except ChatBackendError as exc:
                logger.warning("Completion failed for session=%s: %s", session.id, exc)
                await message.reply(embed=failure_embed(f"Failed to get a response: {exc}"), mention_author=False)
                return

            stored = await self.store.append_history_message(session.id, "assistant", reply)
            await self.store.touch_session(session.id, datetime.now(timezone.utc))

        chunks = chunk_text(reply)
        posted: discord.WebhookMessage | None = None
        try:
            for chunk in chunks:
                posted = await self.platform.post_as_identity(session.outbound_identity_id, session.outbound_secret, chunk)
        except discord.NotFound:
            logger.warning("Webhook of session=%s is gone; dropping the session", session.id)
            await self.store.delete_session(session.id)
            return
        if posted is None:
            return
        # Swiping edits one message, so split replies keep only the removal countdown.
        if len(chunks) == 1:
            self.reply_swipes[posted.id] = ReplySwipes(session.id, stored.ordinal, [reply])
        await self._attach_buttons(posted.channel.id, posted.id)

    async def _attach_buttons(self, channel_id: int, message_id: int) -> None:
        try:
            await self.platform.add_decoration(channel_id, message_id, REPLY_BUTTONS)
        except discord.HTTPException as exc:
            logger.warning("Failed to add buttons to message=%s: %s", message_id, exc)
            self.reply_swipes.pop(message_id, None)
            return
        self.buttons_scheduler.enqueue(message_id, self.settings.buttons_removal_delay_seconds)

    async def _swipe_reply(self, message_id: int, *, forward: bool) -> None:
        """Show the next or previous alternative of the newest reply, generating one past the end."""
        swipes = self.reply_swipes.get(message_id)
        if swipes is None:
            return
        session = await self.store.get_session(swipes.session_id)
        if session is None:
            self.reply_swipes.pop(message_id, None)
            return

        async with self.session_locks[session.id]:
            history = await self.store.get_history(session.id)
            if not history or history[-1].ordinal != swipes.history_ordinal:
                self.reply_swipes.pop(message_id, None)
                return

            target = swipes.index + (1 if forward else -1)
            if target < 0:
                return
            if target == len(swipes.responses):
                persona = await self.store.get_persona(session.persona_id)
                if persona is None:
                    return
                guild = await self.store.get_guild_overrides(session.guild_id)
                try:
                    reply = await self._complete_windowed(session, persona, guild, history, exclude_most_recent=True)
                except ChatBackendError as exc:
                    logger.warning("Regeneration failed for session=%s: %s", session.id, exc)
                    return
                swipes.responses.append(reply)

            swipes.index = target
            content = swipes.current
            await self.store.update_history_message(session.id, swipes.history_ordinal, content)
            await self.store.touch_session(session.id, datetime.now(timezone.utc))

        try:
            await self.platform.edit_as_identity(
                session.outbound_identity_id,
                session.outbound_secret,
                message_id,
                truncate(content, DISCORD_MESSAGE_LIMIT),
            )
        except discord.HTTPException as exc:
            logger.warning("Failed to show alternative reply on message=%s: %s", message_id, exc)
