from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import discord

from ...admission import AdmissionDecision, AdmissionResult
from ...prompts.templates import rate_limit_banned_text, rate_limit_report_text, rate_limit_warning_text
from ..common import failure_embed, inline_embed, warning_embed

logger = logging.getLogger("persona_gateway")

BAN_LIFT_INTERVAL_SECONDS = 60.0


class AdmissionMixin:
    async def _admit_message(self, message: discord.Message) -> bool:
        result = await self.rate_limiter.admit(message.author.id, message.created_at)
        await self._announce_admission(result, message.channel, message.author, message.guild)
        return result.allowed

    async def _admit_reaction(self, payload: discord.RawReactionActionEvent) -> bool:
        result = await self.rate_limiter.admit(payload.user_id, datetime.now(timezone.utc))
        if result.warn or result.newly_banned:
            channel = self.get_channel(payload.channel_id)
            guild = self.get_guild(payload.guild_id) if payload.guild_id else None
            user = payload.member or self.get_user(payload.user_id)
            if channel is not None and user is not None:
                await self._announce_admission(result, channel, user, guild)
        return result.allowed

    async def _announce_admission(
        self,
        result: AdmissionResult,
        channel: discord.abc.Messageable,
        user: discord.abc.User,
        guild: discord.Guild | None,
    ) -> None:
        if result.warn and result.decision is AdmissionDecision.ALLOWED:
            await self._send_quietly(channel, embed=warning_embed(rate_limit_warning_text()))

        if result.newly_banned:
            text = rate_limit_banned_text(user.mention, self.settings.rate_limit_ban_hours)
            await self._send_quietly(channel, embed=failure_embed(text))
            await self._report_ban(user, guild)

    async def _send_quietly(self, channel: discord.abc.Messageable, **kwargs: object) -> None:
        try:
            await channel.send(**kwargs)
        except discord.HTTPException as exc:
            logger.warning("Failed to send admission notice: %s", exc)

    async def _report_ban(self, user: discord.abc.User, guild: discord.Guild | None) -> None:
        channel_id = self.settings.logs_channel_id
        if channel_id <= 0:
            return
        channel = self.get_channel(channel_id)
        if channel is None or not isinstance(channel, discord.abc.Messageable):
            logger.warning("Logs channel %s is not available; ban of user=%s was not reported", channel_id, user.id)
            return
        text = rate_limit_report_text(
            guild.name if guild else "direct messages",
            guild.id if guild else "-",
            str(user),
            user.id,
        )
        await self._send_quietly(channel, embed=inline_embed(text, discord.Color.magenta()))

    async def _ban_lift_worker(self) -> None:
        while not self.is_closed():
            now = datetime.now(timezone.utc)
            self.rate_limiter.prune(now)
            try:
                lifted = await self.store.lift_expired_bans(now)
                if lifted:
                    logger.info("Lifted expired bans for users=%s", lifted)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Ban lift pass failed: %s", exc)
            await asyncio.sleep(BAN_LIFT_INTERVAL_SECONDS)
