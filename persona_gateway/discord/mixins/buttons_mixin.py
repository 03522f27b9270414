from __future__ import annotations

import logging

import discord

from ..common import ARROW_LEFT, ARROW_RIGHT, REPLY_BUTTONS, STOP_BTN

logger = logging.getLogger("persona_gateway")


class ButtonsMixin:
    async def _remove_buttons(self, message_id: int) -> None:
        self.reply_swipes.pop(message_id, None)
        await self.platform.remove_decoration(message_id, REPLY_BUTTONS)

    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        if self.user is not None and payload.user_id == self.user.id:
            return
        if payload.member is not None and payload.member.bot:
            return

        emoji = str(payload.emoji)
        if emoji not in REPLY_BUTTONS or payload.message_id not in self.buttons_scheduler:
            return
        if not await self._admit_reaction(payload):
            return

        if emoji == STOP_BTN:
            if self.buttons_scheduler.cancel(payload.message_id):
                try:
                    await self._remove_buttons(payload.message_id)
                except Exception as exc:
                    logger.warning("Failed to remove buttons from message=%s: %s", payload.message_id, exc)
            return

        if emoji in (ARROW_LEFT, ARROW_RIGHT):
            extended = self.buttons_scheduler.extend(payload.message_id, self.settings.buttons_removal_delay_seconds)
            if not extended:
                logger.debug("Buttons of message=%s are already being removed", payload.message_id)
                return
            await self._swipe_reply(payload.message_id, forward=emoji == ARROW_RIGHT)
