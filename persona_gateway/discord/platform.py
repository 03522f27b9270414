from __future__ import annotations

import logging
from typing import Iterable

import aiohttp
import discord

from ..models import OutboundIdentity

logger = logging.getLogger("persona_gateway")

MAX_AVATAR_BYTES = 8 * 1024 * 1024


class PlatformError(RuntimeError):
    pass


class DiscordPlatform:
    """Webhook and reaction operations the gateway core needs from Discord."""

    def __init__(self, client: discord.Client, http: aiohttp.ClientSession | None = None) -> None:
        self.client = client
        self._http = http
        self._owns_http = http is None
        self._webhooks: dict[int, discord.Webhook] = {}
        self._decorated_channels: dict[int, int] = {}

    async def start(self) -> None:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30))
            self._owns_http = True

    async def close(self) -> None:
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()

    async def _text_channel(self, channel_id: int) -> discord.TextChannel:
        channel = self.client.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.client.fetch_channel(channel_id)
            except discord.HTTPException as exc:
                raise PlatformError(f"channel {channel_id} is unavailable: {exc}") from exc
        if not isinstance(channel, discord.TextChannel):
            raise PlatformError("webhooks can be created only in server text channels")
        return channel

    async def download_image(self, url: str) -> bytes | None:
        if self._http is None or self._http.closed:
            await self.start()
        assert self._http is not None
        async with self._http.get(url) as response:
            if response.status != 200:
                logger.info("Image download %s returned status %s", url, response.status)
                return None
            data = await response.read()
        if not data or len(data) > MAX_AVATAR_BYTES:
            return None
        return data

    async def create_outbound_identity(self, channel_id: int, name: str, image: bytes | None) -> OutboundIdentity:
        channel = await self._text_channel(channel_id)
        try:
            webhook = await channel.create_webhook(name=name, avatar=image)
        except discord.HTTPException as exc:
            raise PlatformError(str(exc)) from exc
        if webhook.token is None:
            raise PlatformError("Discord returned a webhook without a token")
        self._webhooks[webhook.id] = webhook
        return OutboundIdentity(id=webhook.id, secret=webhook.token, channel_id=channel_id, name=name)

    async def delete_outbound_identity(self, identity_id: int) -> None:
        webhook = self._webhooks.pop(identity_id, None)
        if webhook is None:
            webhook = await self.client.fetch_webhook(identity_id)
        await webhook.delete()

    def webhook_for(self, identity_id: int, secret: str) -> discord.Webhook:
        webhook = self._webhooks.get(identity_id)
        if webhook is None:
            webhook = discord.Webhook.partial(identity_id, secret, client=self.client)
            self._webhooks[identity_id] = webhook
        return webhook

    async def post_as_identity(self, identity_id: int, secret: str, content: str) -> discord.WebhookMessage:
        webhook = self.webhook_for(identity_id, secret)
        return await webhook.send(content=content, wait=True)

    async def edit_as_identity(self, identity_id: int, secret: str, message_id: int, content: str) -> discord.WebhookMessage:
        webhook = self.webhook_for(identity_id, secret)
        return await webhook.edit_message(message_id, content=content)

    async def add_decoration(self, channel_id: int, message_id: int, emojis: Iterable[str]) -> None:
        channel = await self._text_channel(channel_id)
        message = channel.get_partial_message(message_id)
        for emoji in emojis:
            await message.add_reaction(emoji)
        self._decorated_channels[message_id] = channel_id

    async def remove_decoration(self, message_id: int, emojis: Iterable[str]) -> None:
        channel_id = self._decorated_channels.pop(message_id, None)
        if channel_id is None:
            raise PlatformError(f"message {message_id} has no tracked decorations")
        if self.client.user is None:
            raise PlatformError("client is not logged in")
        channel = await self._text_channel(channel_id)
        message = channel.get_partial_message(message_id)
        for emoji in emojis:
            await message.remove_reaction(emoji, self.client.user)
