from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from datetime import timedelta

import discord

from ..admission import RateLimiter
from ..config import Settings
from ..memory.store import GatewayStore
from ..prompts.context_window import ContextWindowBuilder
from ..provisioning import ProvisioningDefaults, SessionProvisioner
from ..scheduling import DelayedActionScheduler
from ..services.character_ai_client import CharacterAiClient
from ..services.chub_client import ChubClient
from ..services.openai_chat_client import OpenAiChatClient
from .common import ReplySwipes
from .mixins import AdmissionMixin, ButtonsMixin, CommandsMixin, DialogueMixin
from .platform import DiscordPlatform

logger = logging.getLogger("persona_gateway")


class PersonaGatewayBot(
    AdmissionMixin,
    CommandsMixin,
    DialogueMixin,
    ButtonsMixin,
    discord.Client,
):
    def __init__(
        self,
        settings: Settings,
        store: GatewayStore,
        openai_client: OpenAiChatClient,
        chub_client: ChubClient,
        cai_client: CharacterAiClient | None = None,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        intents.reactions = True

        super().__init__(intents=intents)

        self.settings = settings
        self.store = store
        self.openai_client = openai_client
        self.chub_client = chub_client
        self.cai_client = cai_client

        self.platform = DiscordPlatform(self)
        self.rate_limiter = RateLimiter(
            store,
            limit=settings.rate_limit,
            warn_threshold=settings.rate_limit_warn_threshold,
            ban_enabled=settings.rate_limit_ban_enabled,
            ban_hours=settings.rate_limit_ban_hours,
            warn_reset_after=timedelta(minutes=settings.rate_limit_warn_reset_minutes),
        )
        self.context_builder = ContextWindowBuilder(token_budget=settings.context_token_budget)
        self.buttons_scheduler = DelayedActionScheduler(self._remove_buttons)
        self.provisioner = SessionProvisioner(
            self.platform,
            store,
            ProvisioningDefaults(
                cai_user_token=settings.default_cai_user_auth_token,
                cai_plus_mode=settings.default_cai_plus_mode,
            ),
            remote_chats=cai_client,
        )

        self.session_locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.reply_swipes: dict[int, ReplySwipes] = {}
        self.ban_lift_task: asyncio.Task[None] | None = None

    async def setup_hook(self) -> None:
        await self.store.init()
        await self.platform.start()
        await self.openai_client.start()
        await self.chub_client.start()
        if self.cai_client is not None:
            await self.cai_client.start()

        self.ban_lift_task = asyncio.create_task(self._ban_lift_worker(), name="ban-lift-worker")

    async def close(self) -> None:
        await self._run_shutdown_step("buttons_scheduler.shutdown", self.buttons_scheduler.shutdown(), timeout=3.0)
        await self._cancel_task(self.ban_lift_task)

        if self.cai_client is not None:
            await self._run_shutdown_step("cai_client.close", self.cai_client.close(), timeout=6.0)
        await self._run_shutdown_step("chub_client.close", self.chub_client.close(), timeout=6.0)
        await self._run_shutdown_step("openai_client.close", self.openai_client.close(), timeout=6.0)
        await self._run_shutdown_step("platform.close", self.platform.close(), timeout=6.0)
        await self._run_shutdown_step("discord.Client.close", super().close(), timeout=6.0)

    async def _run_shutdown_step(self, label: str, coro: object, *, timeout: float) -> None:
        try:
            await asyncio.wait_for(coro, timeout=timeout)  # type: ignore[arg-type]
        except asyncio.TimeoutError:
            logger.warning("Shutdown step timed out: %s", label)
        except Exception as exc:
            logger.warning("Shutdown step failed: %s (%s)", label, exc)

    async def _cancel_task(self, task: asyncio.Task[None] | None) -> None:
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def on_ready(self) -> None:
        if self.user:
            logger.info("Connected as %s (%s)", self.user, self.user.id)
