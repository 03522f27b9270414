from __future__ import annotations

import asyncio
import contextlib
import logging

from .config import Settings
from .discord.client import PersonaGatewayBot
from .memory.store import GatewayStore
from .services.character_ai_client import CharacterAiClient
from .services.chub_client import ChubClient
from .services.openai_chat_client import OpenAiChatClient

logger = logging.getLogger("persona_gateway")


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)
    logging.getLogger("discord.http").setLevel(logging.WARNING)


def build_bot(settings: Settings) -> PersonaGatewayBot:
    store = GatewayStore(settings.sqlite_path)
    openai_client = OpenAiChatClient(timeout_seconds=settings.http_timeout_seconds)
    chub_client = ChubClient(base_url=settings.chub_base_url, timeout_seconds=settings.http_timeout_seconds)
    cai_client: CharacterAiClient | None = None
    if settings.cai_enabled:
        cai_client = CharacterAiClient(
            base_url=settings.cai_base_url,
            default_token=settings.default_cai_user_auth_token,
            default_plus_mode=settings.default_cai_plus_mode,
            timeout_seconds=settings.http_timeout_seconds,
        )
    else:
        logger.info("character.ai integration is disabled (CAI_ENABLED=false)")
    return PersonaGatewayBot(
        settings=settings,
        store=store,
        openai_client=openai_client,
        chub_client=chub_client,
        cai_client=cai_client,
    )


async def _run_bot(settings: Settings) -> None:
    bot = build_bot(settings)
    try:
        async with bot:
            await bot.start(settings.discord_token)
    finally:
        if not bot.is_closed():
            with contextlib.suppress(Exception):
                await asyncio.wait_for(bot.close(), timeout=10.0)


def main() -> None:
    configure_logging()
    settings = Settings.from_env()
    settings.validate()
    try:
        asyncio.run(_run_bot(settings))
    except KeyboardInterrupt:
        logger.info("Shutdown requested, exiting.")
