from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from ..models import (
    BackendKind,
    ChannelRecord,
    ChannelRef,
    ConversationSession,
    GuildOverrides,
    HistoryMessage,
    OutboundIdentity,
    PersonaRecord,
    SessionTuning,
)
from .naming import call_prefix_for, sanitize_identity_name

logger = logging.getLogger("persona_gateway")

DEFAULT_CAI_AVATAR_PATH = Path(__file__).resolve().parents[1] / "assets" / "default_cai_avatar.png"


class IdentityPlatform(Protocol):
    async def create_outbound_identity(self, channel_id: int, name: str, image: bytes | None) -> OutboundIdentity: ...

    async def delete_outbound_identity(self, identity_id: int) -> None: ...

    async def download_image(self, url: str) -> bytes | None: ...


class ProvisioningStore(Protocol):
    async def upsert_channel(self, channel_id: int, guild_id: int) -> ChannelRecord: ...

    async def upsert_persona(self, persona: PersonaRecord) -> PersonaRecord: ...

    async def get_guild_overrides(self, guild_id: int) -> GuildOverrides | None: ...

    async def save_session(
        self,
        session: ConversationSession,
        first_message: HistoryMessage | None = None,
    ) -> ConversationSession: ...


class RemoteChatCreator(Protocol):
    async def create_chat(self, character_id: str, *, auth_token: str, plus_mode: bool) -> str: ...


@dataclass(slots=True, frozen=True)
class ProvisioningDefaults:
    cai_user_token: str = ""
    cai_plus_mode: bool = False


@dataclass(slots=True, frozen=True)
class ProvisionResult:
    session: ConversationSession | None = None
    failure_reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.session is not None

    @classmethod
    def success(cls, session: ConversationSession) -> "ProvisionResult":
        return cls(session=session)

    @classmethod
    def failure(cls, reason: str) -> "ProvisionResult":
        return cls(failure_reason=reason)


class ProvisioningError(RuntimeError):
    pass


class SessionProvisioner:
    """Creates a webhook-backed character session.

    Steps run strictly in order. Once the webhook exists, any later failure deletes
    it again before the failure is reported, so a session is never stored without
    its webhook and no webhook outlives a failed attempt.
    """

    def __init__(
        self,
        platform: IdentityPlatform,
        store: ProvisioningStore,
        defaults: ProvisioningDefaults,
        *,
        remote_chats: RemoteChatCreator | None = None,
        fallback_avatar_path: Path = DEFAULT_CAI_AVATAR_PATH,
    ) -> None:
        self.platform = platform
        self.store = store
        self.defaults = defaults
        self.remote_chats = remote_chats
        self.fallback_avatar_path = fallback_avatar_path

    async def _resolve_avatar(self, backend_kind: BackendKind, persona: PersonaRecord) -> bytes | None:
        image: bytes | None = None
        if persona.avatar_url:
            try:
                image = await self.platform.download_image(persona.avatar_url)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.info("Avatar download failed for persona=%s: %s", persona.id, exc)
                image = None

        if image is None and backend_kind is BackendKind.CHARACTER_AI:
            try:
                image = self.fallback_avatar_path.read_bytes()
            except OSError as exc:
                logger.warning("Bundled fallback avatar is unavailable (%s): %s", self.fallback_avatar_path, exc)
        return image

    async def _init_remote_history(
        self,
        persona: PersonaRecord,
        guild: GuildOverrides | None,
    ) -> str:
        if self.remote_chats is None:
            raise ProvisioningError("character.ai integration is disabled")

        token = (guild.cai_user_token if guild else None) or self.defaults.cai_user_token
        if not token or not token.strip():
            raise ProvisioningError("no character.ai auth token is configured for this server")
        plus_mode = guild.cai_plus_mode if guild and guild.cai_plus_mode is not None else self.defaults.cai_plus_mode

        return await self.remote_chats.create_chat(persona.id, auth_token=token, plus_mode=plus_mode)

    async def _compensate(self, identity: OutboundIdentity) -> None:
        try:
            await self.platform.delete_outbound_identity(identity.id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Failed to delete webhook=%s after aborted provisioning", identity.id)

    async def create_session(
        self,
        backend_kind: BackendKind,
        persona: PersonaRecord,
        channel_ref: ChannelRef,
        requester: int | str,
    ) -> ProvisionResult:
        call_prefix = call_prefix_for(persona.name)
        display_name = sanitize_identity_name(persona.name)
        image = await self._resolve_avatar(backend_kind, persona)

        try:
            identity = await self.platform.create_outbound_identity(channel_ref.channel_id, display_name, image)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "Webhook creation failed in channel=%s for requester=%s: %s",
                channel_ref.channel_id,
                requester,
                exc,
            )
            return ProvisionResult.failure(f"Failed to create webhook: {exc}")

        try:
            channel = await self.store.upsert_channel(channel_ref.channel_id, channel_ref.guild_id)
            await self.store.upsert_persona(persona)
            guild = await self.store.get_guild_overrides(channel.guild_id)

            external_ref: str | None = None
            first_message: HistoryMessage | None = None
            # Session tuning starts empty; server and global defaults resolve per request.
            tuning = SessionTuning()
            if backend_kind.keeps_remote_history:
                external_ref = await self._init_remote_history(persona, guild)
            else:
                first_message = HistoryMessage(session_id=identity.id, role="assistant", content=persona.greeting)

            session = ConversationSession(
                id=identity.id,
                outbound_identity_id=identity.id,
                outbound_secret=identity.secret,
                call_prefix=call_prefix,
                channel_id=channel.channel_id,
                guild_id=channel.guild_id,
                persona_id=persona.id,
                backend_kind=backend_kind,
                external_session_ref=external_ref,
                tuning=tuning,
                created_at=datetime.now(timezone.utc),
                last_call_at=datetime.now(timezone.utc),
            )
            await self.store.save_session(session, first_message)
        except asyncio.CancelledError:
            await self._compensate(identity)
            raise
        except Exception as exc:
            logger.warning(
                "Provisioning of persona=%s (%s) in channel=%s failed: %s",
                persona.id,
                backend_kind.value,
                channel_ref.channel_id,
                exc,
            )
            await self._compensate(identity)
            return ProvisionResult.failure(str(exc) or exc.__class__.__name__)

        logger.info(
            "Provisioned session=%s persona=%s backend=%s channel=%s requester=%s",
            session.id,
            persona.id,
            backend_kind.value,
            session.channel_id,
            requester,
        )
        return ProvisionResult.success(session)
