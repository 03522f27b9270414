from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum


class BackendKind(str, Enum):
    CHARACTER_AI = "character_ai"
    OPENAI = "openai"

    @property
    def keeps_remote_history(self) -> bool:
        return self is BackendKind.CHARACTER_AI

    @classmethod
    def parse(cls, value: str) -> "BackendKind":
        raw = str(value or "").strip().lower()
        aliases = {
            "cai": cls.CHARACTER_AI,
            "c.ai": cls.CHARACTER_AI,
            "characterai": cls.CHARACTER_AI,
            "character_ai": cls.CHARACTER_AI,
            "chub": cls.OPENAI,
            "openai": cls.OPENAI,
            "oai": cls.OPENAI,
        }
        if raw not in aliases:
            raise ValueError(f"Unknown backend kind: {value!r}")
        return aliases[raw]


@dataclass(slots=True)
class UserActivityRecord:
    user_id: int
    window_minute: int
    count: int = 0
    warned: bool = False
    last_call_at: datetime | None = None


@dataclass(slots=True)
class BanRecord:
    user_id: int
    banned_at: datetime
    duration_hours: int = 24

    @property
    def expires_at(self) -> datetime | None:
        if self.duration_hours <= 0:
            return None
        return self.banned_at + timedelta(hours=self.duration_hours)

    def is_expired(self, now: datetime) -> bool:
        expires_at = self.expires_at
        return expires_at is not None and now >= expires_at


@dataclass(slots=True)
class PersonaRecord:
    id: str
    name: str
    greeting: str
    title: str | None = None
    description: str | None = None
    author_name: str | None = None
    avatar_url: str | None = None
    definition: str | None = None
    image_gen_enabled: bool = False
    interactions: int = 0
    stars: int | None = None
    tgt: str | None = None


@dataclass(slots=True)
class ChannelRecord:
    channel_id: int
    guild_id: int


@dataclass(slots=True)
class ChannelRef:
    channel_id: int
    guild_id: int


@dataclass(slots=True)
class GuildOverrides:
    guild_id: int
    cai_user_token: str | None = None
    cai_plus_mode: bool | None = None
    openai_api_endpoint: str | None = None
    openai_api_token: str | None = None
    openai_model: str | None = None
    openai_temperature: float | None = None
    openai_freq_penalty: float | None = None
    openai_presence_penalty: float | None = None
    openai_max_tokens: int | None = None
    jailbreak_prompt: str | None = None
    messages_format: str | None = None


@dataclass(slots=True)
class SessionTuning:
    temperature: float | None = None
    freq_penalty: float | None = None
    presence_penalty: float | None = None
    max_tokens: int | None = None
    model: str | None = None
    endpoint: str | None = None
    token: str | None = None
    system_prompt: str | None = None


@dataclass(slots=True)
class ConversationSession:
    id: int
    outbound_identity_id: int
    outbound_secret: str
    call_prefix: str
    channel_id: int
    guild_id: int
    persona_id: str
    backend_kind: BackendKind
    external_session_ref: str | None = None
    tuning: SessionTuning = field(default_factory=SessionTuning)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_call_at: datetime | None = None


@dataclass(slots=True)
class HistoryMessage:
    session_id: int
    role: str
    content: str
    ordinal: int = 0


@dataclass(slots=True)
class OutboundIdentity:
    id: int
    secret: str
    channel_id: int
    name: str
