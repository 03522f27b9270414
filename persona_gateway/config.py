from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


load_dotenv()


def _env_lookup(name: str, aliases: tuple[str, ...] = ()) -> str | None:
    for key in (name, *aliases):
        # Be tolerant to UTF-8 BOM accidentally saved in .env key names.
        for candidate in (key, f"\ufeff{key}"):
            raw = os.getenv(candidate)
            if raw is not None:
                return raw
    return None


def _env_bool(name: str, default: bool, aliases: tuple[str, ...] = ()) -> bool:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int, aliases: tuple[str, ...] = ()) -> int:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float, aliases: tuple[str, ...] = ()) -> float:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _clean_token(value: str) -> str:
    cleaned = value.strip()
    if cleaned.lower().startswith("bot "):
        cleaned = cleaned[4:].strip()
    if (cleaned.startswith('"') and cleaned.endswith('"')) or (
        cleaned.startswith("'") and cleaned.endswith("'")
    ):
        cleaned = cleaned[1:-1].strip()
    return cleaned


def _env_str(name: str, default: str, aliases: tuple[str, ...] = ()) -> str:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


@dataclass(slots=True)
class Settings:
    discord_token: str
    command_prefix: str
    logs_channel_id: int
    sqlite_path: Path

    rate_limit: int
    rate_limit_warn_threshold: int
    rate_limit_ban_enabled: bool
    rate_limit_ban_hours: int
    rate_limit_warn_reset_minutes: int

    context_token_budget: float
    buttons_removal_delay_seconds: int
    http_timeout_seconds: int

    cai_enabled: bool
    cai_base_url: str
    default_cai_user_auth_token: str
    default_cai_plus_mode: bool

    default_openai_api_endpoint: str
    default_openai_api_token: str
    default_openai_model: str

    chub_base_url: str

    @classmethod
    def from_env(cls) -> "Settings":
        rate_limit = _env_int("RATE_LIMIT", 5)
        return cls(
            discord_token=_clean_token(_env_lookup("DISCORD_TOKEN") or ""),
            command_prefix=_env_str("DISCORD_COMMAND_PREFIX", "!"),
            logs_channel_id=_env_int("LOGS_CHANNEL_ID", 0),
            sqlite_path=Path(_env_str("SQLITE_PATH", "./data/persona_gateway.db")).expanduser(),
            rate_limit=rate_limit,
            rate_limit_warn_threshold=_env_int("RATE_LIMIT_WARN_THRESHOLD", max(1, rate_limit - 1)),
            rate_limit_ban_enabled=_env_bool("RATE_LIMIT_BAN_ENABLED", True),
            rate_limit_ban_hours=_env_int("RATE_LIMIT_BAN_HOURS", 24),
            rate_limit_warn_reset_minutes=_env_int("RATE_LIMIT_WARN_RESET_MINUTES", 60),
            context_token_budget=_env_float("CONTEXT_TOKEN_BUDGET", 3600.0),
            buttons_removal_delay_seconds=_env_int("BUTTONS_REMOVAL_DELAY_SECONDS", 90),
            http_timeout_seconds=_env_int("HTTP_TIMEOUT_SECONDS", 60),
            cai_enabled=_env_bool("CAI_ENABLED", False),
            cai_base_url=_env_str("CAI_BASE_URL", "https://beta.character.ai"),
            default_cai_user_auth_token=_env_str("DEFAULT_CAI_USER_AUTH_TOKEN", ""),
            default_cai_plus_mode=_env_bool("DEFAULT_CAI_PLUS_MODE", False),
            default_openai_api_endpoint=_env_str(
                "DEFAULT_OPENAI_API_ENDPOINT",
                "https://api.openai.com/v1/chat/completions",
            ),
            default_openai_api_token=_env_str("DEFAULT_OPENAI_API_TOKEN", ""),
            default_openai_model=_env_str("DEFAULT_OPENAI_MODEL", "gpt-3.5-turbo"),
            chub_base_url=_env_str("CHUB_BASE_URL", "https://v2.chub.ai"),
        )

    def validate(self) -> None:
        if not self.discord_token:
            raise ValueError("DISCORD_TOKEN is required")
        if self.discord_token == "put_your_discord_bot_token_here":
            raise ValueError("DISCORD_TOKEN is still placeholder")
        if not self.command_prefix.strip():
            raise ValueError("DISCORD_COMMAND_PREFIX cannot be empty")

        if self.rate_limit < 1:
            raise ValueError("RATE_LIMIT must be >= 1")
        if self.rate_limit_warn_threshold < 1 or self.rate_limit_warn_threshold > self.rate_limit:
            raise ValueError("RATE_LIMIT_WARN_THRESHOLD must be in [1, RATE_LIMIT]")
        if self.rate_limit_ban_hours < 0:
            raise ValueError("RATE_LIMIT_BAN_HOURS must be >= 0 (0 makes bans permanent)")
        if self.rate_limit_warn_reset_minutes < 1:
            raise ValueError("RATE_LIMIT_WARN_RESET_MINUTES must be >= 1")

        if self.context_token_budget < 100:
            raise ValueError("CONTEXT_TOKEN_BUDGET must be >= 100")
        if self.buttons_removal_delay_seconds < 0:
            raise ValueError("BUTTONS_REMOVAL_DELAY_SECONDS must be >= 0")
        if self.http_timeout_seconds < 5:
            raise ValueError("HTTP_TIMEOUT_SECONDS must be >= 5")

        if self.cai_enabled and not self.cai_base_url:
            raise ValueError("CAI_BASE_URL cannot be empty when CAI_ENABLED is true")
        if not self.default_openai_api_endpoint:
            raise ValueError("DEFAULT_OPENAI_API_ENDPOINT cannot be empty")
