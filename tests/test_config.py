from __future__ import annotations

import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from persona_gateway.config import Settings  # noqa: E402

_KEYS = (
    "DISCORD_TOKEN",
    "DISCORD_COMMAND_PREFIX",
    "SQLITE_PATH",
    "LOGS_CHANNEL_ID",
    "RATE_LIMIT",
    "RATE_LIMIT_WARN_THRESHOLD",
    "RATE_LIMIT_BAN_ENABLED",
    "RATE_LIMIT_BAN_HOURS",
    "RATE_LIMIT_WARN_RESET_MINUTES",
    "CONTEXT_TOKEN_BUDGET",
    "BUTTONS_REMOVAL_DELAY_SECONDS",
    "HTTP_TIMEOUT_SECONDS",
    "CAI_ENABLED",
    "CAI_BASE_URL",
    "DEFAULT_CAI_USER_AUTH_TOKEN",
    "DEFAULT_CAI_PLUS_MODE",
    "DEFAULT_OPENAI_API_ENDPOINT",
    "DEFAULT_OPENAI_API_TOKEN",
    "DEFAULT_OPENAI_MODEL",
    "CHUB_BASE_URL",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for key in _KEYS:
        monkeypatch.delenv(key, raising=False)
        monkeypatch.delenv(f"\ufeff{key}", raising=False)
    return monkeypatch


def test_defaults_follow_rate_limit(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("DISCORD_TOKEN", "Bot 'abc.def'")
    clean_env.setenv("RATE_LIMIT", "8")

    settings = Settings.from_env()
    settings.validate()

    assert settings.discord_token == "abc.def"
    assert settings.rate_limit == 8
    assert settings.rate_limit_warn_threshold == 7
    assert settings.rate_limit_ban_enabled is True
    assert settings.rate_limit_ban_hours == 24
    assert settings.rate_limit_warn_reset_minutes == 60
    assert settings.context_token_budget == 3600.0
    assert settings.cai_enabled is False
    assert settings.default_openai_model == "gpt-3.5-turbo"


def test_warn_threshold_never_drops_below_one(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("RATE_LIMIT", "1")

    assert Settings.from_env().rate_limit_warn_threshold == 1


def test_validate_names_the_offending_variable(clean_env: pytest.MonkeyPatch) -> None:
    with pytest.raises(ValueError, match="DISCORD_TOKEN"):
        Settings.from_env().validate()

    clean_env.setenv("DISCORD_TOKEN", "token")
    clean_env.setenv("RATE_LIMIT", "5")
    clean_env.setenv("RATE_LIMIT_WARN_THRESHOLD", "9")
    with pytest.raises(ValueError, match="RATE_LIMIT_WARN_THRESHOLD"):
        Settings.from_env().validate()


def test_bom_prefixed_keys_are_accepted(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("\ufeffDISCORD_COMMAND_PREFIX", "?")

    assert Settings.from_env().command_prefix == "?"
