from __future__ import annotations

import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from persona_gateway.models import GuildOverrides, HistoryMessage, PersonaRecord, SessionTuning  # noqa: E402
from persona_gateway.prompts.context_window import (  # noqa: E402
    ContextWindowBuilder,
    TuningDefaults,
    estimate_tokens,
    resolve_system_prompt_template,
)


def _persona(**overrides: object) -> PersonaRecord:
    data: dict[str, object] = {
        "id": "anon/lily",
        "name": "Lily",
        "greeting": "Hi there!",
        "title": "Librarian",
        "description": None,
        "author_name": "anon",
        "avatar_url": None,
        "definition": "{{char}}'s personality: quiet",
    }
    data.update(overrides)
    return PersonaRecord(**data)  # type: ignore[arg-type]


def _history(*contents: str) -> list[HistoryMessage]:
    return [
        HistoryMessage(session_id=1, role="user" if i % 2 else "assistant", content=text, ordinal=i + 1)
        for i, text in enumerate(contents)
    ]


DEFAULTS = TuningDefaults(endpoint="https://api.example/v1/chat/completions", token="sk-default", model="gpt-3.5-turbo")


def test_estimate_tokens_uses_chars_per_token_ratio() -> None:
    assert estimate_tokens("x" * 38) == pytest.approx(10.0)
    assert estimate_tokens("") == 0


def test_select_history_keeps_newest_entries_in_chronological_order() -> None:
    builder = ContextWindowBuilder(token_budget=100)
    # 190 chars -> 50 tokens each; system prompt 38 chars -> 10 tokens.
    history = _history("a" * 190, "b" * 190, "c" * 38, "d" * 38)

    window = builder.select_history("s" * 38, history)

    assert [m.content[0] for m in window] == ["b", "c", "d"]
    assert [m.ordinal for m in window] == [2, 3, 4]


def test_select_history_stops_at_first_entry_that_does_not_fit() -> None:
    builder = ContextWindowBuilder(token_budget=100)
    history = _history("a" * 10, "b" * 380, "c" * 38)

    window = builder.select_history("", history)

    assert [m.content[0] for m in window] == ["c"]


def test_exclude_most_recent_drops_exactly_the_newest_entry() -> None:
    builder = ContextWindowBuilder(token_budget=3600)
    history = _history("first", "second", "third")

    window = builder.select_history("system", history, exclude_most_recent=True)

    assert [m.content for m in window] == ["first", "second"]


def test_system_prompt_over_budget_yields_empty_window() -> None:
    builder = ContextWindowBuilder(token_budget=10)

    window = builder.select_history("s" * 500, _history("hello"))

    assert window == []


def test_build_renders_persona_prompt_and_payload() -> None:
    builder = ContextWindowBuilder()
    history = _history("Hi there!", "hello Lily")

    request = builder.build(_persona(), "Stay in character...", history, defaults=DEFAULTS)

    assert request.messages[0].role == "system"
    system = request.system_prompt
    assert system.startswith("Stay in character.  {{char}}'s name: Lily.")
    assert "{{char}} calls {{user}} by {{user}} or any name introduced by {{user}}." in system
    assert system.endswith("{{char}}'s personality: quiet")

    payload = request.to_payload()
    assert payload["model"] == "gpt-3.5-turbo"
    assert payload["temperature"] == pytest.approx(1.05)
    assert payload["frequency_penalty"] == pytest.approx(0.9)
    assert payload["presence_penalty"] == pytest.approx(0.9)
    assert payload["max_tokens"] == 200
    assert payload["messages"][1:] == [
        {"role": "assistant", "content": "Hi there!"},
        {"role": "user", "content": "hello Lily"},
    ]
    assert request.token == "sk-default"


def test_tuning_precedence_is_session_then_guild_then_default() -> None:
    builder = ContextWindowBuilder()
    session = SessionTuning(temperature=0.3, model="session-model", endpoint="  ")
    guild = GuildOverrides(
        guild_id=5,
        openai_model="guild-model",
        openai_api_endpoint="https://guild.example/v1/chat/completions",
        openai_api_token="sk-guild",
        openai_max_tokens=512,
    )

    tuning = builder.resolve_tuning(session, guild, DEFAULTS)

    assert tuning["temperature"] == pytest.approx(0.3)
    assert tuning["model"] == "session-model"
    assert tuning["endpoint"] == "https://guild.example/v1/chat/completions"
    assert tuning["token"] == "sk-guild"
    assert tuning["max_tokens"] == 512
    assert tuning["freq_penalty"] == pytest.approx(0.9)


def test_system_prompt_template_falls_back_to_guild_then_default() -> None:
    guild = GuildOverrides(guild_id=5, jailbreak_prompt="Guild prompt")

    assert resolve_system_prompt_template(SessionTuning(system_prompt="Own prompt"), guild) == "Own prompt"
    assert resolve_system_prompt_template(SessionTuning(), guild) == "Guild prompt"
    assert "{{char}}" in resolve_system_prompt_template(None, None)
