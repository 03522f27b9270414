from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence, TypeVar

from ..models import GuildOverrides, HistoryMessage, PersonaRecord, SessionTuning
from .templates import default_jailbreak_prompt, render_persona_system_prompt

DEFAULT_TOKEN_BUDGET = 3600.0
CHARS_PER_TOKEN = 3.8

T = TypeVar("T")


def estimate_tokens(text: str) -> float:
    """Rough token count; not a real tokenizer."""
    return len(text) / CHARS_PER_TOKEN


@dataclass(slots=True, frozen=True)
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True, frozen=True)
class TuningDefaults:
    endpoint: str
    token: str
    model: str
    temperature: float = 1.05
    freq_penalty: float = 0.9
    presence_penalty: float = 0.9
    max_tokens: int = 200


@dataclass(slots=True)
class ChatRequest:
    endpoint: str
    token: str
    model: str
    temperature: float
    freq_penalty: float
    presence_penalty: float
    max_tokens: int
    messages: list[ChatMessage] = field(default_factory=list)

    @property
    def system_prompt(self) -> str:
        return self.messages[0].content if self.messages else ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [message.to_dict() for message in self.messages],
            "temperature": self.temperature,
            "frequency_penalty": self.freq_penalty,
            "presence_penalty": self.presence_penalty,
            "max_tokens": self.max_tokens,
        }


def _first_set(*values: T | None) -> T | None:
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def resolve_system_prompt_template(session_tuning: SessionTuning | None, guild: GuildOverrides | None) -> str:
    return str(
        _first_set(
            session_tuning.system_prompt if session_tuning else None,
            guild.jailbreak_prompt if guild else None,
        )
        or default_jailbreak_prompt()
    )


class ContextWindowBuilder:
    def __init__(self, *, token_budget: float = DEFAULT_TOKEN_BUDGET) -> None:
        self.token_budget = float(token_budget)

    def select_history(
        self,
        system_prompt: str,
        history: Sequence[HistoryMessage],
        *,
        exclude_most_recent: bool = False,
    ) -> list[HistoryMessage]:
        """Newest entries that fit next to the system prompt, returned oldest first."""
        candidates = list(history)
        if exclude_most_recent and candidates:
            candidates.pop()

        used = estimate_tokens(system_prompt)
        kept: list[HistoryMessage] = []
        for message in reversed(candidates):
            cost = estimate_tokens(message.content)
            if used + cost > self.token_budget:
                break
            kept.append(message)
            used += cost

        kept.reverse()
        return kept

    def resolve_tuning(
        self,
        session_tuning: SessionTuning | None,
        guild: GuildOverrides | None,
        defaults: TuningDefaults,
    ) -> dict[str, Any]:
        s = session_tuning or SessionTuning()
        return {
            "endpoint": _first_set(s.endpoint, guild.openai_api_endpoint if guild else None, defaults.endpoint),
            "token": _first_set(s.token, guild.openai_api_token if guild else None, defaults.token) or "",
            "model": _first_set(s.model, guild.openai_model if guild else None, defaults.model),
            "temperature": float(
                _first_set(s.temperature, guild.openai_temperature if guild else None, defaults.temperature)
            ),
            "freq_penalty": float(
                _first_set(s.freq_penalty, guild.openai_freq_penalty if guild else None, defaults.freq_penalty)
            ),
            "presence_penalty": float(
                _first_set(
                    s.presence_penalty,
                    guild.openai_presence_penalty if guild else None,
                    defaults.presence_penalty,
                )
            ),
            "max_tokens": int(
                _first_set(s.max_tokens, guild.openai_max_tokens if guild else None, defaults.max_tokens)
            ),
        }

    def build(
        self,
        persona: PersonaRecord,
        system_prompt_template: str,
        history: Sequence[HistoryMessage],
        *,
        defaults: TuningDefaults,
        session_tuning: SessionTuning | None = None,
        guild: GuildOverrides | None = None,
        exclude_most_recent: bool = False,
    ) -> ChatRequest:
        system_prompt = render_persona_system_prompt(system_prompt_template, persona.name, persona.definition)
        window = self.select_history(system_prompt, history, exclude_most_recent=exclude_most_recent)

        messages = [ChatMessage("system", system_prompt)]
        messages.extend(ChatMessage(item.role, item.content) for item in window)
        return ChatRequest(messages=messages, **self.resolve_tuning(session_tuning, guild, defaults))
