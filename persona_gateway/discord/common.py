from __future__ import annotations

import re
from dataclasses import dataclass, field

import discord

WARN_SIGN_DISCORD = ":warning:"
OK_SIGN_DISCORD = ":white_check_mark:"

ARROW_LEFT = "⬅️"
ARROW_RIGHT = "➡️"
STOP_BTN = "⏹️"
REPLY_BUTTONS = (ARROW_LEFT, ARROW_RIGHT, STOP_BTN)


@dataclass(slots=True)
class ReplySwipes:
    """Alternative replies generated for one posted message; `index` is the one shown."""

    session_id: int
    history_ordinal: int
    responses: list[str] = field(default_factory=list)
    index: int = 0

    @property
    def current(self) -> str:
        return self.responses[self.index]


def collapse_spaces(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    return text[: limit - 3].rstrip() + "..."


def chunk_text(text: str, limit: int = 1900) -> list[str]:
    if len(text) <= limit:
        return [text]
    parts: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        if len(current) + len(line) <= limit:
            current += line
            continue
        if current:
            parts.append(current)
            current = ""
        if len(line) <= limit:
            current = line
        else:
            for i in range(0, len(line), limit):
                parts.append(line[i : i + limit])
    if current:
        parts.append(current)
    return parts


def inline_embed(text: str, color: discord.Color) -> discord.Embed:
    return discord.Embed(description=truncate(text, 4000), color=color)


def warning_embed(text: str) -> discord.Embed:
    return inline_embed(f"{WARN_SIGN_DISCORD} {text}", discord.Color.orange())


def failure_embed(text: str) -> discord.Embed:
    return inline_embed(f"{WARN_SIGN_DISCORD} {text}", discord.Color.red())


def success_embed(text: str = "Success") -> discord.Embed:
    return inline_embed(f"{OK_SIGN_DISCORD} {text}", discord.Color.green())


def format_user_message(messages_format: str | None, user_label: str, text: str) -> str:
    template = (messages_format or "").strip() or "{{msg}}"
    if "{{msg}}" not in template:
        template = f"{template} {{{{msg}}}}"
    return template.replace("{{user}}", user_label).replace("{{msg}}", text)


def strip_call_prefix(content: str, call_prefix: str) -> str | None:
    """Text after `call_prefix` when the message addresses it, else None."""
    stripped = content.lstrip()
    if not stripped.lower().startswith(call_prefix.lower()):
        return None
    rest = stripped[len(call_prefix) :]
    if rest and not rest[0].isspace():
        return None
    return rest.strip()
