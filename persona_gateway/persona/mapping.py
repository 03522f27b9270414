from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from ..models import BackendKind, PersonaRecord
from ..prompts.templates import render_chub_definition

logger = logging.getLogger("persona_gateway")

CAI_AVATAR_URL = "https://characterai.io/i/400/static/avatars/{file_name}"
CHUB_AVATAR_URL = "https://avatars.charhub.io/avatars/{full_path}/avatar.webp"


class PersonaValidationError(ValueError):
    pass


@dataclass(slots=True)
class SearchQueryData:
    personas: list[PersonaRecord] = field(default_factory=list)
    original_query: str = ""
    backend_kind: BackendKind = BackendKind.OPENAI
    error_reason: str | None = None

    @property
    def is_successful(self) -> bool:
        return self.error_reason is None

    @property
    def is_empty(self) -> bool:
        return not self.personas


def _text(raw: Mapping[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _required(raw: Mapping[str, Any], *keys: str) -> str:
    value = _text(raw, *keys)
    if value is None:
        raise PersonaValidationError(f"missing required field {keys[0]!r}")
    return value


def _int(value: object, default: int | None = 0) -> int | None:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def persona_from_cai(raw: Mapping[str, Any]) -> PersonaRecord:
    if not isinstance(raw, Mapping):
        raise PersonaValidationError("character.ai entry is not an object")

    avatar_file = _text(raw, "avatar_file_name")
    return PersonaRecord(
        id=_required(raw, "external_id"),
        tgt=_text(raw, "participant__user__username", "tgt"),
        name=_required(raw, "participant__name", "name"),
        title=_text(raw, "title"),
        greeting=_required(raw, "greeting"),
        description=_text(raw, "description"),
        author_name=_text(raw, "user__username"),
        avatar_url=CAI_AVATAR_URL.format(file_name=avatar_file) if avatar_file else None,
        image_gen_enabled=bool(raw.get("img_gen_enabled") or False),
        interactions=_int(raw.get("participant__num_interactions")) or 0,
        stars=None,
        definition=None,
    )


def persona_from_chub(raw: Mapping[str, Any]) -> PersonaRecord:
    if not isinstance(raw, Mapping):
        raise PersonaValidationError("chub entry is not an object")

    full_path = _required(raw, "fullPath")
    definition_block = raw.get("definition")
    definition: Mapping[str, Any] = definition_block if isinstance(definition_block, Mapping) else {}

    rendered_definition = None
    if definition:
        rendered_definition = render_chub_definition(
            personality=_text(definition, "personality") or "",
            scenario=_text(definition, "scenario") or "",
            example_dialogs=_text(definition, "example_dialogs") or "",
        )

    return PersonaRecord(
        id=full_path,
        tgt=None,
        name=_required(raw, "name"),
        title=_text(raw, "tagline"),
        greeting=_text(definition, "first_message") or _text(raw, "firstMessage", "first_message") or "",
        description=_text(raw, "description") or _text(definition, "description"),
        author_name=full_path.split("/", 1)[0] if "/" in full_path else None,
        avatar_url=CHUB_AVATAR_URL.format(full_path=full_path),
        image_gen_enabled=False,
        interactions=_int(raw.get("nChats")) or 0,
        stars=_int(raw.get("starCount"), None),
        definition=rendered_definition,
    )


def _map_batch(entries: Iterable[Any], mapper: Any, source: str) -> list[PersonaRecord]:
    personas: list[PersonaRecord] = []
    for entry in entries:
        try:
            personas.append(mapper(entry))
        except PersonaValidationError as exc:
            logger.info("Skipping %s search entry: %s", source, exc)
    return personas


def search_data_from_cai(
    characters: Iterable[Any],
    original_query: str,
    *,
    error_reason: str | None = None,
) -> SearchQueryData:
    return SearchQueryData(
        personas=_map_batch(characters, persona_from_cai, "character.ai"),
        original_query=original_query,
        backend_kind=BackendKind.CHARACTER_AI,
        error_reason=error_reason,
    )


def search_data_from_chub(
    nodes: Iterable[Any],
    original_query: str,
    *,
    error_reason: str | None = None,
) -> SearchQueryData:
    return SearchQueryData(
        personas=_map_batch(nodes, persona_from_chub, "chub"),
        original_query=original_query,
        backend_kind=BackendKind.OPENAI,
        error_reason=error_reason,
    )
