from __future__ import annotations

from typing import Any

import aiohttp

from ..persona.mapping import SearchQueryData, search_data_from_cai
from .http_base import ChatBackendError, JsonHttpClient

PLUS_BASE_URL = "https://plus.character.ai"


class CharacterAiClient(JsonHttpClient):
    """Client for the backend that keeps conversation history on its own side."""

    backend_name = "character.ai"

    def __init__(
        self,
        *,
        base_url: str,
        default_token: str = "",
        default_plus_mode: bool = False,
        timeout_seconds: int = 60,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__(timeout_seconds=timeout_seconds, session=session)
        self.base_url = base_url.rstrip("/")
        self.default_token = default_token
        self.default_plus_mode = default_plus_mode

    def _base(self, plus_mode: bool) -> str:
        return PLUS_BASE_URL if plus_mode else self.base_url

    @staticmethod
    def _headers(token: str) -> dict[str, str]:
        return {"Authorization": f"Token {token}", "Content-Type": "application/json"}

    async def create_chat(self, character_id: str, *, auth_token: str, plus_mode: bool) -> str:
        if not auth_token:
            raise ChatBackendError("character.ai auth token is missing")
        data = await self._request(
            "POST",
            f"{self._base(plus_mode)}/chat/history/create/",
            payload={"character_external_id": character_id, "override_history_set": None},
            headers=self._headers(auth_token),
            retries=1,
        )
        history_id = data.get("external_id") if isinstance(data, dict) else None
        if not isinstance(history_id, str) or not history_id:
            raise ChatBackendError(f"character.ai did not return a chat id for {character_id}")
        return history_id

    async def search(self, query: str, *, auth_token: str | None = None) -> SearchQueryData:
        token = auth_token or self.default_token
        original_query = query.strip() or "no input"
        try:
            data = await self._request(
                "GET",
                f"{self._base(self.default_plus_mode)}/chat/characters/search/",
                params={"query": query},
                headers=self._headers(token),
            )
        except ChatBackendError as exc:
            return search_data_from_cai([], original_query, error_reason=str(exc))

        characters: list[Any] = []
        if isinstance(data, dict) and isinstance(data.get("characters"), list):
            characters = data["characters"]
        return search_data_from_cai(characters, original_query)

    async def get_character(self, character_id: str, *, auth_token: str | None = None) -> dict[str, Any] | None:
        token = auth_token or self.default_token
        data = await self._request(
            "POST",
            f"{self._base(self.default_plus_mode)}/chat/character/info/",
            payload={"external_id": character_id},
            headers=self._headers(token),
        )
        character = data.get("character") if isinstance(data, dict) else None
        return character if isinstance(character, dict) else None
