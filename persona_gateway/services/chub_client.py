from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import aiohttp

from ..persona.mapping import SearchQueryData, search_data_from_chub
from .http_base import ChatBackendError, JsonHttpClient


@dataclass(slots=True)
class ChubSearchParams:
    text: str = ""
    amount: int = 10
    tags: str = ""
    exclude_tags: str = ""
    page: int = 1
    sort: str = "download_count"
    allow_nsfw: bool = False

    def to_query(self) -> dict[str, str]:
        return {
            "search": self.text,
            "first": str(max(1, int(self.amount))),
            "topics": self.tags,
            "excludetopics": self.exclude_tags,
            "page": str(max(1, int(self.page))),
            "sort": self.sort,
            "nsfw": "true" if self.allow_nsfw else "false",
        }

    def describe(self) -> str:
        described = self.text.strip() or "no input"
        if self.tags.strip():
            described += f" (tags: {self.tags.strip()})"
        return described


class ChubClient(JsonHttpClient):
    backend_name = "chub"

    def __init__(
        self,
        *,
        base_url: str = "https://v2.chub.ai",
        timeout_seconds: int = 60,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__(timeout_seconds=timeout_seconds, session=session)
        self.base_url = base_url.rstrip("/")

    async def search(self, params: ChubSearchParams) -> SearchQueryData:
        original_query = params.describe()
        try:
            data = await self._request("GET", f"{self.base_url}/search", params=params.to_query())
        except ChatBackendError as exc:
            return search_data_from_chub([], original_query, error_reason=str(exc))

        nodes: list[Any] = []
        if isinstance(data, dict):
            raw_nodes = data.get("nodes")
            if raw_nodes is None and isinstance(data.get("data"), dict):
                raw_nodes = data["data"].get("nodes")
            nodes = raw_nodes if isinstance(raw_nodes, list) else []
        return search_data_from_chub(nodes, original_query)

    async def get_character(self, full_path: str) -> dict[str, Any] | None:
        data = await self._request(
            "GET",
            f"{self.base_url}/api/characters/{full_path.strip('/')}",
            params={"full": "true"},
        )
        node = data.get("node") if isinstance(data, dict) else None
        return node if isinstance(node, dict) else None
