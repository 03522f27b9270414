from __future__ import annotations

import re
from typing import Any

from ..prompts.context_window import ChatRequest
from .http_base import ChatBackendError, JsonHttpClient


class OpenAiChatClient(JsonHttpClient):
    """Stateless chat-completion client for any OpenAI-compatible endpoint."""

    backend_name = "openai"

    @staticmethod
    def _extract_text(data: Any) -> str:
        if not isinstance(data, dict):
            raise ChatBackendError("openai returned non-object JSON response")
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            raise ChatBackendError(f"openai error: {error['message']}")

        choices = data.get("choices") or []
        if not choices:
            raise ChatBackendError("openai returned no choices")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            finish_reason = choices[0].get("finish_reason")
            raise ChatBackendError(f"openai empty response (finish_reason={finish_reason})")
        # Some reasoning-capable models may emit hidden-thought tags.
        return re.sub(r"<think>.*?</think>\s*", "", content, flags=re.IGNORECASE | re.DOTALL).strip()

    async def complete(self, request: ChatRequest) -> str:
        if not request.endpoint:
            raise ChatBackendError("openai endpoint is not configured")
        headers = {"Content-Type": "application/json"}
        if request.token:
            headers["Authorization"] = f"Bearer {request.token}"
        data = await self._request("POST", request.endpoint, payload=request.to_payload(), headers=headers)
        return self._extract_text(data)
