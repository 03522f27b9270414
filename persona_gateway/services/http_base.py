from __future__ import annotations

import asyncio
import json
import random
from typing import Any, Mapping

import aiohttp

RETRIABLE_STATUSES = frozenset({408, 409, 429, 500, 502, 503, 504})
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})


class ChatBackendError(RuntimeError):
    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class JsonHttpClient:
    """Shared aiohttp session with the retry loop used by every backend client."""

    backend_name = "http"

    def __init__(self, *, timeout_seconds: int = 60, session: aiohttp.ClientSession | None = None) -> None:
        self.timeout = aiohttp.ClientTimeout(total=max(5, int(timeout_seconds)))
        self._session = session
        self._owns_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession | None:
        return self._session

    async def start(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        payload: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        retries: int = 3,
    ) -> Any:
        if self._session is None or self._session.closed:
            await self.start()
        assert self._session is not None

        label = self.backend_name
        # Non-idempotent requests are repeated only when the connection was never made.
        idempotent = method.upper() in IDEMPOTENT_METHODS
        last_error: Exception | None = None
        for attempt in range(1, retries + 1):
            try:
                async with self._session.request(
                    method,
                    url,
                    json=payload,
                    params=params,
                    headers=headers,
                ) as response:
                    text = await response.text()
                    if response.status == 200:
                        return json.loads(text) if text.strip() else {}
                    if not idempotent or response.status not in RETRIABLE_STATUSES:
                        raise ChatBackendError(f"{label} error {response.status}: {text[:400]}", status=response.status)
                    last_error = ChatBackendError(
                        f"{label} retriable error {response.status}: {text[:400]}",
                        status=response.status,
                    )
            except asyncio.CancelledError:
                raise
            except ChatBackendError:
                raise
            except aiohttp.ClientConnectorError as exc:
                last_error = exc
            except Exception as exc:
                if not idempotent:
                    raise ChatBackendError(f"{label} request failed: {exc}") from exc
                last_error = exc

            if attempt < retries:
                await asyncio.sleep(min(4.0, 0.35 * attempt + random.random() * 0.2))

        if last_error is not None:
            raise ChatBackendError(f"{label} request failed after retries: {last_error}")
        raise ChatBackendError(f"{label} request failed without explicit error")
