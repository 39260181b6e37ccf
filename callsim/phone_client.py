from __future__ import annotations

import json
from typing import Any, Optional

import httpx
from loguru import logger

NETWORK_ERROR = "Network error / server not running"


class CallApiError(Exception):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class CallApiClient:
    """Talks to the callsim HTTP API. The cookie jar keeps the session."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "CallApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, body: Optional[dict] = None) -> dict[str, Any]:
        try:
            resp = await self._client.request(method, path, json=body)
        except httpx.RequestError as exc:
            logger.error("{} {} failed: {}", method, path, exc)
            raise CallApiError(NETWORK_ERROR) from exc

        text = resp.text
        try:
            data = json.loads(text) if text else None
        except json.JSONDecodeError:
            data = None

        if resp.is_error:
            if isinstance(data, dict) and data.get("error"):
                msg = str(data["error"])
            else:
                msg = text or f"HTTP {resp.status_code}"
            raise CallApiError(msg, status=resp.status_code)

        if not isinstance(data, dict):
            raise CallApiError(text or "Unexpected response", status=resp.status_code)
        return data

    async def _post(self, path: str, body: Optional[dict] = None) -> dict[str, Any]:
        data = await self._request("POST", path, body or {})
        if not data.get("success"):
            raise CallApiError(str(data.get("error") or "هەڵەیەک ڕوویدا"))
        return data

    async def health(self) -> bool:
        data = await self._request("GET", "/api/health")
        return bool(data.get("ok"))

    async def select_character(self, character_id: str) -> dict[str, Any]:
        return await self._post("/api/select_character", {"character": character_id})

    async def send_message(self, message: str) -> dict[str, Any]:
        return await self._post("/api/send_message", {"message": message})

    async def reset_conversation(self) -> dict[str, Any]:
        return await self._post("/api/reset_conversation")
