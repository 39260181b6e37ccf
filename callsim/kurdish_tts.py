from __future__ import annotations

import base64
from typing import Optional

import httpx
from loguru import logger

from .config import Settings


class KurdishTTSGateway:
    """Best-effort speech synthesis. Every failure degrades to no audio."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient) -> None:
        self._settings = settings
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self._settings.tts_api_key.strip())

    async def synthesize(self, text: str, speaker_id: str) -> Optional[str]:
        if not self.configured or not (text or "").strip():
            return None
        try:
            resp = await self._client.post(
                self._settings.tts_api_url,
                headers={
                    "content-type": "application/json",
                    "x-api-key": self._settings.tts_api_key.strip(),
                },
                json={"text": text, "speaker_id": speaker_id},
            )
        except httpx.RequestError as exc:
            logger.error("Kurdish TTS request failed: {}", exc)
            return None

        if resp.status_code < 200 or resp.status_code >= 300:
            logger.error(
                "Kurdish TTS failed HTTP {}: {}",
                resp.status_code,
                (resp.text or "").strip() or "Request failed",
            )
            return None

        audio = resp.content
        if not audio:
            logger.warning("Kurdish TTS returned an empty body for speaker {}", speaker_id)
            return None
        logger.info("Kurdish TTS audio bytes={} speaker={}", len(audio), speaker_id)
        return base64.b64encode(audio).decode("ascii")
