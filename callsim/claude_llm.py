from __future__ import annotations

import json
from typing import Optional, Sequence

import httpx
from loguru import logger

from .call_memory import Message
from .characters import END_CALL_MARKER, Character
from .config import Settings
from .errors import ConfigurationError, UpstreamError

GREETING_INSTRUCTIONS = (
    "\n\nزۆر گرنگ: ئێستا کەسێک پەیوەندیت پێوە دەگرێت. تۆ دەبێت سەرەتا قسە بکەیت "
    "وەک کاتێک کەسێک تەلەفۆنت بۆ دێت. هەر جارێک بە شێوەیەکی جیاواز سڵاو بکە یان "
    "بپرسە کێیە. بۆ نموونە:\n"
    "- ئەلۆ؟\n"
    "- ئەلۆ کێیە؟\n"
    "- بەڵێ فەرموو؟\n"
    "- ئەلۆ تۆ کێیت؟\n"
    "- هەڵۆ؟\n"
    "- ئەلۆ فەرموو؟\n"
    "- بەڵێ؟\n\n"
    "تەنها یەک ڕستەی کورت بڵێ بە شێوەی سروشتی وەک کاتێک کەسێک تەلەفۆنت بۆ دێت."
)
CALL_CONNECTING_TURN = "[پەیوەندی تەلەفۆن دەگرێت]"

_MAX_DETAIL_CHARS = 800


def split_end_call(text: str) -> tuple[str, bool]:
    if END_CALL_MARKER not in text:
        return text, False
    return text.replace(END_CALL_MARKER, "").strip(), True


def _provider_detail(resp: httpx.Response) -> str:
    raw = (resp.text or "").strip()
    try:
        body = json.loads(raw) if raw else None
    except json.JSONDecodeError:
        body = None
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    if len(raw) > _MAX_DETAIL_CHARS:
        raw = raw[:_MAX_DETAIL_CHARS] + "..."
    return raw


def _extract_text(resp: httpx.Response) -> Optional[str]:
    try:
        body = resp.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    content = body.get("content")
    if not isinstance(content, list) or not content or not isinstance(content[0], dict):
        return None
    text = content[0].get("text")
    if not isinstance(text, str) or not text.strip():
        return None
    return text.strip()


class ClaudeGateway:
    """Chat completions against the Anthropic Messages API."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient) -> None:
        self._settings = settings
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self._settings.claude_api_key.strip())

    async def _complete(self, system: str, messages: list[dict], max_tokens: int) -> str:
        if not self.configured:
            raise ConfigurationError(
                "Missing CLAUDE_API_KEY. Add your Claude key to the environment or .env, "
                "then restart the server."
            )
        headers = {
            "content-type": "application/json",
            "x-api-key": self._settings.claude_api_key.strip(),
            "anthropic-version": self._settings.anthropic_version,
        }
        payload = {
            "model": self._settings.claude_model,
            "max_tokens": max_tokens,
            "system": system,
            "messages": messages,
        }
        try:
            resp = await self._client.post(self._settings.claude_api_url, headers=headers, json=payload)
        except httpx.RequestError as exc:
            raise UpstreamError(f"Claude API request failed: {exc}") from exc

        if resp.status_code < 200 or resp.status_code >= 300:
            detail = _provider_detail(resp)
            raise UpstreamError(
                f"Claude API HTTP {resp.status_code}: {detail or 'Request failed'}",
                status=resp.status_code,
                provider_message=detail or None,
            )

        text = _extract_text(resp)
        if text is None:
            raise UpstreamError("Claude API returned no text response", status=resp.status_code)
        return text

    async def generate_reply(
        self,
        character: Character,
        user_message: str,
        history: Sequence[Message],
    ) -> str:
        # The last history entry is the user turn being answered; it is sent
        # separately as the final message.
        messages = [{"role": m["role"], "content": m["content"]} for m in list(history)[:-1]]
        messages.append({"role": "user", "content": user_message})
        return await self._complete(
            character.system_prompt,
            messages,
            self._settings.reply_max_tokens,
        )

    async def generate_greeting(self, character: Character) -> Optional[str]:
        if not self.configured:
            return None
        try:
            return await self._complete(
                character.system_prompt + GREETING_INSTRUCTIONS,
                [{"role": "user", "content": CALL_CONNECTING_TURN}],
                self._settings.greeting_max_tokens,
            )
        except Exception as exc:
            logger.warning("Initial greeting failed for {}: {}", character.id, exc)
            return None
