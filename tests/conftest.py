"""Shared fixtures: settings and a fake LLM/TTS upstream on httpx.MockTransport."""

import json

import httpx
import pytest

from callsim.config import Settings

LLM_URL = "https://llm.test/v1/messages"
TTS_URL = "https://tts.test/api/tts-proxy"
WAV_BYTES = b"RIFF\x24\x00\x00\x00WAVEfmt "


def make_settings(**overrides) -> Settings:
    values = dict(
        claude_api_key="test-claude-key",
        claude_api_url=LLM_URL,
        claude_model="claude-test",
        tts_api_key="test-tts-key",
        tts_api_url=TTS_URL,
        cors_origin="",
        session_secret="test-secret",
        max_body_bytes=1024 * 1024,
    )
    values.update(overrides)
    return Settings(**values)


def claude_reply(text: str, status: int = 200) -> httpx.Response:
    return httpx.Response(status, json={"content": [{"type": "text", "text": text}]})


class FakeUpstream:
    """Answers LLM and TTS calls from queued responses and records requests."""

    def __init__(self) -> None:
        self.llm_responses: list = []
        self.llm_requests: list[dict] = []
        self.llm_headers: list[httpx.Headers] = []
        self.tts_requests: list[dict] = []
        self.tts_response: httpx.Response = httpx.Response(200, content=WAV_BYTES)
        self.default_reply = "ئەلۆ؟"

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "llm.test":
            self.llm_requests.append(json.loads(request.content))
            self.llm_headers.append(request.headers)
            resp = self.llm_responses.pop(0) if self.llm_responses else claude_reply(self.default_reply)
            if isinstance(resp, Exception):
                raise resp
            return resp
        if request.url.host == "tts.test":
            self.tts_requests.append(json.loads(request.content))
            return self.tts_response
        return httpx.Response(404, text="unknown host")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def upstream():
    return FakeUpstream()
