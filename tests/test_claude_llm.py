"""Tests for the Claude gateway."""

import asyncio

import httpx
import pytest

from callsim import characters
from callsim.claude_llm import CALL_CONNECTING_TURN, ClaudeGateway, split_end_call
from callsim.errors import ConfigurationError, UpstreamError
from conftest import FakeUpstream, claude_reply, make_settings


class TestSplitEndCall:
    def test_no_marker(self):
        """Text without the marker is returned untouched."""
        assert split_end_call(" سڵاو ") == (" سڵاو ", False)

    @pytest.mark.parametrize(
        "raw",
        [
            "[END_CALL] ماڵئاوا",
            "ماڵئاوا [END_CALL]",
            "ماڵ[END_CALL]ئاوا",
            "[END_CALL]ماڵئاوا[END_CALL][END_CALL]",
        ],
    )
    def test_marker_removed(self, raw):
        """Every occurrence is removed and the flag is raised."""
        text, end_call = split_end_call(raw)

        assert end_call is True
        assert "[END_CALL]" not in text
        assert text == text.strip()

    def test_marker_only(self):
        """A reply made only of markers becomes empty."""
        assert split_end_call("[END_CALL]") == ("", True)


class TestClaudeGateway:
    def setup_method(self):
        """Set up a gateway on a fake transport."""
        self.upstream = FakeUpstream()
        self.character = characters.lookup("sara")
        self.gateway = ClaudeGateway(make_settings(), self.upstream.client())

    def reply(self, message, history):
        return asyncio.run(self.gateway.generate_reply(self.character, message, history))

    def test_reply_skips_latest_history_entry(self):
        """The just-appended user turn is not sent twice."""
        self.upstream.llm_responses.append(claude_reply("  باشم  "))
        history = [
            {"role": "assistant", "content": "ئەلۆ؟"},
            {"role": "user", "content": "سڵاو"},
            {"role": "assistant", "content": "سڵاو، چۆنیت؟"},
            {"role": "user", "content": "باشم"},
        ]

        text = self.reply("باشم", history)

        assert text == "باشم"
        request = self.upstream.llm_requests[0]
        assert request["system"] == self.character.system_prompt
        assert request["messages"] == history[:-1] + [{"role": "user", "content": "باشم"}]

    def test_reply_missing_key(self):
        """A missing key fails before any request."""
        gateway = ClaudeGateway(make_settings(claude_api_key="  "), self.upstream.client())

        with pytest.raises(ConfigurationError, match="CLAUDE_API_KEY"):
            asyncio.run(gateway.generate_reply(self.character, "سڵاو", []))
        assert self.upstream.llm_requests == []

    def test_reply_http_error_uses_provider_message(self):
        """Non-2xx carries the status and provider error message."""
        self.upstream.llm_responses.append(
            httpx.Response(429, json={"type": "error", "error": {"type": "rate_limit_error", "message": "slow down"}})
        )

        with pytest.raises(UpstreamError) as excinfo:
            self.reply("سڵاو", [{"role": "user", "content": "سڵاو"}])

        assert excinfo.value.status == 429
        assert excinfo.value.provider_message == "slow down"
        assert str(excinfo.value) == "Claude API HTTP 429: slow down"

    def test_reply_http_error_plain_body(self):
        """A non-JSON error body is passed through."""
        self.upstream.llm_responses.append(httpx.Response(500, text="Internal Server Error"))

        with pytest.raises(UpstreamError, match="Claude API HTTP 500: Internal Server Error"):
            self.reply("سڵاو", [])

    def test_reply_http_error_empty_body(self):
        """An empty error body falls back to a generic detail."""
        self.upstream.llm_responses.append(httpx.Response(503))

        with pytest.raises(UpstreamError, match="Claude API HTTP 503: Request failed"):
            self.reply("سڵاو", [])

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="not json"),
            httpx.Response(200, json={"content": []}),
            httpx.Response(200, json={"content": [{"type": "text", "text": "   "}]}),
            httpx.Response(200, json=["unexpected"]),
        ],
    )
    def test_reply_unusable_body(self, response):
        """Malformed or empty bodies are upstream errors."""
        self.upstream.llm_responses.append(response)

        with pytest.raises(UpstreamError, match="no text response"):
            self.reply("سڵاو", [])

    def test_reply_transport_error(self):
        """Connection failures become upstream errors without a status."""
        self.upstream.llm_responses.append(httpx.ConnectTimeout("timed out"))

        with pytest.raises(UpstreamError) as excinfo:
            self.reply("سڵاو", [])

        assert excinfo.value.status is None

    def test_greeting_request(self):
        """The greeting uses the augmented prompt and the connecting turn."""
        self.upstream.llm_responses.append(claude_reply("بەڵێ فەرموو؟"))

        text = asyncio.run(self.gateway.generate_greeting(self.character))

        assert text == "بەڵێ فەرموو؟"
        request = self.upstream.llm_requests[0]
        assert request["max_tokens"] == 100
        assert request["system"].startswith(self.character.system_prompt)
        assert len(request["system"]) > len(self.character.system_prompt)
        assert request["messages"] == [{"role": "user", "content": CALL_CONNECTING_TURN}]

    def test_greeting_degrades_on_failure(self):
        """Any greeting failure yields None."""
        self.upstream.llm_responses.append(httpx.Response(500, text="boom"))

        assert asyncio.run(self.gateway.generate_greeting(self.character)) is None

    def test_greeting_without_key(self):
        """No key, no request, no greeting."""
        gateway = ClaudeGateway(make_settings(claude_api_key=""), self.upstream.client())

        assert asyncio.run(gateway.generate_greeting(self.character)) is None
        assert self.upstream.llm_requests == []
