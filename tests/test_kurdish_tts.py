"""Tests for the Kurdish TTS gateway."""

import asyncio
import base64

import httpx

from callsim.kurdish_tts import KurdishTTSGateway
from conftest import WAV_BYTES, FakeUpstream, make_settings


class TestKurdishTTSGateway:
    def setup_method(self):
        """Set up a configured gateway on a fake transport."""
        self.upstream = FakeUpstream()
        self.gateway = KurdishTTSGateway(make_settings(), self.upstream.client())

    def synthesize(self, text="سڵاو", speaker_id="sorani_female", gateway=None):
        return asyncio.run((gateway or self.gateway).synthesize(text, speaker_id))

    def test_success_returns_base64(self):
        """Audio bytes come back base64 encoded."""
        audio = self.synthesize()

        assert base64.b64decode(audio) == WAV_BYTES
        assert self.upstream.tts_requests == [{"text": "سڵاو", "speaker_id": "sorani_female"}]

    def test_missing_key_returns_none(self):
        """Without a key no request is made."""
        gateway = KurdishTTSGateway(make_settings(tts_api_key=""), self.upstream.client())

        assert self.synthesize(gateway=gateway) is None
        assert self.upstream.tts_requests == []

    def test_blank_text_returns_none(self):
        """Nothing to say, nothing to synthesise."""
        assert self.synthesize(text="   ") is None
        assert self.upstream.tts_requests == []

    def test_http_error_returns_none(self):
        """Provider errors never raise."""
        self.upstream.tts_response = httpx.Response(401, json={"error": "bad key"})

        assert self.synthesize() is None

    def test_empty_body_returns_none(self):
        """A 200 without audio counts as no audio."""
        self.upstream.tts_response = httpx.Response(200, content=b"")

        assert self.synthesize() is None

    def test_transport_error_returns_none(self):
        """Connection failures never raise."""

        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        gateway = KurdishTTSGateway(make_settings(), client)

        assert self.synthesize(gateway=gateway) is None
