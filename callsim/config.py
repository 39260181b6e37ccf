from __future__ import annotations

import os
import re
from dataclasses import dataclass

from dotenv import load_dotenv


def _load_env() -> None:
    env_path = os.getenv("CALLSIM_ENV", ".env")
    if os.path.exists(env_path):
        load_dotenv(env_path, override=False)


_load_env()

_LOCAL_ORIGIN_RE = r"https?://(localhost|127\.0\.0\.1)(:\d+)?"


@dataclass
class Settings:
    # Server
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3005"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    cors_origin: str = os.getenv("CORS_ORIGIN", "")
    session_secret: str = os.getenv("SESSION_SECRET", "dev-secret")
    session_cookie: str = os.getenv("SESSION_COOKIE", "callsim_session")
    session_max_age: int = int(os.getenv("SESSION_MAX_AGE", str(14 * 24 * 60 * 60)))
    max_body_bytes: int = int(os.getenv("MAX_BODY_BYTES", str(1024 * 1024)))
    http_timeout_sec: float = float(os.getenv("HTTP_TIMEOUT_SEC", "60"))

    # Claude LLM
    claude_api_key: str = os.getenv("CLAUDE_API_KEY", "")
    claude_api_url: str = os.getenv("CLAUDE_API_URL", "https://api.anthropic.com/v1/messages")
    claude_model: str = os.getenv("CLAUDE_MODEL", "claude-3-5-haiku-20241022")
    anthropic_version: str = os.getenv("ANTHROPIC_VERSION", "2023-06-01")
    reply_max_tokens: int = int(os.getenv("CLAUDE_MAX_TOKENS", "1024"))
    greeting_max_tokens: int = int(os.getenv("GREETING_MAX_TOKENS", "100"))

    # Kurdish TTS
    tts_api_key: str = os.getenv("KURDISH_TTS_API_KEY", "")
    tts_api_url: str = os.getenv("KURDISH_TTS_API_URL", "https://www.kurdishtts.com/api/tts-proxy")

    # Phone client
    api_url: str = os.getenv("CALLSIM_API_URL", "http://localhost:3005")
    end_call_grace_sec: float = float(os.getenv("END_CALL_GRACE_SEC", "3.0"))
    audio_player: str = os.getenv("AUDIO_PLAYER", "aplay")
    speech_language: str = os.getenv("SPEECH_LANGUAGE", "ar")

    def cors_origin_regex(self) -> str:
        allowed = self.cors_origin.strip()
        if allowed:
            return f"(?i)^(?:{re.escape(allowed)}|{_LOCAL_ORIGIN_RE})$"
        return f"(?i)^{_LOCAL_ORIGIN_RE}$"

    def origin_allowed(self, origin: str | None) -> bool:
        if not origin:
            return True
        allowed = self.cors_origin.strip()
        if allowed and origin == allowed:
            return True
        return re.fullmatch(_LOCAL_ORIGIN_RE, origin, flags=re.IGNORECASE) is not None

    def credential_summary(self) -> dict[str, bool]:
        return {
            "CLAUDE_API_KEY": bool(self.claude_api_key.strip()),
            "KURDISH_TTS_API_KEY": bool(self.tts_api_key.strip()),
            "SESSION_SECRET": self.session_secret != "dev-secret",
        }


settings = Settings()
