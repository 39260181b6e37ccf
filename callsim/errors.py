from __future__ import annotations

from typing import Optional


class CallSimError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(CallSimError):
    """A required credential or setting is missing for this operation."""

    status_code = 502


class ValidationError(CallSimError):
    """Bad or missing client input."""

    status_code = 400


class UpstreamError(CallSimError):
    """The LLM or TTS provider failed or answered with something unusable."""

    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        provider_message: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.provider_message = provider_message
