"""Push-to-toggle speech capture for the phone client."""

from __future__ import annotations

import threading
from typing import Callable, Optional, Protocol

from loguru import logger

TranscriptCallback = Callable[[str], None]
ErrorCallback = Callable[[Exception], None]


class SpeechCapture(Protocol):
    """Single-shot recogniser: ``start`` listens for one utterance."""

    @property
    def is_recording(self) -> bool: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def on_transcript(self, callback: TranscriptCallback) -> None: ...

    def on_error(self, callback: ErrorCallback) -> None: ...


class SpeechRecognitionCapture:
    """``SpeechCapture`` backed by the speech_recognition package.

    Listening runs in a worker thread. ``stop`` discards the utterance in
    flight; the worker still exits on its own once the phrase limit passes.
    """

    def __init__(
        self,
        *,
        language: str = "ar",
        phrase_time_limit: float = 8.0,
        timeout: Optional[float] = 5.0,
    ) -> None:
        try:
            import speech_recognition as sr
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "Speech capture unavailable. Install extras with: pip install 'callsim[voice]'"
            ) from exc
        self._sr = sr
        self._recognizer = sr.Recognizer()
        self._language = language
        self._phrase_time_limit = phrase_time_limit
        self._timeout = timeout
        self._on_transcript: Optional[TranscriptCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._worker: Optional[threading.Thread] = None
        self._cancelled = threading.Event()
        self._recording = False

    @property
    def is_recording(self) -> bool:
        return self._recording

    def on_transcript(self, callback: TranscriptCallback) -> None:
        self._on_transcript = callback

    def on_error(self, callback: ErrorCallback) -> None:
        self._on_error = callback

    def start(self) -> None:
        if self._recording:
            return
        # Each capture gets its own event so a stopped worker cannot touch the next one.
        cancelled = threading.Event()
        self._cancelled = cancelled
        self._recording = True
        self._worker = threading.Thread(
            target=self._listen_once, args=(cancelled,), name="speech-capture", daemon=True
        )
        self._worker.start()

    def stop(self) -> None:
        self._cancelled.set()
        self._recording = False

    def _listen_once(self, cancelled: threading.Event) -> None:
        sr = self._sr
        try:
            with sr.Microphone() as source:
                audio = self._recognizer.listen(
                    source,
                    timeout=self._timeout,
                    phrase_time_limit=self._phrase_time_limit,
                )
            if cancelled.is_set():
                return
            transcript = self._recognizer.recognize_google(audio, language=self._language)
        except (sr.WaitTimeoutError, sr.UnknownValueError):
            return
        except Exception as exc:
            logger.warning("Speech capture failed: {}", exc)
            if self._on_error is not None and not cancelled.is_set():
                self._on_error(exc)
            return
        finally:
            if cancelled is self._cancelled:
                self._recording = False

        transcript = (transcript or "").strip()
        if cancelled.is_set():
            return
        if transcript and self._on_transcript is not None:
            self._on_transcript(transcript)
