#!/usr/bin/env python3
"""Terminal phone for callsim.

Pick a contact, talk by typing (or ``/mic`` for speech), hear the replies.
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import contextlib
import os
import shutil
import tempfile
import time
from typing import Optional

from loguru import logger
from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import print_formatted_text
from prompt_toolkit.styles import Style

from . import call_state as cs
from .config import settings
from .phone_client import NETWORK_ERROR, CallApiClient, CallApiError
from .speech_capture import SpeechCapture, SpeechRecognitionCapture

STYLE = Style.from_dict(
    {
        "title": "ansicyan bold",
        "hint": "ansigray",
        "user": "ansiblue bold",
        "ai": "ansigreen bold",
        "sep": "ansigray",
        "status": "ansiyellow",
        "err": "ansired bold",
    }
)

HELP = """\
Contacts screen:
  <number> or <id>  call that contact
  /quit             exit

Call screen:
  <text>  send a message
  /mic    start or stop speech capture
  /end    hang up
  /quit   exit
"""


def _say(*parts: tuple[str, str], end: str = "\n") -> None:
    print_formatted_text(FormattedText(list(parts)), style=STYLE, end=end)


def alert(message: str) -> None:
    _say(("class:err", f"هەڵە: {message}"))


class AudioPlayer:
    """Plays base64 WAV payloads through an external player process."""

    def __init__(self, command: str = "aplay") -> None:
        self.command = command
        self._proc: Optional[asyncio.subprocess.Process] = None

    @property
    def available(self) -> bool:
        return shutil.which(self.command) is not None

    async def stop(self) -> None:
        if self._proc and self._proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self._proc.terminate()
        self._proc = None

    async def play(self, b64_audio: str) -> None:
        await self.stop()
        fd, path = tempfile.mkstemp(prefix="callsim_", suffix=".wav")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(base64.b64decode(b64_audio))
            self._proc = await asyncio.create_subprocess_exec(
                self.command,
                "-q",
                path,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            await self._proc.wait()
        finally:
            with contextlib.suppress(OSError):
                os.remove(path)


class Phone:
    def __init__(
        self,
        api: CallApiClient,
        *,
        player: AudioPlayer,
        speech: Optional[SpeechCapture] = None,
        end_call_grace_sec: float = 3.0,
    ) -> None:
        self.api = api
        self.player = player
        self.speech = speech
        self.end_call_grace_sec = end_call_grace_sec
        self.state = cs.initial_state()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._playback: Optional[asyncio.Task] = None
        self._end_timer: Optional[asyncio.Task] = None
        self._pending_send: Optional[asyncio.Task] = None

        if speech is not None:
            speech.on_transcript(self._on_transcript)
            speech.on_error(self._on_speech_error)

    # -- rendering ---------------------------------------------------------

    def prompt_text(self) -> FormattedText:
        if self.state.screen is cs.Screen.SELECT:
            return FormattedText([("class:hint", "☎️ "), ("class:sep", "› ")])
        mic = "🎤 " if self.state.recording else ""
        return FormattedText(
            [
                ("class:status", f"{cs.call_duration(self.state, time.time())} "),
                ("class:sep", f"{mic}You › "),
            ]
        )

    def show_contacts(self) -> None:
        _say(("class:title", "☎️ پەیوەندی تەلەفۆنی"))
        _say(("class:hint", "کێ پەیوەندی پێوە بکەیت؟"))
        for idx, contact in enumerate(cs.CONTACTS, start=1):
            _say(
                ("class:sep", f"  {idx}. "),
                ("", f"{contact.avatar} {contact.name}"),
                ("class:hint", f"  {contact.subtitle}  🟢 ئامادەیە"),
            )

    def show_status(self) -> None:
        s = self.state
        _say(
            ("class:title", f"{s.caller_avatar} {s.caller_name}"),
            ("class:sep", "  |  "),
            ("class:status", cs.status_text(s.status)),
        )

    def show_bubble(self, bubble: cs.Bubble) -> None:
        if bubble.kind == "user":
            _say(("class:user", "You"), ("class:sep", ": "), ("", bubble.text))
        else:
            _say(("class:ai", self.state.caller_name or "AI"), ("class:sep", ": "), ("", bubble.text))

    # -- call flow ---------------------------------------------------------

    def _resolve_contact(self, raw: str) -> Optional[cs.Contact]:
        if raw.isdigit():
            idx = int(raw) - 1
            if 0 <= idx < len(cs.CONTACTS):
                return cs.CONTACTS[idx]
            return None
        return cs.find_contact(raw)

    async def start_call(self, character_id: str) -> None:
        self.state = cs.dialing(self.state, character_id)
        _say(("class:hint", self.state.busy_text))
        try:
            data = await self.api.select_character(character_id)
        except CallApiError as exc:
            alert(exc.message)
            self.state = cs.call_failed(self.state)
            return

        name = (data.get("character") or {}).get("name", "")
        self.state = cs.call_connected(self.state, name, data.get("initial_message"), time.time())
        logger.info("Call connected to {}", character_id)
        self.show_status()
        for bubble in self.state.bubbles:
            self.show_bubble(bubble)
        if data.get("initial_audio"):
            self._start_playback(data["initial_audio"])

    async def send_message(self, message: str) -> None:
        clean = (message or "").strip()
        if not clean or self.state.screen is not cs.Screen.CALL:
            return

        self.state = cs.message_sent(self.state, clean)
        _say(("class:status", cs.status_text(self.state.status)))
        try:
            data = await self.api.send_message(clean)
        except CallApiError as exc:
            alert(exc.message)
            self.state = cs.send_failed(self.state)
            return

        audio = data.get("audio")
        self.state = cs.reply_received(self.state, data.get("response", ""), bool(audio))
        self.show_bubble(self.state.bubbles[-1])
        if audio:
            self._start_playback(audio)

        if data.get("end_call"):
            logger.info("Server ended the call; hanging up in {}s", self.end_call_grace_sec)
            self._end_timer = asyncio.create_task(self._end_after_grace())

    async def end_call(self) -> None:
        timer, self._end_timer = self._end_timer, None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()
        try:
            await self.api.reset_conversation()
        except CallApiError as exc:
            logger.warning("reset_conversation failed: {}", exc.message)
        finally:
            if self.speech is not None and self.speech.is_recording:
                self.speech.stop()
            await self.player.stop()
            self.state = cs.call_ended()
            _say(("class:hint", "📞 ..."))
            self.show_contacts()

    async def _end_after_grace(self) -> None:
        await asyncio.sleep(self.end_call_grace_sec)
        if self.state.screen is cs.Screen.CALL:
            await self.end_call()

    def toggle_mic(self) -> None:
        if self.speech is None:
            alert("وەسفی دەنگ پشتگیری ناکرێت")
            return
        if self.speech.is_recording:
            self.speech.stop()
        else:
            self.speech.start()
        self.state = cs.recording_changed(self.state, self.speech.is_recording)

    def _start_playback(self, b64_audio: str) -> None:
        if not self.player.available:
            self.state = cs.playback_finished(self.state)
            return
        self.state = cs.playback_started(self.state)
        self._playback = asyncio.create_task(self._play(b64_audio))

    async def _play(self, b64_audio: str) -> None:
        try:
            await self.player.play(b64_audio)
        except Exception as exc:
            logger.warning("Audio playback failed: {}", exc)
        finally:
            self.state = cs.playback_finished(self.state)

    # -- speech callbacks (worker thread) ----------------------------------

    def _on_transcript(self, text: str) -> None:
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._dispatch_transcript, text)

    def _dispatch_transcript(self, text: str) -> None:
        self.state = cs.recording_changed(self.state, False)
        self.show_bubble(cs.Bubble("user", text))
        self._pending_send = asyncio.ensure_future(self.send_message(text))

    def _on_speech_error(self, exc: Exception) -> None:
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._dispatch_speech_error)

    def _dispatch_speech_error(self) -> None:
        self.state = cs.recording_changed(self.state, False)

    # -- main loop ---------------------------------------------------------

    async def check_server(self) -> bool:
        try:
            ok = await self.api.health()
        except CallApiError as exc:
            ok = False
            logger.warning("Health check failed: {}", exc.message)
        if not ok:
            alert(NETWORK_ERROR)
        return ok

    async def handle_line(self, line: str) -> bool:
        """Process one line of input. Returns False when the user quits."""
        text = line.strip()
        if text.lower() in {"/quit", "quit", "exit"}:
            return False
        if text.lower() in {"/help", "help"}:
            _say(("class:hint", HELP))
            return True

        if self.state.screen is cs.Screen.SELECT:
            if not text:
                return True
            contact = self._resolve_contact(text)
            if contact is None:
                alert(f"Unknown contact: {text}")
                return True
            await self.start_call(contact.id)
            return True

        if text == "/end":
            await self.end_call()
        elif text == "/mic":
            self.toggle_mic()
        elif text:
            await self.send_message(text)
        return True

    async def run(self) -> None:
        self._loop = asyncio.get_running_loop()
        session: PromptSession = PromptSession(style=STYLE)
        await self.check_server()
        self.show_contacts()
        _say(("class:hint", "/help for help."))

        with patch_stdout():
            while True:
                try:
                    line = await session.prompt_async(self.prompt_text)
                except (EOFError, KeyboardInterrupt):
                    break
                if not await self.handle_line(line):
                    break

        if self.state.screen is cs.Screen.CALL:
            await self.end_call()
        await self.player.stop()


def _build_speech(language: str, enabled: bool) -> Optional[SpeechCapture]:
    if not enabled:
        return None
    try:
        return SpeechRecognitionCapture(language=language)
    except RuntimeError as exc:
        logger.warning("{}", exc)
        return None


async def _amain(args: argparse.Namespace) -> None:
    async with CallApiClient(args.api_url, timeout=settings.http_timeout_sec) as api:
        phone = Phone(
            api,
            player=AudioPlayer(args.player),
            speech=_build_speech(args.speech_language, not args.no_speech),
            end_call_grace_sec=args.end_call_grace,
        )
        await phone.run()


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Terminal phone for the callsim API")
    parser.add_argument("--api-url", default=settings.api_url)
    parser.add_argument("--player", default=settings.audio_player)
    parser.add_argument("--speech-language", default=settings.speech_language)
    parser.add_argument("--no-speech", action="store_true", help="disable /mic speech capture")
    parser.add_argument("--end-call-grace", type=float, default=settings.end_call_grace_sec)
    args = parser.parse_args(argv)
    asyncio.run(_amain(args))


if __name__ == "__main__":
    main()
