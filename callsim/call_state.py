"""Screen and call-status state machine for the phone client.

Every transition is a pure function returning a new ``CallState`` so the
renderer (terminal, web, tests) only has to draw whatever it is handed.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional


class Screen(str, Enum):
    SELECT = "select"
    CALL = "call"


class CallStatus(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    RESPONDING = "responding"
    SPEAKING = "speaking"


STATUS_TEXT = {
    CallStatus.CONNECTING: "پەیوەندی هەیە...",
    CallStatus.ACTIVE: "پەیوەندی چالاکە",
    CallStatus.RESPONDING: "وەڵام دەداتەوە...",
    CallStatus.SPEAKING: "قسە دەکات...",
}

DEFAULT_GREETING = "سڵاو! چۆنیت؟ دەتوانیت بە دەنگ یان نووسین قسەم لەگەڵ بکەیت 😊"
WAIT_TEXT = "چاوەڕێ بکە..."
DIALING_TEXT = "پەیوەندی دەگیرێت..."
PREPARING_REPLY_TEXT = "وەڵامەکە ئامادە دەکرێت..."


@dataclass(frozen=True)
class Contact:
    id: str
    name: str
    subtitle: str
    avatar: str


CONTACTS = (
    Contact(id="sara", name="سارا", subtitle="کچێکی 24 ساڵان لە هەولێر", avatar="👧"),
    Contact(id="kawa", name="کاوە", subtitle="کوڕێکی 26 ساڵان لە هەولێر", avatar="👦"),
)


def find_contact(character_id: Optional[str]) -> Optional[Contact]:
    for contact in CONTACTS:
        if contact.id == character_id:
            return contact
    return None


@dataclass(frozen=True)
class Bubble:
    kind: str  # "user" or "ai"
    text: str


@dataclass(frozen=True)
class CallState:
    screen: Screen = Screen.SELECT
    character_id: Optional[str] = None
    caller_name: str = ""
    caller_avatar: str = ""
    status: CallStatus = CallStatus.CONNECTING
    bubbles: tuple[Bubble, ...] = field(default_factory=lambda: (Bubble("ai", DEFAULT_GREETING),))
    recording: bool = False
    call_started_at: Optional[float] = None
    busy: bool = False
    busy_text: str = WAIT_TEXT


def initial_state() -> CallState:
    return CallState()


def dialing(state: CallState, character_id: str) -> CallState:
    return replace(state, character_id=character_id, busy=True, busy_text=DIALING_TEXT)


def call_connected(
    state: CallState,
    caller_name: str,
    greeting: Optional[str],
    now: float,
) -> CallState:
    contact = find_contact(state.character_id)
    return replace(
        state,
        screen=Screen.CALL,
        caller_name=caller_name or (contact.name if contact else ""),
        caller_avatar=contact.avatar if contact else "",
        status=CallStatus.ACTIVE,
        bubbles=(Bubble("ai", greeting or DEFAULT_GREETING),),
        call_started_at=now,
        busy=False,
    )


def call_failed(state: CallState) -> CallState:
    return replace(state, screen=Screen.SELECT, busy=False)


def message_sent(state: CallState, text: str) -> CallState:
    return replace(
        state,
        bubbles=state.bubbles + (Bubble("user", text),),
        status=CallStatus.RESPONDING,
        busy=True,
        busy_text=PREPARING_REPLY_TEXT,
    )


def reply_received(state: CallState, text: str, has_audio: bool) -> CallState:
    return replace(
        state,
        bubbles=state.bubbles + (Bubble("ai", text),),
        status=CallStatus.SPEAKING if has_audio else CallStatus.ACTIVE,
        busy=False,
    )


def send_failed(state: CallState) -> CallState:
    return replace(state, status=CallStatus.ACTIVE, busy=False)


def playback_started(state: CallState) -> CallState:
    return replace(state, status=CallStatus.SPEAKING)


def playback_finished(state: CallState) -> CallState:
    if state.screen is not Screen.CALL:
        return state
    return replace(state, status=CallStatus.ACTIVE)


def recording_changed(state: CallState, recording: bool) -> CallState:
    return replace(state, recording=recording)


def call_ended() -> CallState:
    return initial_state()


def status_text(status: CallStatus) -> str:
    return STATUS_TEXT[status]


def format_duration(seconds: float) -> str:
    elapsed = max(0, int(seconds))
    return f"{elapsed // 60:02d}:{elapsed % 60:02d}"


def call_duration(state: CallState, now: float) -> str:
    if state.call_started_at is None:
        return "00:00"
    return format_duration(now - state.call_started_at)
