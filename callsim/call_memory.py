from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Literal, Optional, TypedDict

Role = Literal["user", "assistant"]


class Message(TypedDict):
    role: Role
    content: str


@dataclass
class ConversationSession:
    selected_character: Optional[str] = None
    history: list[Message] = field(default_factory=list)
    created_at: float = 0.0
    updated_at: float = 0.0

    def __post_init__(self) -> None:
        now = time.time()
        self.created_at = self.created_at or now
        self.updated_at = now

    def touch(self) -> None:
        self.updated_at = time.time()


class SessionStore:
    """In-memory conversation state keyed by an opaque session token.

    Only the map is locked. Two overlapping requests for the same session
    can still interleave their history appends. Sessions idle longer than
    ``max_idle_sec`` are dropped the next time a token is resolved.
    """

    def __init__(self, max_idle_sec: Optional[float] = None) -> None:
        self._sessions: dict[str, ConversationSession] = {}
        self._lock = threading.Lock()
        self.max_idle_sec = max_idle_sec

    def _expired(self, session: ConversationSession, now: float) -> bool:
        return self.max_idle_sec is not None and now - session.updated_at > self.max_idle_sec

    def _prune(self, now: float) -> None:
        stale = [token for token, session in self._sessions.items() if self._expired(session, now)]
        for token in stale:
            del self._sessions[token]

    def resolve(self, token: Optional[str]) -> tuple[str, ConversationSession]:
        with self._lock:
            self._prune(time.time())
            if token and token in self._sessions:
                return token, self._sessions[token]
            new_token = secrets.token_urlsafe(24)
            session = ConversationSession()
            self._sessions[new_token] = session
            return new_token, session

    def get(self, token: Optional[str]) -> Optional[ConversationSession]:
        """Existing session for ``token``, or None. Never creates one."""
        if not token:
            return None
        with self._lock:
            session = self._sessions.get(token)
            if session is None or self._expired(session, time.time()):
                return None
            return session

    def sessions(self) -> list[ConversationSession]:
        with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    @staticmethod
    def get_selected_character(session: ConversationSession) -> Optional[str]:
        return session.selected_character

    @staticmethod
    def set_selected_character(session: ConversationSession, character_id: str) -> None:
        session.selected_character = character_id
        session.history = []
        session.touch()

    @staticmethod
    def append_message(session: ConversationSession, role: Role, content: str) -> None:
        session.history.append({"role": role, "content": content})
        session.touch()

    @staticmethod
    def get_history(session: ConversationSession) -> list[Message]:
        return [dict(m) for m in session.history]  # type: ignore[misc]

    @staticmethod
    def reset_history(session: ConversationSession) -> None:
        session.history = []
        session.touch()
