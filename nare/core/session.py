"""Per-conversation state kept in memory for the process lifetime."""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from ..utils.config import get_settings
from ..utils.logging import get_logger

logger = get_logger(__name__)


class Language(str, Enum):
    EN = "en"
    KO = "ko"
    SV = "sv"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Turn:
    """A single message in a conversation history."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class PendingConfirmation:
    """A ``/run`` command waiting for the operator's yes or no."""

    command: str
    label: str
    expires_at: float
    timer: asyncio.Task | None = field(default=None, repr=False, compare=False)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def cancel_timer(self) -> None:
        if self.timer is not None and not self.timer.done():
            self.timer.cancel()
        self.timer = None


class History:
    """Bounded FIFO of turns. Oldest turns fall off first."""

    def __init__(self, max_turns: int = 20) -> None:
        self.max_turns = max_turns
        self._turns: deque[Turn] = deque(maxlen=max_turns)

    def add(self, role: Role, content: str) -> None:
        self._turns.append(Turn(role=role, content=content))

    def add_user(self, content: str) -> None:
        self.add(Role.USER, content)

    def add_assistant(self, content: str) -> None:
        self.add(Role.ASSISTANT, content)

    def to_messages(self) -> list[dict[str, Any]]:
        return [turn.to_dict() for turn in self._turns]

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)


@dataclass
class ChatSession:
    """State for one conversation."""

    chat_id: str
    language: Language = Language.EN
    history: History = field(default_factory=History)
    pending: PendingConfirmation | None = None


class SessionStore:
    """
    In-memory sessions keyed by conversation id.

    Sessions are created on the first inbound event and never removed by the
    engine; ``delete`` exists for callers that manage their own lifetime.
    """

    def __init__(self, history_limit: int | None = None, default_language: str | None = None) -> None:
        config = get_settings().session
        self.history_limit = history_limit or config.history_limit
        self.default_language = Language(default_language or config.default_language)
        self._sessions: dict[str, ChatSession] = {}

    def get(self, chat_id: str) -> ChatSession | None:
        return self._sessions.get(chat_id)

    def put(self, session: ChatSession) -> None:
        self._sessions[session.chat_id] = session

    def delete(self, chat_id: str) -> None:
        session = self._sessions.pop(chat_id, None)
        if session is not None and session.pending is not None:
            session.pending.cancel_timer()

    def get_or_create(self, chat_id: str) -> ChatSession:
        session = self._sessions.get(chat_id)
        if session is None:
            session = ChatSession(
                chat_id=chat_id,
                language=self.default_language,
                history=History(self.history_limit),
            )
            self._sessions[chat_id] = session
            logger.info("New chat session", chat_id=chat_id, language=session.language.value)
        return session

    def cancel_all_timers(self) -> None:
        """Cancel every outstanding expiry task (shutdown)."""
        for session in self._sessions.values():
            if session.pending is not None:
                session.pending.cancel_timer()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._sessions
