"""Shared fakes and fixtures."""

from typing import Any

import pytest

from nare.channels.base import BaseChannel, Button
from nare.core.providers import Backend, BaseAIProvider
from nare.core.session import ChatSession, History, Language
from nare.security.executor import CommandExecutor
from nare.security.permissions import PermissionSet, PermissionStore
from nare.utils.config import set_config_path
from nare.utils.logging import AuditLogger


@pytest.fixture(autouse=True)
def default_settings(tmp_path):
    """Every test sees built-in defaults, never a settings file from disk."""
    set_config_path(tmp_path / "no-settings.yaml")
    yield
    set_config_path(None)


class FakeChannel(BaseChannel):
    def __init__(self) -> None:
        super().__init__("fake")
        self.sent: list[dict[str, Any]] = []
        self.typing: list[str] = []
        self.answered: list[str] = []

    async def start(self) -> None:
        self._connected = True

    async def stop(self) -> None:
        self._connected = False

    async def send_message(
        self,
        chat_id: str,
        content: str,
        parse_mode: str | None = None,
        buttons: list[list[Button]] | None = None,
    ) -> str | None:
        self.sent.append({"chat_id": chat_id, "content": content, "parse_mode": parse_mode, "buttons": buttons})
        return str(len(self.sent))

    async def answer_callback(self, callback_id: str, text: str | None = None) -> None:
        self.answered.append(callback_id)

    async def send_typing_indicator(self, chat_id: str) -> None:
        self.typing.append(chat_id)

    @property
    def texts(self) -> list[str]:
        return [m["content"] for m in self.sent]


class FakeProvider(BaseAIProvider):
    """Returns scripted replies in order; an exception in the script is raised."""

    backend = Backend.DEEPSEEK

    def __init__(self, replies: list[Any] | None = None) -> None:
        self.replies = list(replies or [])
        self.calls: list[dict[str, Any]] = []

    async def request(self, history: list[dict[str, Any]], system_prompt: str) -> str:
        self.calls.append({"history": [dict(turn) for turn in history], "system_prompt": system_prompt})
        reply = self.replies.pop(0) if self.replies else "ok"
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeExecutor(CommandExecutor):
    def __init__(self) -> None:
        super().__init__()
        self.commands: list[str] = []

    async def execute(self, command: str, chat_id: str | None = None) -> str:
        self.commands.append(command)
        return f"<output of {command}>"


class RecordingAudit(AuditLogger):
    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    def log(self, event: str, chat_id: str | None = None, command: str | None = None, status: str = "info", **details: Any) -> None:
        self.events.append({"event": event, "chat_id": chat_id, "command": command, **details})

    @property
    def names(self) -> list[str]:
        return [e["event"] for e in self.events]


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def audit() -> RecordingAudit:
    return RecordingAudit()


@pytest.fixture
def permission_store(tmp_path) -> PermissionStore:
    return PermissionStore(tmp_path / "permissions.json")


@pytest.fixture
def grant(permission_store):
    """Write a permission file granting the named capabilities."""

    def _grant(*names: str) -> None:
        permission_store.save(PermissionSet(**{name: True for name in names}))

    return _grant


@pytest.fixture
def session() -> ChatSession:
    return ChatSession(chat_id="42", language=Language.EN, history=History(20))


@pytest.fixture
def make_provider():
    def _make(*replies: Any) -> FakeProvider:
        return FakeProvider(list(replies))

    return _make
