"""Tests for the Telegram long-poll transport (Bot API calls are scripted)."""

from typing import Any

import aiohttp
import pytest

from nare.channels.base import Button
from nare.channels.telegram import MAX_MESSAGE_LENGTH, TelegramAPIError, TelegramChannel, split_message
from nare.utils.config import ConfigurationError


class ScriptedTelegram(TelegramChannel):
    """Replaces HTTP with a per-method script of results or exceptions."""

    def __init__(self, **scripts: list[Any]) -> None:
        super().__init__(token="123:abc", retry_backoff=5)
        self.scripts = scripts
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def call(self, method: str, params: dict[str, Any] | None = None, timeout: float = 30) -> Any:
        self.calls.append((method, params or {}))
        script = self.scripts.get(method)
        result = script.pop(0) if script else {"message_id": len(self.calls)}
        if isinstance(result, Exception):
            raise result
        return result

    def methods(self, name: str) -> list[dict[str, Any]]:
        return [params for method, params in self.calls if method == name]


@pytest.fixture
def sleeps(monkeypatch) -> list[float]:
    recorded: list[float] = []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    monkeypatch.setattr("nare.channels.telegram.asyncio.sleep", fake_sleep)
    return recorded


def update(update_id: int, text: str, chat_id: int = 42) -> dict[str, Any]:
    return {"update_id": update_id, "message": {"message_id": update_id, "chat": {"id": chat_id}, "text": text}}


@pytest.mark.asyncio
async def test_offset_advances_even_when_handler_fails():
    channel = ScriptedTelegram(getUpdates=[[update(10, "first"), update(11, "second")]])
    received: list[str] = []

    async def handler(message):
        received.append(message.content)
        raise RuntimeError("handler exploded")

    channel.on_message(handler)
    await channel.poll_once()

    assert received == ["first", "second"]
    assert channel.offset == 12


@pytest.mark.asyncio
async def test_poll_requests_use_offset_and_allowed_updates():
    channel = ScriptedTelegram(getUpdates=[[update(5, "hi")], []])
    channel.on_message(_ignore)
    await channel.poll_once()
    await channel.poll_once()

    first, second = channel.methods("getUpdates")
    assert first["offset"] == 0
    assert second["offset"] == 6
    assert second["timeout"] == 30
    assert second["allowed_updates"] == ["message", "callback_query"]


async def _ignore(message) -> None:
    return None


@pytest.mark.parametrize(
    "error",
    [
        aiohttp.ClientConnectionError("network down"),
        TelegramAPIError("getUpdates", "Conflict", 409),
        ValueError("not json"),
    ],
)
@pytest.mark.asyncio
async def test_transport_errors_back_off_without_touching_offset(error, sleeps):
    channel = ScriptedTelegram(getUpdates=[error])
    channel.offset = 7

    await channel.poll_once()

    assert sleeps == [5]
    assert channel.offset == 7


@pytest.mark.parametrize("result", [{"unexpected": "shape"}, "oops", 7])
@pytest.mark.asyncio
async def test_non_list_result_backs_off_without_touching_offset(result, sleeps):
    channel = ScriptedTelegram(getUpdates=[result])
    channel.offset = 7

    await channel.poll_once()

    assert sleeps == [5]
    assert channel.offset == 7


@pytest.mark.asyncio
async def test_non_dict_entries_are_skipped(sleeps):
    channel = ScriptedTelegram(getUpdates=[["junk", None, update(4, "hi")]])
    received = []

    async def handler(message):
        received.append(message.content)

    channel.on_message(handler)
    await channel.poll_once()

    assert received == ["hi"]
    assert channel.offset == 5
    assert sleeps == []


@pytest.mark.asyncio
async def test_callback_is_answered_and_dispatched():
    channel = ScriptedTelegram(
        getUpdates=[[{
            "update_id": 3,
            "callback_query": {"id": "cb9", "data": "confirm:yes", "message": {"message_id": 1, "chat": {"id": 42}}},
        }]]
    )
    events = []

    async def handler(event):
        events.append(event)

    channel.on_callback(handler)
    await channel.poll_once()

    assert channel.methods("answerCallbackQuery") == [{"callback_query_id": "cb9"}]
    assert events[0].chat_id == "42"
    assert events[0].data == "confirm:yes"


@pytest.mark.asyncio
async def test_non_text_messages_are_skipped():
    channel = ScriptedTelegram(getUpdates=[[{"update_id": 1, "message": {"chat": {"id": 1}, "sticker": {}}}]])
    received = []

    async def handler(message):
        received.append(message)

    channel.on_message(handler)
    await channel.poll_once()
    assert received == []
    assert channel.offset == 2


@pytest.mark.asyncio
async def test_long_message_is_split_with_buttons_on_last_part():
    channel = ScriptedTelegram()
    text = "a" * (MAX_MESSAGE_LENGTH + 100)

    await channel.send_message("42", text, buttons=[[Button("Yes", "confirm:yes")]])

    sent = channel.methods("sendMessage")
    assert len(sent) == 2
    assert len(sent[0]["text"]) == MAX_MESSAGE_LENGTH
    assert "reply_markup" not in sent[0]
    assert sent[1]["reply_markup"] == {"inline_keyboard": [[{"text": "Yes", "callback_data": "confirm:yes"}]]}


@pytest.mark.asyncio
async def test_rejected_markup_is_resent_as_plain_text():
    channel = ScriptedTelegram(
        sendMessage=[TelegramAPIError("sendMessage", "Bad Request: can't parse entities", 400), {"message_id": 9}]
    )

    message_id = await channel.send_message("42", "*unbalanced", parse_mode="Markdown")

    first, second = channel.methods("sendMessage")
    assert first["parse_mode"] == "Markdown"
    assert "parse_mode" not in second
    assert message_id == "9"


@pytest.mark.asyncio
async def test_send_failure_returns_none():
    channel = ScriptedTelegram(sendMessage=[aiohttp.ClientConnectionError("down")])
    assert await channel.send_message("42", "hello") is None


@pytest.mark.asyncio
async def test_typing_indicator():
    channel = ScriptedTelegram()
    await channel.send_typing_indicator("42")
    assert channel.methods("sendChatAction") == [{"chat_id": "42", "action": "typing"}]


@pytest.mark.asyncio
async def test_connect_validates_token():
    channel = ScriptedTelegram(getMe=[{"id": 1, "username": "nare_bot", "first_name": "NARE"}])
    await channel.connect()
    assert channel.bot_username == "nare_bot"
    assert channel.is_connected


@pytest.mark.asyncio
async def test_invalid_token_is_fatal():
    channel = ScriptedTelegram(getMe=[TelegramAPIError("getMe", "Unauthorized", 401)])
    with pytest.raises(ConfigurationError):
        await channel.connect()


@pytest.mark.asyncio
async def test_missing_token_is_fatal():
    channel = ScriptedTelegram()
    channel.token = ""
    with pytest.raises(ConfigurationError):
        await channel.connect()


def test_split_message_prefers_line_breaks():
    text = "line\n" * 10
    chunks = split_message(text, limit=12)
    assert all(len(chunk) <= 12 for chunk in chunks)
    assert "".join(chunks).replace("\n", "") == "line" * 10


def test_split_message_short_text():
    assert split_message("hi") == ["hi"]
    assert split_message("") == [""]
