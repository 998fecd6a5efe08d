"""Tests for inbound update routing."""

import pytest

from nare.channels.base import CallbackEvent, Message
from nare.core.dispatcher import UpdateDispatcher
from nare.core.orchestrator import ToolUseOrchestrator
from nare.core.session import Language, SessionStore
from nare.security.confirmation import ConfirmationManager


@pytest.fixture
def sessions() -> SessionStore:
    return SessionStore()


@pytest.fixture
def build(channel, sessions, executor, permission_store, audit, make_provider):
    def _build(*replies, allowed_chat_ids=None):
        provider = make_provider(*replies)
        orchestrator = ToolUseOrchestrator(provider, executor, permission_store, audit=audit)
        confirmations = ConfirmationManager(channel, executor, audit=audit, timeout=60)
        dispatcher = UpdateDispatcher(
            channel,
            sessions,
            orchestrator,
            confirmations,
            permission_store,
            allowed_chat_ids=allowed_chat_ids or [],
        )
        dispatcher.attach()
        return dispatcher, provider

    return _build


def text(content: str, chat_id: str = "42") -> Message:
    return Message(chat_id=chat_id, content=content, channel="fake")


def press(data: str, chat_id: str = "42") -> CallbackEvent:
    return CallbackEvent(id="cb1", chat_id=chat_id, data=data, channel="fake")


@pytest.mark.asyncio
async def test_start_greets(build, channel, sessions):
    build()
    await channel._dispatch_message(text("/start"))
    assert channel.texts == ["NARE connected! I will manage your Linux system through this chat."]
    assert "42" in sessions


@pytest.mark.asyncio
async def test_help_and_status(build, channel, grant):
    grant("manage_services")
    build()
    await channel._dispatch_message(text("/help"))
    await channel._dispatch_message(text("/status@nare_bot"))
    assert "/run" in channel.texts[0]
    assert "deepseek" in channel.texts[1]
    assert "Granted: manage_services" in channel.texts[1]
    assert "Language: English" in channel.texts[1]


@pytest.mark.asyncio
async def test_language_picker_and_selection(build, channel, sessions):
    build()
    await channel._dispatch_message(text("/lang"))
    buttons = channel.sent[-1]["buttons"][0]
    assert [b.data for b in buttons] == ["lang:en", "lang:ko", "lang:sv"]

    await channel._dispatch_callback(press("lang:sv"))
    assert sessions.get("42").language == Language.SV
    assert channel.texts[-1] == "Språket är nu svenska."


@pytest.mark.asyncio
async def test_unknown_language_is_ignored(build, channel, sessions):
    build()
    await channel._dispatch_callback(press("lang:fr"))
    assert sessions.get("42").language == Language.EN
    assert channel.sent == []


@pytest.mark.asyncio
async def test_chat_text_goes_to_orchestrator(build, channel):
    _, provider = build("Everything looks fine.")
    await channel._dispatch_message(text("how is the server?"))
    assert channel.typing == ["42"]
    assert channel.sent[-1]["content"] == "Everything looks fine."
    assert channel.sent[-1]["parse_mode"] == "Markdown"
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_run_confirmation_round_trip(build, channel, executor, sessions):
    build()
    await channel._dispatch_message(text("/run sudo rm /tmp/x"))
    assert executor.commands == []
    assert [b.data for b in channel.sent[-1]["buttons"][0]] == ["confirm:yes", "confirm:no"]

    await channel._dispatch_callback(press("confirm:yes"))
    assert executor.commands == ["sudo rm /tmp/x"]
    assert sessions.get("42").pending is None


@pytest.mark.asyncio
async def test_run_confirmation_denied(build, channel, executor):
    build()
    await channel._dispatch_message(text("/run sudo rm /tmp/x"))
    await channel._dispatch_callback(press("confirm:no"))
    assert executor.commands == []
    assert channel.texts[-1].startswith("Cancelled")


@pytest.mark.asyncio
async def test_chats_outside_allowlist_are_ignored(build, channel, sessions):
    build(allowed_chat_ids=["1"])
    await channel._dispatch_message(text("/start", chat_id="2"))
    await channel._dispatch_callback(press("confirm:yes", chat_id="2"))
    assert channel.sent == []
    assert "2" not in sessions

    await channel._dispatch_message(text("/start", chat_id="1"))
    assert len(channel.sent) == 1


@pytest.mark.asyncio
async def test_handler_failure_does_not_escape(build, channel):
    build(RuntimeError("boom"))
    # The orchestrator only catches provider errors; the channel must contain the rest
    await channel._dispatch_message(text("hello"))
    assert channel.sent == []


@pytest.mark.asyncio
async def test_status_in_session_language(build, channel, sessions):
    build()
    sessions.get_or_create("42").language = Language.SV
    await channel._dispatch_message(text("/status"))
    assert "Språk: Svenska" in channel.texts[-1]
    assert "Nekat: install_packages, remove_packages" in channel.texts[-1]
