"""Telegram Bot API channel using long polling."""

import asyncio
from typing import Any

import aiohttp

from ..utils.config import ConfigurationError, get_settings
from ..utils.logging import get_logger
from .base import BaseChannel, Button, CallbackEvent, Message

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 4096
ALLOWED_UPDATES = ["message", "callback_query"]


class TelegramAPIError(Exception):
    """A Bot API call answered ``ok: false``."""

    def __init__(self, method: str, description: str, error_code: int | None = None) -> None:
        self.method = method
        self.description = description
        self.error_code = error_code
        super().__init__(f"{method} failed ({error_code}): {description}")


def split_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split text into chunks of at most ``limit`` characters, preferring line breaks."""
    chunks: list[str] = []
    while len(text) > limit:
        cut = text.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(text[:cut])
        text = text[cut:].lstrip("\n")
    if text or not chunks:
        chunks.append(text)
    return chunks


class TelegramChannel(BaseChannel):
    """
    Telegram channel.

    Validates the token with ``getMe``, then long-polls ``getUpdates``. The
    offset moves past each update before it is handled, so a failing update
    is never redelivered. Transport errors back off and retry with the
    offset untouched.
    """

    def __init__(
        self,
        token: str | None = None,
        api_base: str | None = None,
        poll_timeout: int | None = None,
        retry_backoff: float | None = None,
    ) -> None:
        super().__init__("telegram")
        settings = get_settings()
        config = settings.telegram
        self.token = token if token is not None else settings.bot_token
        self.api_base = (api_base or config.api_base).rstrip("/")
        self.poll_timeout = poll_timeout if poll_timeout is not None else config.poll_timeout
        self.retry_backoff = retry_backoff if retry_backoff is not None else config.retry_backoff

        self.offset = 0
        self.bot_username: str | None = None
        self._running = False
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def call(self, method: str, params: dict[str, Any] | None = None, timeout: float = 30) -> Any:
        """
        Call a Bot API method and return its ``result``.

        Raises:
            TelegramAPIError: If the API answers ``ok: false``
            aiohttp.ClientError: On transport failures
            ValueError: If the body is not a JSON object
        """
        url = f"{self.api_base}/bot{self.token}/{method}"
        session = self._get_session()
        async with session.post(url, json=params or {}, timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
            data = await resp.json(content_type=None)

        if not isinstance(data, dict):
            raise ValueError(f"{method}: unexpected response body")
        if not data.get("ok"):
            raise TelegramAPIError(method, data.get("description", "unknown error"), data.get("error_code"))
        return data.get("result")

    async def connect(self) -> None:
        """Validate the bot token. An invalid token is a configuration error."""
        if not self.token:
            raise ConfigurationError("TELEGRAM_BOT_TOKEN is not set")
        try:
            me = await self.call("getMe")
        except TelegramAPIError as e:
            raise ConfigurationError(f"Invalid bot token: {e.description}") from e

        self.bot_username = me.get("username")
        self._connected = True
        logger.info("Telegram bot connected", username=self.bot_username, name=me.get("first_name"))

    async def start(self) -> None:
        """Validate the token and poll until :meth:`stop` is called."""
        await self.connect()
        self._running = True
        try:
            while self._running:
                await self.poll_once()
        finally:
            self._connected = False

    async def stop(self) -> None:
        self._running = False
        self._connected = False
        if self._session is not None:
            await self._session.close()
            self._session = None
        logger.info("Telegram channel stopped")

    async def poll_once(self) -> None:
        """Fetch one batch of updates and handle them in order."""
        params = {"offset": self.offset, "timeout": self.poll_timeout, "allowed_updates": ALLOWED_UPDATES}
        try:
            updates = await self.call("getUpdates", params, timeout=self.poll_timeout + 10)
            if updates is None:
                updates = []
            if not isinstance(updates, list):
                raise ValueError(f"getUpdates returned {type(updates).__name__}, expected a list")
        except (aiohttp.ClientError, asyncio.TimeoutError, TelegramAPIError, ValueError) as e:
            logger.warning("getUpdates failed, backing off", error=str(e), backoff=self.retry_backoff)
            await asyncio.sleep(self.retry_backoff)
            return

        for update in updates:
            if not isinstance(update, dict):
                logger.warning("Skipping malformed update", update=repr(update)[:200])
                continue
            update_id = update.get("update_id")
            if isinstance(update_id, int):
                self.offset = update_id + 1
            try:
                await self.handle_update(update)
            except Exception as e:
                logger.error("Failed to handle update", update_id=update_id, error=str(e), exc_info=True)

    async def handle_update(self, update: dict[str, Any]) -> None:
        if "callback_query" in update:
            query = update["callback_query"]
            # Every press is acknowledged, or the client shows a spinner forever
            await self.answer_callback(str(query["id"]))
            message = query.get("message") or {}
            chat = message.get("chat") or {}
            if "id" not in chat or not query.get("data"):
                return
            await self._dispatch_callback(
                CallbackEvent(
                    id=str(query["id"]),
                    chat_id=str(chat["id"]),
                    data=query["data"],
                    channel=self.name,
                    message_id=str(message.get("message_id")) if message.get("message_id") else None,
                    user_name=(query.get("from") or {}).get("username"),
                    raw=update,
                )
            )
            return

        message = update.get("message")
        if not message or not message.get("text"):
            return
        await self._dispatch_message(
            Message(
                chat_id=str(message["chat"]["id"]),
                content=message["text"],
                channel=self.name,
                message_id=str(message.get("message_id")),
                user_name=(message.get("from") or {}).get("username"),
                raw=update,
            )
        )

    async def send_message(
        self,
        chat_id: str,
        content: str,
        parse_mode: str | None = None,
        buttons: list[list[Button]] | None = None,
    ) -> str | None:
        """Send text, split into 4096-character parts. Buttons go on the last part."""
        chunks = split_message(content)
        message_id: str | None = None

        for index, chunk in enumerate(chunks):
            payload: dict[str, Any] = {"chat_id": chat_id, "text": chunk}
            if buttons and index == len(chunks) - 1:
                payload["reply_markup"] = {
                    "inline_keyboard": [[{"text": b.text, "callback_data": b.data} for b in row] for row in buttons]
                }
            try:
                result = await self._send_with_fallback(payload, parse_mode)
            except (aiohttp.ClientError, asyncio.TimeoutError, TelegramAPIError, ValueError) as e:
                logger.error("Failed to send Telegram message", chat_id=chat_id, error=str(e))
                return None
            message_id = str(result.get("message_id")) if isinstance(result, dict) else None

        return message_id

    async def _send_with_fallback(self, payload: dict[str, Any], parse_mode: str | None) -> Any:
        if not parse_mode:
            return await self.call("sendMessage", payload)
        try:
            return await self.call("sendMessage", {**payload, "parse_mode": parse_mode})
        except TelegramAPIError as e:
            # Unbalanced markup in command output is common; plain text always parses
            logger.debug("Markup rejected, resending as plain text", error=e.description)
            return await self.call("sendMessage", payload)

    async def answer_callback(self, callback_id: str, text: str | None = None) -> None:
        params: dict[str, Any] = {"callback_query_id": callback_id}
        if text:
            params["text"] = text
        try:
            await self.call("answerCallbackQuery", params)
        except (aiohttp.ClientError, asyncio.TimeoutError, TelegramAPIError, ValueError) as e:
            logger.warning("answerCallbackQuery failed", error=str(e))

    async def send_typing_indicator(self, chat_id: str) -> None:
        try:
            await self.call("sendChatAction", {"chat_id": chat_id, "action": "typing"})
        except (aiohttp.ClientError, asyncio.TimeoutError, TelegramAPIError, ValueError):
            pass
