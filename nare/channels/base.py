"""Base channel interface for chat transports."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)


@dataclass
class Message:
    """A text message from a chat."""

    chat_id: str
    content: str = ""
    channel: str = ""
    message_id: str | None = None
    user_name: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    raw: Any = None  # Original update from the platform


@dataclass
class CallbackEvent:
    """An inline-button press."""

    id: str
    chat_id: str
    data: str
    channel: str = ""
    message_id: str | None = None
    user_name: str | None = None
    raw: Any = None


@dataclass(frozen=True)
class Button:
    """Inline keyboard button carrying opaque callback data."""

    text: str
    data: str


# Type for inbound event handler callbacks
MessageHandler = Callable[[Message], Coroutine[Any, Any, None]]
CallbackHandler = Callable[[CallbackEvent], Coroutine[Any, Any, None]]


class BaseChannel(ABC):
    """
    Abstract base class for chat channels.

    A channel turns platform updates into :class:`Message` and
    :class:`CallbackEvent` objects for the registered handlers, and carries
    replies back. Handlers run one at a time in arrival order.
    """

    def __init__(self, name: str) -> None:
        """
        Initialize the channel.

        Args:
            name: Unique name for this channel
        """
        self.name = name
        self._connected = False
        self._message_handlers: list[MessageHandler] = []
        self._callback_handlers: list[CallbackHandler] = []

    @property
    def is_connected(self) -> bool:
        """Check if the channel is connected."""
        return self._connected

    def on_message(self, handler: MessageHandler) -> None:
        """Register an async handler for text messages."""
        self._message_handlers.append(handler)

    def on_callback(self, handler: CallbackHandler) -> None:
        """Register an async handler for button presses."""
        self._callback_handlers.append(handler)

    async def _dispatch_message(self, message: Message) -> None:
        """
        Dispatch a message to all registered handlers.

        Handler failures are logged and swallowed so one bad update never
        stops the channel.
        """
        if not self._message_handlers:
            logger.warning(
                "No message handlers registered for channel %s, message from %s dropped",
                self.name,
                message.chat_id,
            )
            return

        for handler in self._message_handlers:
            try:
                await handler(message)
            except Exception as e:
                logger.error(
                    "Error in message handler for channel %s: %s",
                    self.name,
                    str(e),
                    exc_info=True,
                )

    async def _dispatch_callback(self, event: CallbackEvent) -> None:
        """Dispatch a button press to all registered handlers."""
        for handler in self._callback_handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "Error in callback handler for channel %s: %s",
                    self.name,
                    str(e),
                    exc_info=True,
                )

    @abstractmethod
    async def start(self) -> None:
        """
        Connect and begin receiving updates.

        Returns when the channel is stopped.
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop receiving updates and release resources."""
        pass

    @abstractmethod
    async def send_message(
        self,
        chat_id: str,
        content: str,
        parse_mode: str | None = None,
        buttons: list[list[Button]] | None = None,
    ) -> str | None:
        """
        Send a message to a chat.

        Args:
            chat_id: The recipient chat
            content: Message text
            parse_mode: Optional markup mode understood by the platform
            buttons: Optional rows of inline buttons

        Returns:
            The last sent message ID, or None if sending failed
        """
        pass

    @abstractmethod
    async def answer_callback(self, callback_id: str, text: str | None = None) -> None:
        """Acknowledge a button press."""
        pass

    async def send_typing_indicator(self, chat_id: str) -> None:
        """
        Show that the bot is working.

        Default implementation does nothing. Override if channel supports it.
        """
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name} connected={self._connected}>"
