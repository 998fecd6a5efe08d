"""Chat channel implementations for NARE."""

from .base import BaseChannel, Button, CallbackEvent, Message
from .telegram import TelegramAPIError, TelegramChannel

__all__ = ["BaseChannel", "Button", "CallbackEvent", "Message", "TelegramAPIError", "TelegramChannel"]
