"""Routes inbound channel events to commands, confirmations and the orchestrator."""

from ..channels.base import BaseChannel, Button, CallbackEvent, Message
from ..security.confirmation import CALLBACK_NO, CALLBACK_YES, ConfirmationManager
from ..security.permissions import PermissionStore
from ..utils.config import get_settings
from ..utils.logging import get_logger
from .i18n import LANGUAGE_NAMES, t
from .orchestrator import ConfirmationRequired, ToolUseOrchestrator
from .session import Language, SessionStore

logger = get_logger(__name__)

LANG_PREFIX = "lang:"


class UpdateDispatcher:
    """
    Handles one inbound event at a time.

    Slash commands (``/start``, ``/help``, ``/status``, ``/lang``) are answered
    here; ``lang:`` and ``confirm:`` button presses update session state; any
    other text, ``/run`` included, goes to the orchestrator.
    """

    def __init__(
        self,
        channel: BaseChannel,
        sessions: SessionStore,
        orchestrator: ToolUseOrchestrator,
        confirmations: ConfirmationManager,
        permissions: PermissionStore,
        allowed_chat_ids: list[str] | None = None,
    ) -> None:
        self.channel = channel
        self.sessions = sessions
        self.orchestrator = orchestrator
        self.confirmations = confirmations
        self.permissions = permissions
        if allowed_chat_ids is None:
            allowed_chat_ids = get_settings().telegram.allowed_chat_ids
        self.allowed_chat_ids = {str(c) for c in allowed_chat_ids}

    def attach(self) -> None:
        """Register with the channel."""
        self.channel.on_message(self.handle_message)
        self.channel.on_callback(self.handle_callback)

    def is_allowed(self, chat_id: str) -> bool:
        return not self.allowed_chat_ids or chat_id in self.allowed_chat_ids

    async def handle_message(self, message: Message) -> None:
        if not self.is_allowed(message.chat_id):
            logger.warning("Ignoring message from unlisted chat", chat_id=message.chat_id)
            return

        session = self.sessions.get_or_create(message.chat_id)
        text = message.content.strip()
        command = text.split(maxsplit=1)[0].split("@", 1)[0].lower() if text else ""

        if command == "/start":
            logger.info("Chat connected", chat_id=message.chat_id, user=message.user_name)
            await self.channel.send_message(session.chat_id, t("start", session.language))
        elif command == "/help":
            await self.channel.send_message(session.chat_id, t("help", session.language))
        elif command == "/status":
            await self.channel.send_message(session.chat_id, self._status(session.language))
        elif command == "/lang":
            await self.channel.send_message(
                session.chat_id,
                t("lang.pick", session.language),
                buttons=[[Button(name, f"{LANG_PREFIX}{lang.value}") for lang, name in LANGUAGE_NAMES.items()]],
            )
        else:
            await self.channel.send_typing_indicator(session.chat_id)
            reply = await self.orchestrator.respond(session, text)
            if isinstance(reply, ConfirmationRequired):
                await self.confirmations.request(session, reply.command, reply.label)
            elif reply:
                await self.channel.send_message(session.chat_id, reply, parse_mode="Markdown")

    async def handle_callback(self, event: CallbackEvent) -> None:
        if not self.is_allowed(event.chat_id):
            logger.warning("Ignoring callback from unlisted chat", chat_id=event.chat_id)
            return

        session = self.sessions.get_or_create(event.chat_id)

        if event.data.startswith(LANG_PREFIX):
            try:
                language = Language(event.data[len(LANG_PREFIX):])
            except ValueError:
                logger.warning("Unknown language selection", data=event.data)
                return
            session.language = language
            logger.info("Language changed", chat_id=session.chat_id, language=language.value)
            await self.channel.send_message(session.chat_id, t("lang.set", language))
        elif event.data in (CALLBACK_YES, CALLBACK_NO):
            await self.confirmations.resolve(session, approved=event.data == CALLBACK_YES)
        else:
            logger.warning("Unknown callback data", data=event.data)

    def _status(self, language: Language) -> str:
        granted = self.permissions.load()
        none = t("none", language)
        return t(
            "status",
            language,
            backend=self.orchestrator.provider.backend.value,
            language_name=LANGUAGE_NAMES[language],
            granted=", ".join(c.value for c in granted.granted()) or none,
            denied=", ".join(c.value for c in granted.denied()) or none,
        )
