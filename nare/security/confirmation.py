"""
Interactive yes/no confirmation for ``/run`` commands.

Each session holds at most one pending confirmation. A new request
supersedes the old one. The entry carries a deadline, and an expiry task
clears it once the deadline passes, but only if the slot still holds that
same entry. Expiry is silent and never executes anything.
"""

import asyncio
import time
from typing import Callable

from ..channels.base import BaseChannel, Button
from ..core.i18n import t
from ..core.session import ChatSession, PendingConfirmation
from ..utils.config import get_settings
from ..utils.logging import AuditLogger, get_audit_logger, get_logger
from .classifier import Blocked, classify_run
from .executor import CommandExecutor

logger = get_logger(__name__)

CALLBACK_YES = "confirm:yes"
CALLBACK_NO = "confirm:no"


class ConfirmationManager:
    """Owns the pending -> approved/denied/expired transitions."""

    def __init__(
        self,
        channel: BaseChannel,
        executor: CommandExecutor,
        audit: AuditLogger | None = None,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.channel = channel
        self.executor = executor
        self.audit = audit or get_audit_logger()
        self.timeout = timeout if timeout is not None else get_settings().session.confirmation_timeout
        self.clock = clock

    async def request(self, session: ChatSession, command: str, label: str) -> PendingConfirmation:
        """Store a new pending confirmation and ask the operator."""
        if session.pending is not None:
            logger.info("Superseding pending confirmation", chat_id=session.chat_id, command=session.pending.command)
            session.pending.cancel_timer()

        entry = PendingConfirmation(command=command, label=label, expires_at=self.clock() + self.timeout)
        session.pending = entry
        entry.timer = asyncio.create_task(self._expire(session, entry))
        self.audit.confirmation("requested", command, label, chat_id=session.chat_id)

        await self.channel.send_message(
            session.chat_id,
            t("confirm.prompt", session.language, command=command, label=label),
            parse_mode="Markdown",
            buttons=[[
                Button(t("confirm.yes", session.language), CALLBACK_YES),
                Button(t("confirm.no", session.language), CALLBACK_NO),
            ]],
        )
        return entry

    async def resolve(self, session: ChatSession, approved: bool) -> None:
        """Apply the operator's answer to the pending confirmation, if any."""
        entry = session.pending
        if entry is None or entry.is_expired(self.clock()):
            if entry is not None:
                entry.cancel_timer()
                session.pending = None
            await self.channel.send_message(session.chat_id, t("confirm.nothing", session.language))
            return

        entry.cancel_timer()
        session.pending = None

        if not approved:
            self.audit.confirmation("denied", entry.command, entry.label, chat_id=session.chat_id)
            await self.channel.send_message(
                session.chat_id,
                t("confirm.cancelled", session.language, command=entry.command),
                parse_mode="Markdown",
            )
            return

        # Classification tables may have changed since the request
        verdict = classify_run(entry.command)
        if isinstance(verdict, Blocked):
            self.audit.confirmation("refused", entry.command, entry.label, chat_id=session.chat_id)
            await self.channel.send_message(
                session.chat_id,
                t("blocked", session.language, command=entry.command, reason=verdict.reason),
                parse_mode="Markdown",
            )
            return

        self.audit.confirmation("approved", entry.command, entry.label, chat_id=session.chat_id)
        await self.channel.send_typing_indicator(session.chat_id)
        output = await self.executor.execute(entry.command, chat_id=session.chat_id)
        await self.channel.send_message(session.chat_id, output, parse_mode="Markdown")

    async def _expire(self, session: ChatSession, entry: PendingConfirmation) -> None:
        await asyncio.sleep(max(0.0, entry.expires_at - self.clock()))
        if session.pending is entry:
            session.pending = None
            entry.timer = None
            self.audit.confirmation("expired", entry.command, entry.label, chat_id=session.chat_id)
            logger.info("Confirmation expired", chat_id=session.chat_id, command=entry.command)
