"""
Tool-use orchestration.

Turns one chat message into one reply. ``/run`` commands are classified and
executed (or sent for confirmation) directly. Everything else goes to the AI
backend, whose replies may embed ``[CMD]...[/CMD]`` directives; each directive
is classified against the current permissions, executed if allowed, and the
output substituted in place. When something ran, the backend sees the result
and gets another round, up to ``max_rounds`` calls per message.
"""

import re
from dataclasses import dataclass

from ..security.classifier import (
    Blocked,
    CommandVerdict,
    RequiresConfirmation,
    RequiresPermission,
    classify,
    classify_run,
)
from ..security.executor import CommandExecutor
from ..security.permissions import PermissionStore
from ..utils.config import get_settings
from ..utils.logging import AuditLogger, get_audit_logger, get_logger
from .i18n import t
from .prompts import CMD_CLOSE, CMD_OPEN, build_system_prompt
from .providers import BaseAIProvider, ProviderError
from .session import ChatSession

logger = get_logger(__name__)

DIRECTIVE_RE = re.compile(re.escape(CMD_OPEN) + r"(.*?)" + re.escape(CMD_CLOSE), re.DOTALL)
MARKER_RE = re.compile(r"\[/?CMD\]")
RUN_RE = re.compile(r"^/run(?:@\w+)?(?:\s+(.*))?$", re.DOTALL)


@dataclass(frozen=True)
class ConfirmationRequired:
    """``/run`` outcome asking the operator to approve ``command`` first."""

    command: str
    label: str


def parse_run(text: str) -> str | None:
    """Return the command of a ``/run`` message ("" when missing), else None."""
    match = RUN_RE.match(text.strip())
    if match is None:
        return None
    return (match.group(1) or "").strip()


def strip_markers(text: str) -> str:
    return MARKER_RE.sub("", text)


class ToolUseOrchestrator:
    """Drives the bounded dialogue between a chat session, the AI and the shell."""

    def __init__(
        self,
        provider: BaseAIProvider,
        executor: CommandExecutor,
        permissions: PermissionStore,
        audit: AuditLogger | None = None,
        max_rounds: int | None = None,
    ) -> None:
        self.provider = provider
        self.executor = executor
        self.permissions = permissions
        self.audit = audit or get_audit_logger()
        self.max_rounds = max_rounds or get_settings().ai.max_rounds

    async def respond(self, session: ChatSession, text: str) -> str | ConfirmationRequired:
        """Produce the reply to one inbound chat message."""
        command = parse_run(text)
        if command is not None:
            return await self.run_command(session, command)
        return await self.converse(session, text)

    async def run_command(self, session: ChatSession, command: str) -> str | ConfirmationRequired:
        """Handle an operator-typed ``/run``."""
        if not command:
            return t("run.usage", session.language)

        verdict = classify_run(command)
        logger.info("Run requested", chat_id=session.chat_id, command=command, verdict=type(verdict).__name__)
        if isinstance(verdict, RequiresConfirmation):
            return ConfirmationRequired(command=command, label=verdict.label)

        notice = self.check(session, command, verdict)
        if notice is not None:
            return notice
        return await self.executor.execute(command, chat_id=session.chat_id)

    def check(self, session: ChatSession, command: str, verdict: CommandVerdict) -> str | None:
        """Return a refusal notice for ``verdict``, or None if it may run."""
        if isinstance(verdict, Blocked):
            self.audit.command_blocked(command, verdict.reason, chat_id=session.chat_id)
            return t("blocked", session.language, command=command, reason=verdict.reason)

        if isinstance(verdict, RequiresPermission):
            granted = self.permissions.load()
            if not granted.allows(verdict.category):
                self.audit.command_denied(command, verdict.category.value, chat_id=session.chat_id)
                return t("denied", session.language, command=command, category=verdict.category.value)

        return None

    async def converse(self, session: ChatSession, text: str) -> str:
        """Run the AI loop for a free-text message."""
        session.history.add_user(text)
        reply = ""

        for round_number in range(1, self.max_rounds + 1):
            system_prompt = build_system_prompt(self.permissions.load(), session.language)
            try:
                raw = await self.provider.request(session.history.to_messages(), system_prompt)
            except ProviderError as e:
                logger.error(
                    "AI backend failed",
                    chat_id=session.chat_id,
                    backend=self.provider.backend.value,
                    round=round_number,
                    error=str(e),
                )
                return t("provider.error", session.language, error=type(e).__name__)

            reply, executed = await self.resolve_directives(session, raw)
            logger.debug("AI round complete", chat_id=session.chat_id, round=round_number, executed=executed)
            if not executed or round_number == self.max_rounds:
                break
            # The backend sees its own reply with outputs substituted and continues from there
            session.history.add_assistant(reply)

        final = strip_markers(reply).strip()
        session.history.add_assistant(final)
        return final

    async def resolve_directives(self, session: ChatSession, text: str) -> tuple[str, bool]:
        """Substitute every directive in ``text``, left to right.

        Returns the substituted text and whether any command was executed.
        """
        parts: list[str] = []
        executed = False
        position = 0

        for match in DIRECTIVE_RE.finditer(text):
            parts.append(text[position:match.start()])
            position = match.end()

            command = match.group(1).strip()
            if not command:
                continue

            notice = self.check(session, command, classify(command))
            if notice is not None:
                parts.append(notice)
                continue

            parts.append(await self.executor.execute(command, chat_id=session.chat_id))
            executed = True

        parts.append(text[position:])
        return "".join(parts), executed
