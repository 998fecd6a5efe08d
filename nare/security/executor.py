"""Host shell execution for approved commands."""

import asyncio
import os
import signal
from dataclasses import dataclass
from datetime import datetime, timezone

from ..utils.config import get_settings
from ..utils.logging import AuditLogger, get_audit_logger, get_logger

logger = get_logger(__name__)

TRUNCATION_MARKER = "\n... (output truncated)"


@dataclass
class ExecutionResult:
    """Result of one shell command."""

    exit_code: int = -1
    stdout: str = ""
    stderr: str = ""
    duration_ms: float = 0
    timed_out: bool = False
    output_capped: bool = False
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and not self.output_capped and self.error is None


class OutputLimitExceeded(Exception):
    """Captured output went past the byte cap."""


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


class CommandExecutor:
    """
    Runs commands through the host shell.

    No safety checks happen here; callers classify first. Every failure mode
    (non-zero exit, timeout, oversized output, spawn errors) comes back as a
    formatted failure block, so :meth:`execute` never raises.
    """

    def __init__(
        self,
        timeout: float | None = None,
        max_output_bytes: int | None = None,
        success_chars: int | None = None,
        failure_chars: int | None = None,
        audit: AuditLogger | None = None,
    ) -> None:
        config = get_settings().executor
        self.timeout = timeout or config.timeout
        self.max_output_bytes = max_output_bytes or config.max_output_bytes
        self.success_chars = success_chars or config.success_chars
        self.failure_chars = failure_chars or config.failure_chars
        self._audit = audit

    @property
    def audit(self) -> AuditLogger:
        if self._audit is None:
            self._audit = get_audit_logger()
        return self._audit

    async def execute(self, command: str, chat_id: str | None = None) -> str:
        """Run ``command`` and return a text block describing the outcome."""
        result = await self.run(command)
        self.audit.command_executed(command, result.success, result.duration_ms, chat_id=chat_id)
        logger.info(
            "Command finished",
            command=command,
            exit_code=result.exit_code,
            timed_out=result.timed_out,
            duration_ms=round(result.duration_ms),
        )
        return self.format(command, result)

    async def run(self, command: str) -> ExecutionResult:
        result = ExecutionResult()
        start_time = datetime.now(timezone.utc)

        try:
            # Own session so a kill reaches every process of a pipeline
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
                env={**os.environ},
                start_new_session=True,
            )
        except Exception as e:
            logger.error("Failed to spawn command", command=command, error=str(e))
            result.error = str(e)
            result.duration_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
            return result

        budget = [self.max_output_bytes]

        async def drain(stream: asyncio.StreamReader | None) -> bytes:
            if stream is None:
                return b""
            chunks: list[bytes] = []
            while True:
                chunk = await stream.read(65536)
                if not chunk:
                    return b"".join(chunks)
                budget[0] -= len(chunk)
                if budget[0] < 0:
                    raise OutputLimitExceeded
                chunks.append(chunk)

        readers = [asyncio.ensure_future(drain(process.stdout)), asyncio.ensure_future(drain(process.stderr))]
        try:
            await asyncio.wait_for(asyncio.gather(*readers, process.wait()), timeout=self.timeout)
            result.stdout = readers[0].result().decode("utf-8", errors="replace")
            result.stderr = readers[1].result().decode("utf-8", errors="replace")
            result.exit_code = process.returncode if process.returncode is not None else -1
        except asyncio.TimeoutError:
            result.timed_out = True
            result.error = f"Command timed out after {self.timeout:g}s"
            await self._kill(process)
        except OutputLimitExceeded:
            result.output_capped = True
            result.error = f"Output exceeded {self.max_output_bytes} bytes"
            await self._kill(process)
        except Exception as e:
            result.error = str(e)
            await self._kill(process)
        finally:
            for reader in readers:
                reader.cancel()

        result.duration_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
        return result

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=5)
        except asyncio.TimeoutError:
            logger.warning("Killed process did not exit", pid=process.pid)

    def format(self, command: str, result: ExecutionResult) -> str:
        if result.success:
            output = result.stdout.strip() or result.stderr.strip() or "(no output)"
            return f"✅ `{command}`\n```\n{truncate(output, self.success_chars)}\n```"

        if result.error:
            header = f"❌ `{command}`: {result.error}"
        else:
            header = f"❌ `{command}` (exit code {result.exit_code})"
        output = result.stderr.strip() or result.stdout.strip()
        if not output:
            return header
        return f"{header}\n```\n{truncate(output, self.failure_chars)}\n```"
