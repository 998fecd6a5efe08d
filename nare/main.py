"""
NARE - Linux administration over chat
Main Entry Point

Wires the Telegram channel, the AI backend and the command engine together
and polls until interrupted.
"""

import argparse
import asyncio
import signal
import sys

import structlog

from .channels.telegram import TelegramAPIError, TelegramChannel
from .core.dispatcher import UpdateDispatcher
from .core.orchestrator import ToolUseOrchestrator
from .core.providers import BaseAIProvider, create_provider
from .core.session import SessionStore
from .security.confirmation import ConfirmationManager
from .security.executor import CommandExecutor
from .security.permissions import PermissionStore
from .utils.config import ConfigurationError, get_settings, set_config_path
from .utils.logging import get_audit_logger, setup_logging

logger = structlog.get_logger()


class NareApplication:
    """Main NARE application that owns all components."""

    def __init__(self) -> None:
        self.settings = get_settings()
        self.shutdown_event = asyncio.Event()

        self.sessions: SessionStore | None = None
        self.provider: BaseAIProvider | None = None
        self.channel: TelegramChannel | None = None
        self.dispatcher: UpdateDispatcher | None = None

    async def initialize(self) -> None:
        """Build every component. Raises ConfigurationError if startup is impossible."""
        logger.info("Initializing NARE...")
        self.settings.ensure_directories()

        audit = get_audit_logger()
        permissions = PermissionStore()
        executor = CommandExecutor(audit=audit)
        self.provider = create_provider(self.settings)
        self.sessions = SessionStore()

        self.channel = TelegramChannel()
        orchestrator = ToolUseOrchestrator(self.provider, executor, permissions, audit=audit)
        confirmations = ConfirmationManager(self.channel, executor, audit=audit)
        self.dispatcher = UpdateDispatcher(self.channel, self.sessions, orchestrator, confirmations, permissions)
        self.dispatcher.attach()

        granted = permissions.load().granted()
        logger.info(
            "Components ready",
            backend=self.provider.backend.value,
            permissions_file=str(permissions.path),
            granted=[c.value for c in granted],
        )

    async def start(self) -> None:
        """Poll until the channel stops or shutdown is requested."""
        assert self.channel is not None
        poll_task = asyncio.create_task(self.channel.start())
        shutdown_task = asyncio.create_task(self.shutdown_event.wait())

        done, _ = await asyncio.wait({poll_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED)
        if poll_task in done:
            shutdown_task.cancel()
            # Surfaces startup failures such as an invalid token
            poll_task.result()
            return

        poll_task.cancel()
        try:
            await poll_task
        except asyncio.CancelledError:
            pass

    async def shutdown(self) -> None:
        """Trigger graceful shutdown."""
        logger.info("Shutdown requested")
        self.shutdown_event.set()

    async def cleanup(self) -> None:
        """Release resources and cancel outstanding confirmation timers."""
        if self.sessions is not None:
            self.sessions.cancel_all_timers()
        if self.channel is not None:
            await self.channel.stop()
        if self.provider is not None:
            await self.provider.close()
        logger.info("NARE stopped")


async def main() -> None:
    """Main entry point."""
    try:
        setup_logging()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    logger.info("NARE - Linux administration over chat")

    app = NareApplication()

    loop = asyncio.get_running_loop()

    def signal_handler() -> None:
        asyncio.create_task(app.shutdown())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.initialize()
        await app.start()
    except ConfigurationError as e:
        logger.error("Configuration error", error=str(e))
        sys.exit(1)
    except TelegramAPIError as e:
        logger.error("Telegram API error at startup", error=str(e))
        sys.exit(1)
    except Exception as e:
        logger.error("Fatal error", error=str(e), exc_info=True)
        sys.exit(1)
    finally:
        await app.cleanup()


def run() -> None:
    """Synchronous entry point with CLI argument parsing."""
    parser = argparse.ArgumentParser(
        prog="nare",
        description="NARE - manage this Linux machine from Telegram",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        default=None,
        help="Settings YAML file (default: config/settings.yaml or ~/.config/nare/settings.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    perms = subparsers.add_parser("permissions", help="Show or edit the permissions the bot may use")
    perms.add_argument("--grant", action="append", default=[], metavar="CAPABILITY", help="Grant a capability")
    perms.add_argument("--revoke", action="append", default=[], metavar="CAPABILITY", help="Revoke a capability")
    perms.add_argument("--file", default=None, metavar="PATH", help="Permission file to edit")

    args = parser.parse_args()

    if args.config:
        set_config_path(args.config)

    if args.command == "permissions":
        from .cli.permissions import run_permissions_command

        try:
            sys.exit(run_permissions_command(args.grant, args.revoke, args.file))
        except ConfigurationError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            sys.exit(1)

    asyncio.run(main())


if __name__ == "__main__":
    run()
