"""AI backends: the Claude CLI subprocess and the DeepSeek HTTP API."""

import asyncio
import json
import shutil
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

import httpx

from ..utils.config import ConfigurationError, Settings, get_settings
from ..utils.logging import get_logger

logger = get_logger(__name__)


class Backend(str, Enum):
    """Supported AI backends."""

    CLAUDE = "claude"
    DEEPSEEK = "deepseek"


class ProviderError(Exception):
    """Base class for AI backend failures."""


class ProviderProcessError(ProviderError):
    """The CLI exited with a non-zero status."""

    def __init__(self, returncode: int, stderr: str) -> None:
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"claude exited with status {returncode}: {stderr.strip()[:300]}")


class ProviderTimeout(ProviderError):
    """The backend did not answer in time."""


class ProviderNotFound(ProviderError):
    """The CLI binary is not installed."""


class ProviderSpawnError(ProviderError):
    """The CLI exists but could not be started (not executable, bad format)."""


class ProviderHTTPError(ProviderError):
    """Transport failure or non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ProviderAPIError(ProviderError):
    """The API answered 2xx but reported an error in the body."""


class ProviderResponseError(ProviderError):
    """The API answered with something that is not a usable completion."""


class BaseAIProvider(ABC):
    """Abstract base class for AI backends."""

    backend: Backend

    @abstractmethod
    async def request(self, history: list[dict[str, Any]], system_prompt: str) -> str:
        """
        Send the conversation and return the assistant's reply text.

        Args:
            history: Ordered ``{"role": "user"|"assistant", "content": str}`` turns
            system_prompt: Instructions placed ahead of the conversation

        Raises:
            ProviderError: On any backend failure
        """

    async def close(self) -> None:
        """Release any held resources."""


class ClaudeCLIProvider(BaseAIProvider):
    """Runs ``claude -p <prompt>`` and returns its stdout."""

    backend = Backend.CLAUDE

    def __init__(self, cli_path: str = "claude", timeout: float = 120) -> None:
        self.cli_path = cli_path
        self.timeout = timeout

    @staticmethod
    def build_prompt(history: list[dict[str, Any]], system_prompt: str) -> str:
        """Flatten the system prompt and turns into one transcript."""
        lines = [system_prompt, ""]
        for turn in history:
            speaker = "User" if turn["role"] == "user" else "Assistant"
            lines.append(f"{speaker}: {turn['content']}")
        lines.append("Assistant:")
        return "\n".join(lines)

    async def request(self, history: list[dict[str, Any]], system_prompt: str) -> str:
        prompt = self.build_prompt(history, system_prompt)
        try:
            process = await asyncio.create_subprocess_exec(
                self.cli_path,
                "-p",
                prompt,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            raise ProviderNotFound(f"Claude CLI not found: {self.cli_path}") from e
        except OSError as e:
            raise ProviderSpawnError(f"Claude CLI could not be started: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise ProviderTimeout(f"Claude CLI did not answer within {self.timeout:g}s") from e

        if process.returncode != 0:
            raise ProviderProcessError(process.returncode or -1, stderr.decode("utf-8", errors="replace"))

        return stdout.decode("utf-8", errors="replace").strip()


class DeepSeekProvider(BaseAIProvider):
    """OpenAI-style chat completions against the DeepSeek API."""

    backend = Backend.DEEPSEEK

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.deepseek.com",
        model: str = "deepseek-chat",
        timeout: float = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        return self._client

    def build_payload(self, history: list[dict[str, Any]], system_prompt: str) -> dict[str, Any]:
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": turn["role"], "content": turn["content"]} for turn in history)
        return {"model": self.model, "messages": messages}

    async def request(self, history: list[dict[str, Any]], system_prompt: str) -> str:
        client = self._get_client()
        try:
            response = await client.post("/chat/completions", json=self.build_payload(history, system_prompt))
        except httpx.TimeoutException as e:
            raise ProviderTimeout(f"DeepSeek did not answer within {self.timeout:g}s") from e
        except httpx.RequestError as e:
            raise ProviderHTTPError(f"DeepSeek request failed: {e}") from e

        if not response.is_success:
            raise ProviderHTTPError(
                f"DeepSeek returned HTTP {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProviderResponseError("DeepSeek returned invalid JSON") from e

        if isinstance(data, dict) and data.get("error"):
            error = data["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise ProviderAPIError(f"DeepSeek API error: {message}")

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderResponseError("DeepSeek response has no choices[0].message.content") from e
        if not isinstance(content, str):
            raise ProviderResponseError("DeepSeek message content is not text")
        return content

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def select_backend(configured: str | None, api_key: str | None, cli_available: bool) -> Backend:
    """
    Decide which backend to use. Pure; no I/O.

    An explicit choice wins but must be usable. Otherwise a DeepSeek API key
    selects DeepSeek, then an installed Claude CLI selects Claude.

    Raises:
        ConfigurationError: When no usable backend exists
    """
    if configured:
        try:
            backend = Backend(configured.lower())
        except ValueError as e:
            raise ConfigurationError(f"Unknown AI provider: {configured!r}") from e
        if backend == Backend.DEEPSEEK and not api_key:
            raise ConfigurationError("ai.provider is 'deepseek' but DEEPSEEK_API_KEY is not set")
        if backend == Backend.CLAUDE and not cli_available:
            raise ConfigurationError("ai.provider is 'claude' but the Claude CLI is not installed")
        return backend

    if api_key:
        return Backend.DEEPSEEK
    if cli_available:
        return Backend.CLAUDE
    raise ConfigurationError("No AI backend available: set DEEPSEEK_API_KEY or install the Claude CLI")


def create_provider(settings: Settings | None = None) -> BaseAIProvider:
    """Build the provider for this process from settings and the environment."""
    settings = settings or get_settings()
    ai = settings.ai
    backend = select_backend(
        ai.provider,
        settings.deepseek_api_key,
        shutil.which(ai.claude_cli_path) is not None,
    )
    logger.info("AI backend selected", backend=backend.value)

    if backend == Backend.DEEPSEEK:
        return DeepSeekProvider(
            api_key=settings.deepseek_api_key,
            base_url=ai.deepseek_base_url,
            model=ai.deepseek_model,
            timeout=ai.deepseek_timeout,
        )
    return ClaudeCLIProvider(cli_path=ai.claude_cli_path, timeout=ai.claude_timeout)
