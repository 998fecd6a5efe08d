"""Core components of NARE."""

from .orchestrator import ConfirmationRequired, ToolUseOrchestrator
from .providers import BaseAIProvider, ProviderError, create_provider
from .session import ChatSession, SessionStore

__all__ = [
    "ConfirmationRequired",
    "ToolUseOrchestrator",
    "BaseAIProvider",
    "ProviderError",
    "create_provider",
    "ChatSession",
    "SessionStore",
]
