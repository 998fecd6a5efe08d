"""Command safety components for NARE."""

from .classifier import Capability, CommandVerdict, classify, classify_run
from .executor import CommandExecutor
from .permissions import PermissionSet, PermissionStore

__all__ = [
    "Capability",
    "CommandVerdict",
    "classify",
    "classify_run",
    "CommandExecutor",
    "PermissionSet",
    "PermissionStore",
]
