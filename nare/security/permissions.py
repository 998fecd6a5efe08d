"""Persisted capability set.

The permission file is a JSON object with one boolean per capability::

    {
      "install_packages": true,
      "remove_packages": false,
      "system_update": true,
      "manage_services": false,
      "general_commands": false
    }

It is edited outside the bot (``nare permissions --grant ...``) and read
fresh every time a command is classified, so changes apply on the next
message without a restart.
"""

import json
from dataclasses import asdict, dataclass
from pathlib import Path

from ..utils.config import get_settings
from ..utils.logging import get_logger
from .classifier import Capability

logger = get_logger(__name__)


@dataclass(frozen=True)
class PermissionSet:
    """Host-wide capability grants. Defaults to everything denied."""

    install_packages: bool = False
    remove_packages: bool = False
    system_update: bool = False
    manage_services: bool = False
    general_commands: bool = False

    def allows(self, capability: Capability) -> bool:
        return getattr(self, capability.value)

    def granted(self) -> list[Capability]:
        return [c for c in Capability if self.allows(c)]

    def denied(self) -> list[Capability]:
        return [c for c in Capability if not self.allows(c)]

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


class PermissionStore:
    """Loads the capability set from disk. Never caches."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path or get_settings().permissions.file).expanduser()

    def load(self) -> PermissionSet:
        """Read the permission file; any problem yields the all-false default."""
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return PermissionSet()
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Unreadable permission file, denying all", path=str(self.path), error=str(e))
            return PermissionSet()

        if not isinstance(data, dict):
            logger.warning("Permission file is not an object, denying all", path=str(self.path))
            return PermissionSet()

        # Only a literal JSON true grants a capability
        return PermissionSet(**{c.value: data.get(c.value) is True for c in Capability})

    def save(self, permissions: PermissionSet) -> None:
        """Write the capability set. Used by the settings CLI, never by the engine."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(permissions.to_dict(), indent=2) + "\n", encoding="utf-8")
        tmp.replace(self.path)
        logger.info("Permissions saved", path=str(self.path), granted=[c.value for c in permissions.granted()])
