"""System prompt construction."""

from ..security.classifier import Capability
from ..security.permissions import PermissionSet
from .i18n import t
from .session import Language

CMD_OPEN = "[CMD]"
CMD_CLOSE = "[/CMD]"

CAPABILITY_DESCRIPTIONS: dict[Capability, str] = {
    Capability.INSTALL_PACKAGES: "install packages (pacman -S, yay -S, pacman -U)",
    Capability.REMOVE_PACKAGES: "remove packages (pacman -R)",
    Capability.SYSTEM_UPDATE: "update the system (pacman -Syu, yay)",
    Capability.MANAGE_SERVICES: "start, stop, enable or disable services (systemctl)",
    Capability.GENERAL_COMMANDS: "run other commands that change the system",
}

BASE_PROMPT = f"""You are NARE, an assistant that administers a Linux machine (Blunux, Arch based) for its owner through a chat.

To run a shell command, write it on its own inside {CMD_OPEN}...{CMD_CLOSE}, for example:
{CMD_OPEN}df -h /{CMD_CLOSE}
Each command is executed and its output replaces the directive. You will then see the output and can run follow-up commands or answer. Use at most a few commands per reply.

Read-only inspection commands (df, free, ps, ip addr, journalctl, systemctl status, pacman -Q ...) are always allowed.
Destructive commands (wiping disks, formatting filesystems, rebooting, deleting system directories) are always refused; do not propose them.
Keep answers short and suited to a phone screen."""


def build_system_prompt(permissions: PermissionSet, language: Language) -> str:
    """Compose the system prompt from the current grants and chat language."""
    lines = [BASE_PROMPT, "", "Permissions granted by the owner:"]
    granted = permissions.granted()
    if granted:
        lines.extend(f"- {CAPABILITY_DESCRIPTIONS[c]}" for c in granted)
    else:
        lines.append("- none beyond read-only inspection")

    denied = permissions.denied()
    if denied:
        lines.append("")
        lines.append("Not granted (such commands will be refused; tell the user to grant them in the NARE settings):")
        lines.extend(f"- {CAPABILITY_DESCRIPTIONS[c]}" for c in denied)

    lines.append("")
    lines.append(t("prompt.language", language))
    return "\n".join(lines)
