"""``nare permissions``: show and edit the persisted capability set."""

from dataclasses import replace

from rich.console import Console
from rich.table import Table

from ..security.classifier import Capability
from ..security.permissions import PermissionSet, PermissionStore
from .styles import ICON_SHIELD, NARE_THEME, TABLE_BOX, status_icon

console = Console(theme=NARE_THEME)


def apply_changes(current: PermissionSet, grant: list[str], revoke: list[str]) -> PermissionSet:
    """Return ``current`` with the named capabilities granted or revoked.

    Raises:
        ValueError: For a name that is not a capability
    """
    changes: dict[str, bool] = {}
    for names, value in ((grant, True), (revoke, False)):
        for name in names:
            changes[Capability(name).value] = value
    return replace(current, **changes)


def render(permissions: PermissionSet, path: str) -> Table:
    table = Table(title=f"{ICON_SHIELD} NARE permissions", box=TABLE_BOX, caption=path, caption_style="path")
    table.add_column("Capability", style="capability")
    table.add_column("Granted", justify="center")
    for capability in Capability:
        table.add_row(capability.value, status_icon(permissions.allows(capability)))
    return table


def run_permissions_command(grant: list[str], revoke: list[str], path: str | None = None) -> int:
    """Entry point for the ``permissions`` subcommand. Returns an exit status."""
    store = PermissionStore(path)
    current = store.load()

    if grant or revoke:
        try:
            updated = apply_changes(current, grant, revoke)
        except ValueError as e:
            valid = ", ".join(c.value for c in Capability)
            console.print(f"[error]{e}[/error] (valid: {valid})")
            return 2
        store.save(updated)
        current = updated
        console.print("[success]Permissions updated.[/success] They apply to the next message.")

    console.print(render(current, str(store.path)))
    return 0
