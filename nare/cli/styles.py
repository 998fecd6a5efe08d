"""Theme and icons for the NARE command line."""

from rich.box import SIMPLE
from rich.style import Style
from rich.theme import Theme

GRANTED = "bright_green"
DENIED = "bright_red"

NARE_THEME = Theme(
    {
        "capability": Style(color="bright_cyan"),
        "success": Style(color=GRANTED, bold=True),
        "error": Style(color=DENIED, bold=True),
        "path": Style(color="white", dim=True),
    }
)

ICON_CHECK = "✓"
ICON_CROSS = "✗"
ICON_SHIELD = "◆"

TABLE_BOX = SIMPLE


def status_icon(ok: bool) -> str:
    """Return a colored check or cross mark."""
    if ok:
        return f"[{GRANTED}]{ICON_CHECK}[/{GRANTED}]"
    return f"[{DENIED}]{ICON_CROSS}[/{DENIED}]"
