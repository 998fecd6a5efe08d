"""Command safety classification.

Every shell command the bot might run, whether typed by the operator via
``/run`` or proposed by the AI inside a directive, goes through
:func:`classify` first. The checks are ordered tables; the first match wins:

1. ``BLOCKED_PATTERNS``: textual patterns that are never executed.
2. ``BLOCKED_FIRST_TOKENS``: commands that end the session or the machine.
3. ``SAFE_PATTERNS``: read-only inspection commands, always allowed.
4. ``CATEGORY_RULES``: package updates, installs, removals and service
   lifecycle, each gated by its own capability.
5. Anything else needs the ``general_commands`` capability.

:func:`classify_run` layers the interactive confirmation table on top for
commands the operator types directly.
"""

import re
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Callable


class Capability(str, Enum):
    """Independently grantable permission categories."""

    INSTALL_PACKAGES = "install_packages"
    REMOVE_PACKAGES = "remove_packages"
    SYSTEM_UPDATE = "system_update"
    MANAGE_SERVICES = "manage_services"
    GENERAL_COMMANDS = "general_commands"


@dataclass(frozen=True)
class Blocked:
    """Never executable."""

    reason: str


@dataclass(frozen=True)
class Safe:
    """Always executable, no permission check."""


@dataclass(frozen=True)
class RequiresPermission:
    """Executable only if the capability is granted."""

    category: Capability


@dataclass(frozen=True)
class RequiresConfirmation:
    """Executable after the operator approves it interactively (``/run`` only)."""

    label: str


CommandVerdict = Blocked | Safe | RequiresPermission | RequiresConfirmation


# ── (a) Always blocked ────────────────────────────────────────────────────────

_SYSTEM_ROOTS = r"(?:/|/\*|~|~/|\$HOME|\$\{HOME\}|/(?:bin|boot|dev|etc|home|lib|lib32|lib64|opt|proc|root|run|sbin|srv|sys|usr|var)/?\*?)"

BLOCKED_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (
        re.compile(
            r"\brm\s+(?:-{1,2}[\w-]+\s+)*-(?:[a-zA-Z]*[rR][a-zA-Z]*|-recursive)\s+(?:-{1,2}[\w-]+\s+)*"
            + _SYSTEM_ROOTS
            + r"(?:\s|$|[;&|])"
        ),
        "recursive deletion of a system root",
    ),
    (re.compile(r"\bdd\b[^;&|]*\bof=/dev/(?:sd|hd|vd|xvd|nvme|mmcblk|dm-|md)"), "raw write to a block device"),
    (re.compile(r">\s*/dev/(?:sd|hd|vd|xvd|nvme|mmcblk|dm-|md)"), "raw write to a block device"),
    (re.compile(r"(?:^|[\s;&|])(?:sudo\s+)?(?:mkfs(?:\.\w+)?|mke2fs|mkswap|wipefs)\b"), "filesystem format"),
    (re.compile(r":\s*\(\s*\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:"), "fork bomb"),
    (
        re.compile(r"\bsystemctl\s+(?:-\S+\s+)*(?:reboot|poweroff|halt|kexec|emergency|rescue)\b"),
        "ends the session or the machine",
    ),
    (
        re.compile(r"\b(?:curl|wget)\b[^|]*\|\s*(?:sudo\s+)?(?:env\s+)?(?:ba|z|da|k|fi)?sh\b"),
        "download piped into a shell",
    ),
]

# ── (b) Exact first-token blocklist ──────────────────────────────────────────

BLOCKED_FIRST_TOKENS: frozenset[str] = frozenset(
    {"init", "telinit", "reboot", "shutdown", "halt", "poweroff"}
)

# ── (c) Always safe (read-only) ──────────────────────────────────────────────

SAFE_PATTERNS: list[re.Pattern[str]] = [
    # Disk
    re.compile(r"^(?:df|du|lsblk|blkid|findmnt)(?:\s|$)"),
    re.compile(r"^mount\s*$"),
    # Memory / CPU / hardware
    re.compile(r"^(?:free|vmstat|lscpu|lsusb|lspci|nproc|sensors)(?:\s|$)"),
    # Processes
    re.compile(r"^(?:ps|pgrep|pstree|uptime)(?:\s|$)"),
    re.compile(r"^top\s+-b"),
    # Network
    re.compile(r"^(?:ss|netstat)(?:\s|$)"),
    re.compile(r"^ip\s+(?:-\w+\s+)*(?:a|addr|address|r|route|l|link|n|neigh)(?:\s+(?:show|list|ls))?(?:\s+dev\s+\S+)?\s*$"),
    re.compile(r"^ping\s+-c\s*\d+\s"),
    re.compile(r"^(?:hostname|hostnamectl)\s*$"),
    # Logs
    re.compile(r"^journalctl(?!.*--(?:vacuum|rotate|flush|relinquish))(?:\s|$)"),
    re.compile(r"^dmesg(?!.*\s-(?:[a-zA-Z]*[cC]|-clear|-read-clear))(?:\s|$)"),
    re.compile(r"^(?:cat|head|wc|grep|ls|stat|file)(?:\s|$)"),
    re.compile(r"^tail(?!.*\s(?:-[a-zA-Z]*[fF]|--follow))(?:\s|$)"),
    # Services and packages (query only)
    re.compile(r"^systemctl\s+(?:--user\s+)?(?:status|is-active|is-enabled|is-failed|list-units|list-unit-files|list-timers)(?:\s|$)"),
    re.compile(r"^pacman\s+-(?:Q[a-zA-Z]*|Ss|Si)(?:\s|$)"),
    re.compile(r"^yay\s+-(?:Q[a-zA-Z]*|Ss|Si|Ps)(?:\s|$)"),
    # Identity and time
    re.compile(r"^(?:whoami|id|groups|who|w|last|uname|cal|pwd|echo)(?:\s|$)"),
    re.compile(r"^date(?!.*\s(?:-s|--set))(?:\s|$)"),
    re.compile(r"^timedatectl(?:\s+status)?\s*$"),
]

# Redirection or command substitution turns a read-only command into anything
_UNSAFE_SHELL = re.compile(r"[<>`]|\$\(")
_SEGMENT_SPLIT = re.compile(r"\|\||&&|[;|&\n]")
_ELEVATION = re.compile(r"^(?:sudo|doas)(?:\s+-\S+)*\s+")

# ── (d) Permission categories ────────────────────────────────────────────────

PACKAGE_MANAGERS: frozenset[str] = frozenset({"pacman", "yay"})


def _package_args(command: str) -> tuple[str, str, list[str]] | None:
    """Split a pacman/yay call into (manager, operation letters, positional args).

    The operation letters are all short flags concatenated (``-Syu`` gives
    ``"Syu"``); long operations map onto their letter.
    """
    try:
        tokens = shlex.split(_ELEVATION.sub("", command.strip()))
    except ValueError:
        return None
    if not tokens or tokens[0] not in PACKAGE_MANAGERS:
        return None

    long_ops = {"--sync": "S", "--remove": "R", "--upgrade": "U", "--query": "Q", "--sysupgrade": "u", "--refresh": "y"}
    letters = ""
    positional: list[str] = []
    for token in tokens[1:]:
        if token in long_ops:
            letters += long_ops[token]
        elif token.startswith("--"):
            continue
        elif token.startswith("-"):
            letters += token[1:]
        else:
            positional.append(token)
    return tokens[0], letters, positional


def is_system_update(command: str) -> bool:
    parsed = _package_args(command)
    if parsed is None:
        return False
    manager, letters, positional = parsed
    if manager == "yay" and not letters and not positional:
        return True
    if not letters.startswith("S") or "R" in letters or "U" in letters:
        return False
    if "u" in letters:
        return True
    # A bare database refresh (-Sy) is an update step, not an install
    return "y" in letters and not positional


def is_package_install(command: str) -> bool:
    parsed = _package_args(command)
    if parsed is None or is_system_update(command):
        return False
    _, letters, positional = parsed
    if letters.startswith("U"):
        return True
    if not letters.startswith("S") or "R" in letters:
        return False
    # -Ss/-Si/-Sc/-Sg/-Sl query or clean the cache instead of installing
    if set(letters[1:]) & set("sicglp"):
        return False
    return bool(positional)


def is_package_remove(command: str) -> bool:
    parsed = _package_args(command)
    if parsed is None:
        return False
    _, letters, _ = parsed
    return letters.startswith("R")


_SERVICE_VERBS = r"(?:start|stop|restart|try-restart|reload|reload-or-restart|enable|disable|mask|unmask)"
_SERVICE_PATTERNS = [
    re.compile(r"^(?:sudo\s+)?systemctl\s+(?:--(?:user|now|system)\s+)*" + _SERVICE_VERBS + r"(?:\s|$)"),
    re.compile(r"^(?:sudo\s+)?service\s+\S+\s+(?:start|stop|restart|reload)\s*$"),
]


def is_service_lifecycle(command: str) -> bool:
    return any(p.search(command.strip()) for p in _SERVICE_PATTERNS)


CATEGORY_RULES: list[tuple[Callable[[str], bool], Capability]] = [
    (is_system_update, Capability.SYSTEM_UPDATE),
    (is_package_install, Capability.INSTALL_PACKAGES),
    (is_package_remove, Capability.REMOVE_PACKAGES),
    (is_service_lifecycle, Capability.MANAGE_SERVICES),
]

# ── /run confirmation table ──────────────────────────────────────────────────

CONFIRMATION_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(?:^|[\s;&|])(?:sudo|doas)\s"), "sudo"),
    (re.compile(r"(?:^|[\s;&|])(?:rm|rmdir|shred|unlink)\s"), "file deletion"),
    (re.compile(r"(?:^|[\s;&|])(?:kill|pkill|killall)\s"), "process termination"),
    (re.compile(r"(?:^|[\s;&|])(?:chmod|chown|chgrp)\s"), "permission change"),
    (re.compile(r"(?:^|[\s;&|])mv\s"), "file move"),
    (re.compile(r"(?:^|[\s;&|])(?:systemctl|service)\s+(?:\S+\s+)?" + _SERVICE_VERBS + r"\b"), "service control"),
    (re.compile(r"(?:^|[\s;&|])(?:pacman|yay)\s+-[SRU]"), "package management"),
]


def split_segments(command: str) -> list[str]:
    """Split a command on list and pipeline operators into trimmed segments."""
    return [seg.strip() for seg in _SEGMENT_SPLIT.split(command) if seg.strip()]


def first_token(segment: str) -> str:
    """The program name of a segment, looking past a leading sudo/doas."""
    stripped = _ELEVATION.sub("", segment.strip())
    parts = stripped.split()
    if not parts:
        return ""
    return parts[0].rsplit("/", 1)[-1]


def _is_safe_segment(segment: str) -> bool:
    return any(p.search(segment) for p in SAFE_PATTERNS)


def _segment_category(segment: str) -> Capability:
    for predicate, capability in CATEGORY_RULES:
        if predicate(segment):
            return capability
    return Capability.GENERAL_COMMANDS


def classify(command: str) -> CommandVerdict:
    """Classify a shell command. Deterministic, total and side-effect free."""
    command = command.strip()
    if not command:
        return Blocked(reason="empty command")

    for pattern, reason in BLOCKED_PATTERNS:
        if pattern.search(command):
            return Blocked(reason=reason)

    segments = split_segments(command)
    for segment in segments:
        token = first_token(segment)
        if token in BLOCKED_FIRST_TOKENS:
            return Blocked(reason=f"'{token}' ends the session or the machine")

    # Redirection or substitution can smuggle any program past a category
    if _UNSAFE_SHELL.search(command):
        return RequiresPermission(category=Capability.GENERAL_COMMANDS)

    if all(_is_safe_segment(s) for s in segments):
        return Safe()

    if len(segments) == 1:
        return RequiresPermission(category=_segment_category(command))

    # Chains inherit a category only when every non-safe part agrees on it
    categories = {_segment_category(s) for s in segments if not _is_safe_segment(s)}
    if len(categories) == 1:
        return RequiresPermission(category=categories.pop())
    return RequiresPermission(category=Capability.GENERAL_COMMANDS)


def classify_run(command: str) -> CommandVerdict:
    """Classify a command the operator typed with ``/run``.

    Blocked commands stay blocked. Commands matching the confirmation table
    need an explicit yes/no; everything else keeps its :func:`classify` verdict.
    """
    verdict = classify(command)
    if isinstance(verdict, Blocked):
        return verdict
    for pattern, label in CONFIRMATION_PATTERNS:
        if pattern.search(command.strip()):
            return RequiresConfirmation(label=label)
    return verdict
