"""
Blacklist check for shell commands typed by users.

Permissive on purpose: only plainly destructive commands are refused and
whatever passes is sent to the shell as-is. This is not a sandbox.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

MAX_COMMAND_LENGTH = 2000

DANGEROUS_COMMANDS = [
    "rm -rf /",
    "rm -rf /*",
    "rm -rf /.",
    "dd if=/dev/zero",
    "mkfs",
    "fdisk",
    "parted",
    ":(){:|:&};:",
    "shutdown",
    "reboot",
    "halt",
    "poweroff",
    "init 0",
    "init 6",
]

DANGEROUS_PATTERNS = [
    re.compile(r"rm\s+-rf\s+/[^a-zA-Z]"),
    re.compile(r"dd\s+if=/dev/zero"),
    re.compile(r"mkfs\."),
    re.compile(r":\(\)\{:\|:&\};:"),
    re.compile(r">\s*/dev/sd[a-z]"),
]

DESTRUCTIVE_PATTERNS = [
    re.compile(r"^rm\s"),
    re.compile(r"^rmdir\s"),
    re.compile(r"^mv\s"),
    re.compile(r"^chmod\s"),
    re.compile(r"^chown\s"),
    re.compile(r"^kill"),
    re.compile(r"^systemctl\s+(stop|restart)"),
]

_SHELL_SPECIAL = re.compile(r"([\"\s'$`\\])")


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None
    sanitized: Optional[str] = None


def validate_command(command) -> ValidationResult:
    if not command or not isinstance(command, str):
        return ValidationResult(False, error="Invalid command")

    trimmed = command.strip()
    if not trimmed:
        return ValidationResult(False, error="Empty command")

    if len(trimmed) > MAX_COMMAND_LENGTH:
        return ValidationResult(
            False, error=f"Command too long (max {MAX_COMMAND_LENGTH} characters)"
        )

    lowered = trimmed.lower()
    for dangerous in DANGEROUS_COMMANDS:
        if dangerous.lower() in lowered:
            return ValidationResult(
                False, error="Command blocked: destructive operation detected"
            )

    for pattern in DANGEROUS_PATTERNS:
        if pattern.search(trimmed):
            return ValidationResult(
                False, error="Command blocked: destructive pattern detected"
            )

    return ValidationResult(True, sanitized=trimmed)


def is_destructive_command(command: str) -> bool:
    """True for commands worth a confirmation prompt (rm, mv, chmod, kill...)."""
    stripped = command.strip()
    return any(pattern.search(stripped) for pattern in DESTRUCTIVE_PATTERNS)


def escape_shell_arg(arg: str) -> str:
    return _SHELL_SPECIAL.sub(r"\\\1", arg)


def get_blocked_commands() -> list[str]:
    return list(DANGEROUS_COMMANDS)
