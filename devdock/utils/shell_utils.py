"""
Quoting and escaping helpers for command lines that must pass through a shell
"""

import re
import shlex
from typing import List

_REPEATED_SEPARATOR = re.compile(r";(?:[ \t]*;)+")

# Line endings after which the shell expects more of the same statement
_CONTINUATION = re.compile(r"(?:(?:^|\s)(?:then|do|else|\{)|\||&&|;)$")


def shell_quote(value: str) -> str:
    """Quote a single argument for POSIX shells"""
    return shlex.quote(str(value))


def join_statements(command: str) -> str:
    """
    Collapse a multi-line script onto one line.

    Line breaks become ``; `` statement separators, except after keywords
    and operators that continue the current statement (``then``, ``do``,
    ``|``, ...). Any stray ``;;`` left behind is collapsed.
    """
    lines = [line.strip() for line in command.splitlines() if line.strip()]
    if not lines:
        return ""

    parts: List[str] = []
    for line in lines[:-1]:
        parts.append(line)
        if _CONTINUATION.search(line):
            parts.append(" ")
        else:
            parts.append("; ")
    parts.append(lines[-1])

    return _REPEATED_SEPARATOR.sub(";", "".join(parts))


def escape_applescript_string(value: str) -> str:
    """Escape backslashes and double quotes for an AppleScript string literal"""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def prepare_elevated_script(command: str) -> str:
    """Single-line, AppleScript-safe form of a shell script"""
    return escape_applescript_string(join_statements(command))


def output_lines(text: str) -> List[str]:
    """Non-empty, trimmed lines of command output"""
    return [line.strip() for line in (text or "").splitlines() if line.strip()]
