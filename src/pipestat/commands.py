"""Turn a raw input line into a validated command list."""

from __future__ import annotations

import shlex
from typing import List

from .errors import CommandLineError, InputShapeError

PIPE = "|"
MAX_COMMANDS = 5

EDGE_PIPE_MESSAGE = "should not have | symbol as the first or last character"
EMPTY_SEGMENT_MESSAGE = "should not have two | symbols without in-between command"


def split_segments(line: str) -> List[str]:
    """Split on every ``|`` that is not quoted or escaped."""
    segments: List[str] = []
    current: List[str] = []
    quote = ""
    escaped = False
    for char in line:
        if escaped:
            escaped = False
        elif char == "\\" and quote != "'":
            escaped = True
        elif quote:
            if char == quote:
                quote = ""
        elif char in ("'", '"'):
            quote = char
        elif char == PIPE:
            segments.append("".join(current))
            current = []
            continue
        current.append(char)
    if quote:
        raise CommandLineError(f"unterminated {quote} quote")
    segments.append("".join(current))
    return segments


def parse_command_line(line: str, max_commands: int = MAX_COMMANDS) -> List[List[str]]:
    """Parse ``line`` into a list of argument vectors.

    Returns an empty list for a blank line. Raises CommandLineError for a
    leading or trailing pipe or an empty segment, and InputShapeError when
    the line holds more than ``max_commands`` commands.
    """
    text = line.strip()
    if not text:
        return []

    segments = split_segments(text)
    if len(segments) > 1 and (not segments[0].strip() or not segments[-1].strip()):
        raise CommandLineError(EDGE_PIPE_MESSAGE)

    commands: List[List[str]] = []
    for segment in segments:
        try:
            argv = shlex.split(segment)
        except ValueError as exc:
            raise CommandLineError(str(exc)) from exc
        if not argv:
            raise CommandLineError(EMPTY_SEGMENT_MESSAGE)
        commands.append(argv)

    if len(commands) > max_commands:
        raise InputShapeError(len(commands), max_commands)
    return commands


def is_exit(commands: List[List[str]]) -> bool:
    return bool(commands) and commands[0][0] == "exit"
