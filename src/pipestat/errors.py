"""Exception types raised by the pipeline engine and its command-line front end."""

from __future__ import annotations

from typing import Optional

__all__ = [
    "PipestatError",
    "CommandLineError",
    "InputShapeError",
    "PipelineBuildError",
    "AccountingUnavailableError",
]


class PipestatError(RuntimeError):
    """Base class for every error the shell reports to the user."""


class CommandLineError(PipestatError):
    """A raw input line could not be turned into a command list."""


class InputShapeError(CommandLineError):
    """The command list is longer than the pipeline capacity."""

    def __init__(self, length: int, capacity: int) -> None:
        super().__init__(f"The maximum allowed number of commands is {capacity}")
        self.length = length
        self.capacity = capacity


class PipelineBuildError(PipestatError):
    """Pipes or processes for a pipeline could not be created."""

    def __init__(self, message: str, stage: Optional[int] = None) -> None:
        super().__init__(message)
        self.stage = stage

    def __str__(self) -> str:
        message = super().__str__()
        if self.stage is not None:
            return f"[stage {self.stage}] {message}"
        return message


class AccountingUnavailableError(PipestatError):
    """A /proc accounting source vanished for a process that was not yet reaped."""

    def __init__(self, pid: int, path: str, cause: OSError) -> None:
        super().__init__(f"Error opening {path} for pid {pid}: {cause.strerror or cause}")
        self.pid = pid
        self.path = path
        self.cause = cause
