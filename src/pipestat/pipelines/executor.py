"""Program replacement inside a released stage."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, NoReturn, Optional

from .fabric import CLOSED

GHOST_EXIT_CODE = 1


@dataclass
class LaunchChannel:
    """Close-on-exec pipe telling the orchestrator whether a stage's exec failed.

    A successful exec closes the write end without writing anything. A failed
    launch writes the errno before the child exits, so a ghost is recognised
    without relying on its exit status.
    """

    read_fd: int
    write_fd: int

    @classmethod
    def open(cls) -> "LaunchChannel":
        # os.pipe() descriptors are non-inheritable, i.e. close-on-exec
        read_fd, write_fd = os.pipe()
        return cls(read_fd=read_fd, write_fd=write_fd)

    def close_read(self) -> None:
        if self.read_fd != CLOSED:
            os.close(self.read_fd)
            self.read_fd = CLOSED

    def close_write(self) -> None:
        if self.write_fd != CLOSED:
            os.close(self.write_fd)
            self.write_fd = CLOSED

    def report_failure(self, errno_value: int) -> None:
        if self.write_fd == CLOSED:
            return
        try:
            os.write(self.write_fd, f"{errno_value}\n".encode())
        except OSError:
            pass

    def consume(self) -> Optional[int]:
        """Return the errno of a failed launch, or None if the program started.

        Only call once the stage has terminated, otherwise the read blocks.
        """
        if self.read_fd == CLOSED:
            return None
        try:
            payload = os.read(self.read_fd, 64)
        finally:
            self.close_read()
        if not payload:
            return None
        return int(payload.split(b"\n", 1)[0] or 0)


def write_diagnostic(message: str) -> None:
    # children bypass sys.stderr so nothing buffered in the parent is replayed
    os.write(2, (message + "\n").encode(errors="replace"))


def execute_stage(argv: List[str], launch: Optional[LaunchChannel] = None) -> NoReturn:
    """Replace the current process with ``argv``; exit as a ghost if that fails."""
    try:
        os.execvp(argv[0], argv)
    except OSError as exc:
        write_diagnostic(f"pipestat: '{argv[0]}': {exc.strerror or exc}")
        if launch is not None:
            launch.report_failure(exc.errno or 0)
    os._exit(GHOST_EXIT_CODE)
