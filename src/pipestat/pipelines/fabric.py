"""Pipe allocation for an n-stage pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterator, List, Optional

from ..logging_utils import get_logger

CLOSED = -1


@dataclass
class Pipe:
    read_fd: int
    write_fd: int

    @classmethod
    def open(cls) -> "Pipe":
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

    def close(self) -> None:
        self.close_read()
        self.close_write()

    @property
    def closed(self) -> bool:
        return self.read_fd == CLOSED and self.write_fd == CLOSED


class PipeFabric:
    """Holds the n-1 pipes joining adjacent stages."""

    def __init__(self, pipes: List[Pipe]):
        self.pipes = pipes
        self.logger = get_logger("PipeFabric")

    @classmethod
    def allocate(cls, stages: int) -> "PipeFabric":
        if stages < 1:
            raise ValueError(f"A pipeline needs at least one stage, got {stages}")
        pipes: List[Pipe] = []
        try:
            for _ in range(stages - 1):
                pipes.append(Pipe.open())
        except OSError:
            for pipe in pipes:
                pipe.close()
            raise
        fabric = cls(pipes)
        fabric.logger.debug("Allocated %s pipes for %s stages", len(pipes), stages)
        return fabric

    def __len__(self) -> int:
        return len(self.pipes)

    def __iter__(self) -> Iterator[Pipe]:
        return iter(self.pipes)

    def input_for(self, index: int) -> Optional[int]:
        """Read end feeding stage ``index``, or None for the first stage."""
        if index == 0:
            return None
        return self.pipes[index - 1].read_fd

    def output_for(self, index: int) -> Optional[int]:
        """Write end fed by stage ``index``, or None for the last stage."""
        if index >= len(self.pipes):
            return None
        return self.pipes[index].write_fd

    def close_all(self) -> None:
        for pipe in self.pipes:
            pipe.close()
