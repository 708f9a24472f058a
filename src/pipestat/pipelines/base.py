"""Shared pipeline models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..accounting import ProcessStats
from ..config import ShellConfig
from .executor import LaunchChannel


@dataclass
class Stage:
    index: int
    argv: List[str]
    pid: Optional[int] = None
    launch: Optional[LaunchChannel] = None
    stdin_fd: Optional[int] = None
    stdout_fd: Optional[int] = None

    @property
    def program(self) -> str:
        return self.argv[0]


@dataclass
class PipelineContext:
    """State owned by one execution of one command line."""

    commands: List[List[str]]
    config: ShellConfig = field(default_factory=ShellConfig)
    stdin_fd: int = 0
    stdout_fd: int = 1
    stages: List[Stage] = field(default_factory=list)
    wired_at: Optional[float] = None

    @property
    def length(self) -> int:
        return len(self.commands)

    @property
    def pids(self) -> List[int]:
        return [stage.pid for stage in self.stages if stage.pid is not None]

    @property
    def pgid(self) -> Optional[int]:
        """Process group shared by every stage, led by the first one."""
        if not self.stages:
            return None
        return self.stages[0].pid

    def stage_for(self, pid: int) -> Optional[Stage]:
        for stage in self.stages:
            if stage.pid == pid:
                return stage
        return None


@dataclass
class PipelineRunStats:
    commands: List[List[str]]
    pids: List[int]
    table: List[ProcessStats]
    pipes_allocated: int
    wired_at: float
    duration_seconds: float
    stage_timings: Dict[str, float] = field(default_factory=dict)
    skipped: List[int] = field(default_factory=list)

    @property
    def visible_rows(self) -> List[ProcessStats]:
        return [row for row in self.table if not (row.ghost and row.exit_signal is None)]

    @property
    def ghosts(self) -> List[ProcessStats]:
        return [row for row in self.table if row.ghost]

    def slot_stages(self) -> List[Optional[int]]:
        return [row.stage for row in self.table]
