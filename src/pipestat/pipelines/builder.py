"""Fork one process per stage and wire the pipes between them."""

from __future__ import annotations

import os
import signal
import sys
from time import time
from typing import List, Optional

from ..errors import InputShapeError, PipelineBuildError
from ..logging_utils import get_logger
from .barrier import SignalBarrier
from .base import PipelineContext, Stage
from .executor import LaunchChannel, execute_stage, write_diagnostic
from .fabric import PipeFabric

CHILD_SETUP_FAILURE = 1

# Python ignores these at startup and an ignored disposition survives exec
RESTORED_SIGNALS = ("SIGPIPE", "SIGXFSZ")


def _dup_onto(fd: Optional[int], target: int) -> None:
    if fd is not None and fd != target:
        os.dup2(fd, target)


class PipelineBuilder:
    def __init__(self, context: PipelineContext, barrier: SignalBarrier):
        self.context = context
        self.barrier = barrier
        self.fabric: Optional[PipeFabric] = None
        self.logger = get_logger("PipelineBuilder")

    def _validate(self) -> None:
        capacity = self.context.config.max_commands
        length = self.context.length
        if length > capacity:
            raise InputShapeError(length, capacity)
        if length == 0 or any(not argv for argv in self.context.commands):
            raise ValueError("Every pipeline stage needs a program to run")

    def _plan_stages(self, fabric: PipeFabric) -> List[Stage]:
        stages: List[Stage] = []
        last = self.context.length - 1
        for index, argv in enumerate(self.context.commands):
            stage = Stage(index=index, argv=list(argv))
            stage.stdin_fd = fabric.input_for(index)
            stage.stdout_fd = fabric.output_for(index)
            if index == 0 and self.context.stdin_fd != 0:
                stage.stdin_fd = self.context.stdin_fd
            if index == last and self.context.stdout_fd != 1:
                stage.stdout_fd = self.context.stdout_fd
            stages.append(stage)
        return stages

    def build(self) -> List[Stage]:
        """Fork every stage and leave it parked at the barrier.

        Returns the stages with their pids set, in spawn order. The barrier is
        armed on return; the caller releases and disarms it.
        """
        self._validate()
        try:
            self.fabric = PipeFabric.allocate(self.context.length)
        except OSError as exc:
            raise PipelineBuildError(f"Unable to create pipes: {exc.strerror or exc}") from exc

        self.context.stages = self._plan_stages(self.fabric)
        self.barrier.arm()
        # anything still buffered would otherwise be flushed once per child
        sys.stdout.flush()
        sys.stderr.flush()

        for stage in self.context.stages:
            try:
                self._fork_stage(stage)
            except OSError as exc:
                self._rollback()
                raise PipelineBuildError(
                    f"Unable to start '{stage.program}': {exc.strerror or exc}", stage=stage.index
                ) from exc

        # the orchestrator never touches pipeline data
        self.fabric.close_all()
        self.context.wired_at = time()
        self.logger.debug(
            "Forked %s stages with %s pipes: %s",
            len(self.context.stages),
            len(self.fabric),
            self.context.pids,
        )
        return self.context.stages

    def _fork_stage(self, stage: Stage) -> None:
        stage.launch = LaunchChannel.open()
        try:
            pid = os.fork()
        except OSError:
            stage.launch.close_read()
            stage.launch.close_write()
            stage.launch = None
            raise
        if pid == 0:
            self._run_child(stage)
        stage.pid = pid
        stage.launch.close_write()
        self._join_group(pid)

    def _join_group(self, pid: int) -> None:
        # set from both sides so the group exists before either side relies on it
        try:
            os.setpgid(pid, self.context.pgid)
        except ProcessLookupError:
            pass

    def _run_child(self, stage: Stage) -> None:
        try:
            os.setpgid(0, self.context.pgid or 0)
            signal.signal(signal.SIGINT, signal.SIG_DFL)
            for name in RESTORED_SIGNALS:
                if hasattr(signal, name):
                    signal.signal(getattr(signal, name), signal.SIG_DFL)
            _dup_onto(stage.stdin_fd, 0)
            _dup_onto(stage.stdout_fd, 1)
            self.fabric.close_all()
            for other in self.context.stages:
                if other.launch is not None:
                    other.launch.close_read()
            self.barrier.wait()
            self.barrier.restore()
            execute_stage(stage.argv, stage.launch)
        except Exception as exc:
            write_diagnostic(f"pipestat: stage {stage.index} setup failed: {exc}")
        finally:
            os._exit(CHILD_SETUP_FAILURE)

    def _rollback(self) -> None:
        forked = [stage for stage in self.context.stages if stage.pid is not None]
        for stage in forked:
            try:
                os.kill(stage.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
        for stage in forked:
            os.waitpid(stage.pid, 0)
            if stage.launch is not None:
                stage.launch.close_read()
        if self.fabric is not None:
            self.fabric.close_all()
        self.barrier.disarm()
        self.logger.warning("Rolled back %s partially started stages", len(forked))
