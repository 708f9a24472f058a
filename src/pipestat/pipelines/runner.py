"""Run one command line: build, release, collect."""

from __future__ import annotations

import os
import signal
from time import perf_counter
from typing import Callable, Iterable, Optional, Sequence

from ..config import ShellConfig
from ..logging_utils import get_logger
from .barrier import SignalBarrier
from .base import PipelineContext, PipelineRunStats
from .builder import PipelineBuilder
from .collector import TerminationCollector


class InterruptGuard:
    """Keep SIGINT from cancelling collection while a pipeline runs.

    With the ``ignore`` policy the orchestrator only records the interrupt.
    With ``forward`` it also relays SIGINT to every stage still pending.
    Without the guard Python would raise KeyboardInterrupt inside ``waitid``
    and leave zombies behind.
    """

    def __init__(self, policy: str = "ignore", targets: Optional[Callable[[], Iterable[int]]] = None):
        self.policy = policy
        self.targets = targets
        self.interrupts = 0
        self.logger = get_logger("InterruptGuard")
        self._previous = None

    def _handle(self, signum, frame) -> None:
        self.interrupts += 1
        if self.policy != "forward" or self.targets is None:
            return
        for pid in list(self.targets()):
            try:
                os.kill(pid, signal.SIGINT)
            except ProcessLookupError:
                pass

    def __enter__(self) -> "InterruptGuard":
        self._previous = signal.signal(signal.SIGINT, self._handle)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        signal.signal(signal.SIGINT, self._previous if self._previous is not None else signal.SIG_DFL)
        if self.interrupts:
            self.logger.info(
                "Received %s interrupt(s) while the pipeline was running (%s)",
                self.interrupts,
                self.policy,
            )


class ForegroundGroup:
    """Make the pipeline's process group the terminal's foreground group.

    Terminal Ctrl-C and terminal reads then reach the stages. Does nothing
    when no standard stream is a terminal or the orchestrator is not in the
    foreground.
    """

    def __init__(self, pgid: Optional[int], fds: Sequence[int] = (0, 1, 2)):
        self.pgid = pgid
        self.fds = fds
        self.logger = get_logger("ForegroundGroup")
        self._fd: Optional[int] = None
        self._previous: Optional[int] = None

    def _terminal(self) -> Optional[int]:
        for fd in self.fds:
            try:
                if os.isatty(fd) and os.tcgetpgrp(fd) == os.getpgrp():
                    return fd
            except OSError:
                continue
        return None

    def __enter__(self) -> "ForegroundGroup":
        fd = self._terminal() if self.pgid is not None else None
        if fd is None:
            return self
        try:
            os.tcsetpgrp(fd, self.pgid)
        except OSError as exc:
            self.logger.debug("Keeping the terminal: %s", exc)
            return self
        self._fd = fd
        self._previous = os.getpgrp()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._fd is None:
            return
        # a background group taking the terminal back would get SIGTTOU
        previous_handler = signal.signal(signal.SIGTTOU, signal.SIG_IGN)
        try:
            os.tcsetpgrp(self._fd, self._previous)
        finally:
            signal.signal(signal.SIGTTOU, previous_handler)
            self._fd = None


class PipelineRunner:
    def __init__(self, config: Optional[ShellConfig] = None):
        self.config = config or ShellConfig()
        self.logger = get_logger("PipelineRunner")

    def run(
        self,
        commands: Sequence[Sequence[str]],
        stdin_fd: int = 0,
        stdout_fd: int = 1,
    ) -> PipelineRunStats:
        context = PipelineContext(
            commands=[list(argv) for argv in commands],
            config=self.config,
            stdin_fd=stdin_fd,
            stdout_fd=stdout_fd,
        )
        timings = {}
        start = perf_counter()
        barrier = SignalBarrier(self.config.barrier.signum)
        builder = PipelineBuilder(context, barrier)

        collector: Optional[TerminationCollector] = None

        def pending() -> Iterable[int]:
            return collector.pending if collector is not None else context.pids

        with InterruptGuard(self.config.interrupt_policy, pending):
            build_start = perf_counter()
            builder.build()
            timings["build_seconds"] = perf_counter() - build_start

            collector = TerminationCollector(
                context,
                proc_root=self.config.accounting.root,
                strict=self.config.accounting.strict,
            )
            with ForegroundGroup(context.pgid):
                release_start = perf_counter()
                try:
                    barrier.release(context.pids)
                finally:
                    barrier.disarm()
                timings["release_seconds"] = perf_counter() - release_start

                collect_start = perf_counter()
                collected = collector.collect()
                timings["collect_seconds"] = perf_counter() - collect_start

        duration = perf_counter() - start
        stats = PipelineRunStats(
            commands=context.commands,
            pids=context.pids,
            table=collected.table,
            pipes_allocated=len(builder.fabric) if builder.fabric is not None else 0,
            wired_at=context.wired_at,
            duration_seconds=duration,
            stage_timings=timings,
            skipped=collected.skipped,
        )
        self.logger.debug(
            "Pipeline of %s stages finished in %.2fs (%s ghosts)",
            context.length,
            duration,
            len(stats.ghosts),
        )
        return stats


def run_pipeline(
    commands: Sequence[Sequence[str]],
    config: Optional[ShellConfig] = None,
    stdin_fd: int = 0,
    stdout_fd: int = 1,
) -> PipelineRunStats:
    return PipelineRunner(config).run(commands, stdin_fd=stdin_fd, stdout_fd=stdout_fd)
