"""Collect finished stages in the order the kernel reports them."""

from __future__ import annotations

import os
import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Set

from ..accounting import (
    ContextSwitches,
    ProcessStats,
    StatRecord,
    clock_ticks_per_second,
    read_stat,
    read_status,
    stat_path,
    status_path,
)
from ..errors import AccountingUnavailableError
from ..logging_utils import get_logger
from .base import PipelineContext, Stage


@dataclass
class CollectionResult:
    table: List[ProcessStats] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)


def signal_name(signum: int) -> str:
    return signal.strsignal(signum) or f"Signal {signum}"


class TerminationCollector:
    """Drain every stage of a pipeline, reading /proc before each reap.

    Slot k of the resulting table is the k-th stage to terminate. Only the
    pipeline's process group is waited on, so other children of the host
    process keep their exit status. Reading happens between a non-destructive
    ``waitid`` and the final ``waitpid`` because the accounting files
    disappear once the process is reaped.
    """

    def __init__(
        self,
        context: PipelineContext,
        proc_root: Path | str = "/proc",
        strict: bool = False,
        clock_ticks: Optional[int] = None,
    ):
        self.context = context
        self.proc_root = Path(proc_root)
        self.strict = strict
        self.clock_ticks = clock_ticks or clock_ticks_per_second()
        self.pending: Set[int] = set(context.pids)
        self.pgid = context.pgid
        self.logger = get_logger("TerminationCollector")

    def _wait_any(self) -> int:
        while True:
            try:
                result = os.waitid(os.P_PGID, self.pgid, os.WEXITED | os.WNOWAIT)
            except InterruptedError:
                continue
            if result is not None:
                return result.si_pid

    def _unavailable(self, pid: int, path: Path, exc: OSError) -> None:
        error = AccountingUnavailableError(pid, str(path), exc)
        if self.strict:
            raise error from exc
        self.logger.warning("%s; skipping its statistics", error)

    def _read_accounting(self, pid: int, stage: Stage) -> Optional[ProcessStats]:
        try:
            stat: StatRecord = read_stat(pid, self.proc_root, self.clock_ticks)
        except OSError as exc:
            self._unavailable(pid, stat_path(pid, self.proc_root), exc)
            return None
        try:
            switches: ContextSwitches = read_status(pid, self.proc_root)
        except OSError as exc:
            self._unavailable(pid, status_path(pid, self.proc_root), exc)
            return None
        return ProcessStats.from_records(stat, switches, stage=stage.index)

    def _reap(self, pid: int, row: Optional[ProcessStats]) -> None:
        _, status = os.waitpid(pid, 0)
        if row is None:
            return
        if os.WIFSIGNALED(status):
            row.mark_signaled(signal_name(os.WTERMSIG(status)))
        elif os.WIFEXITED(status):
            row.mark_exited(os.WEXITSTATUS(status))

    def collect_one(self) -> Optional[ProcessStats]:
        """Wait for the next stage to finish and account for it.

        Returns None when the stage's accounting could not be read.
        """
        pid = self._wait_any()
        stage = self.context.stage_for(pid)
        row = self._read_accounting(pid, stage)
        self._reap(pid, row)
        self.pending.discard(pid)
        launch_errno = stage.launch.consume() if stage.launch is not None else None
        if row is not None:
            row.ghost = launch_errno is not None
        return row

    def collect(self) -> CollectionResult:
        result = CollectionResult()
        while self.pending:
            pid_before = set(self.pending)
            row = self.collect_one()
            if row is None:
                result.skipped.extend(pid_before - self.pending)
                continue
            self.logger.debug(
                "Slot %s <- pid %s (stage %s)", len(result.table), row.pid, row.stage
            )
            result.table.append(row)
        return result
