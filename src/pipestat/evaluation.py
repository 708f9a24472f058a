"""Benchmark helpers for repeated pipeline runs."""

from __future__ import annotations

from typing import List, Optional, Sequence

import pandas as pd

from .config import ShellConfig
from .pipelines.base import PipelineRunStats
from .pipelines.runner import PipelineRunner

SUMMARY_COLUMNS = ["user_seconds", "system_seconds", "vctx", "nvctx"]


def benchmark_pipeline(
    commands: Sequence[Sequence[str]],
    config: Optional[ShellConfig] = None,
    repeat: int = 3,
    stdout_fd: int = 1,
) -> List[PipelineRunStats]:
    if repeat < 1:
        raise ValueError(f"repeat must be positive, got {repeat}")
    runner = PipelineRunner(config)
    return [runner.run(commands, stdout_fd=stdout_fd) for _ in range(repeat)]


def results_to_frame(results: List[PipelineRunStats]) -> pd.DataFrame:
    rows = []
    for run_index, stats in enumerate(results):
        for slot, row in enumerate(stats.table):
            rows.append(
                {
                    "run": run_index,
                    "slot": slot,
                    "stage": row.stage,
                    "pid": row.pid,
                    "command": row.command,
                    "exit_code": row.exit_code,
                    "exit_signal": row.exit_signal,
                    "ghost": row.ghost,
                    "user_seconds": row.user_seconds,
                    "system_seconds": row.system_seconds,
                    "vctx": row.voluntary_ctxt_switches,
                    "nvctx": row.nonvoluntary_ctxt_switches,
                    "run_seconds": stats.duration_seconds,
                }
            )
    return pd.DataFrame(rows)


def summarize(frame: pd.DataFrame) -> pd.DataFrame:
    """Mean accounting figures per stage, ghosts excluded."""
    if frame.empty:
        return pd.DataFrame(columns=["stage", "command", "runs", *SUMMARY_COLUMNS])
    real = frame[~frame["ghost"]]
    grouped = real.groupby(["stage", "command"], as_index=False)
    summary = grouped[SUMMARY_COLUMNS].mean()
    summary.insert(2, "runs", grouped.size()["size"].to_numpy())
    return summary.sort_values("stage").reset_index(drop=True)
