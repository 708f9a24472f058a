"""Print collected process statistics in termination order."""

from __future__ import annotations

from typing import Iterable, List, Optional

from rich.console import Console
from rich.table import Table

from .accounting import ProcessStats
from .pipelines.base import PipelineRunStats


def is_ghost_row(row: ProcessStats) -> bool:
    return row.ghost and row.exit_signal is None


def format_row(row: ProcessStats) -> str:
    if row.exit_signal is not None:
        outcome = f"(EXSIG){row.exit_signal}"
    else:
        outcome = f"(EXCODE){row.exit_code}"
    return (
        f"(PID){row.pid} (CMD){row.command} (STATE){row.state} {outcome} (PPID){row.ppid} "
        f"(USER){row.user_seconds:.2f} (SYS){row.system_seconds:.2f} "
        f"(VCTX){row.voluntary_ctxt_switches} (NVCTX){row.nonvoluntary_ctxt_switches}"
    )


def report_lines(table: Iterable[ProcessStats]) -> List[str]:
    return [format_row(row) for row in table if not is_ghost_row(row)]


def build_table(rows: Iterable[ProcessStats], title: str = "Pipeline Statistics") -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("PID", justify="right")
    table.add_column("CMD")
    table.add_column("STATE")
    table.add_column("EXCODE / EXSIG")
    table.add_column("PPID", justify="right")
    table.add_column("USER", justify="right")
    table.add_column("SYS", justify="right")
    table.add_column("VCTX", justify="right")
    table.add_column("NVCTX", justify="right")
    for row in rows:
        if is_ghost_row(row):
            continue
        outcome = row.exit_signal if row.exit_signal is not None else str(row.exit_code)
        table.add_row(
            str(row.pid),
            row.command,
            row.state,
            outcome,
            str(row.ppid),
            f"{row.user_seconds:.2f}",
            f"{row.system_seconds:.2f}",
            str(row.voluntary_ctxt_switches),
            str(row.nonvoluntary_ctxt_switches),
        )
    return table


class Reporter:
    def __init__(self, console: Optional[Console] = None, style: str = "plain"):
        self.console = console or Console()
        self.style = style

    def render(self, stats: PipelineRunStats) -> int:
        """Print one row per visible slot and return how many were printed."""
        if self.style == "table":
            visible = stats.visible_rows
            if visible:
                self.console.print(build_table(visible))
            return len(visible)

        lines = report_lines(stats.table)
        for line in lines:
            self.console.print(line, markup=False, highlight=False, soft_wrap=True)
        return len(lines)

    def render_timings(self, stats: PipelineRunStats) -> None:
        if not stats.stage_timings:
            return
        table = Table(title="Pipeline Timings", show_header=True, header_style="bold cyan")
        table.add_column("Phase")
        table.add_column("Seconds", justify="right")
        for phase, seconds in stats.stage_timings.items():
            label = phase.replace("_seconds", "").replace("_", " ").strip().title()
            table.add_row(label, f"{seconds:.4f}")
        table.add_row("Total", f"{stats.duration_seconds:.4f}")
        self.console.print(table)
