"""Parsers for the per-process accounting files under /proc.

``/proc/<pid>/stat`` is a single space separated line whose second field is
the command name wrapped in parentheses. The name itself may contain spaces
or parentheses, so the line is split at the *last* closing parenthesis and
the remaining fields are indexed relative to the state field (field 3).

``/proc/<pid>/status`` is a list of ``Key:\tvalue`` lines, of which only the
context switch counters are used here.

Both files exist only until the process is reaped, so callers must read them
between the non-destructive wait and the final ``waitpid``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

# field numbers as documented in proc(5)
_STATE_FIELD = 3
_PPID_FIELD = 4
_UTIME_FIELD = 14
_STIME_FIELD = 15
_EXIT_CODE_FIELD = 52

VOLUNTARY_KEY = "voluntary_ctxt_switches"
NONVOLUNTARY_KEY = "nonvoluntary_ctxt_switches"


@dataclass
class StatRecord:
    pid: int
    command: str
    state: str
    ppid: int
    user_seconds: float
    system_seconds: float
    exit_code: int


@dataclass
class ContextSwitches:
    voluntary: int = 0
    nonvoluntary: int = 0


@dataclass
class ProcessStats:
    pid: int
    command: str
    state: str
    ppid: int
    user_seconds: float
    system_seconds: float
    voluntary_ctxt_switches: int
    nonvoluntary_ctxt_switches: int
    exit_code: Optional[int] = None
    exit_signal: Optional[str] = None
    stage: Optional[int] = None
    ghost: bool = False

    @classmethod
    def from_records(
        cls, stat: StatRecord, switches: ContextSwitches, stage: Optional[int] = None
    ) -> "ProcessStats":
        return cls(
            pid=stat.pid,
            command=stat.command,
            state=stat.state,
            ppid=stat.ppid,
            user_seconds=stat.user_seconds,
            system_seconds=stat.system_seconds,
            voluntary_ctxt_switches=switches.voluntary,
            nonvoluntary_ctxt_switches=switches.nonvoluntary,
            exit_code=stat.exit_code,
            stage=stage,
        )

    def mark_signaled(self, signal_name: str) -> None:
        self.exit_code = None
        self.exit_signal = signal_name

    def mark_exited(self, exit_code: int) -> None:
        self.exit_code = exit_code
        self.exit_signal = None


def clock_ticks_per_second() -> int:
    return os.sysconf("SC_CLK_TCK")


def parse_stat_line(line: str, clock_ticks: Optional[int] = None) -> StatRecord:
    """Parse the contents of ``/proc/<pid>/stat``.

    The exit code is the raw wait status stored by the kernel divided by 256,
    so it is only meaningful for a process that exited normally. Kernels that
    predate field 52 report 0.
    """

    ticks = clock_ticks or clock_ticks_per_second()
    open_paren = line.find("(")
    close_paren = line.rfind(")")
    if open_paren < 0 or close_paren < open_paren:
        raise ValueError(f"Malformed stat line: {line!r}")

    pid = int(line[:open_paren].strip())
    command = line[open_paren + 1 : close_paren]
    fields = line[close_paren + 1 :].split()

    def field_at(number: int) -> str:
        return fields[number - _STATE_FIELD]

    if len(fields) < _STIME_FIELD - _STATE_FIELD + 1:
        raise ValueError(f"Truncated stat line for pid {pid}: {len(fields)} fields after command")

    raw_exit = 0
    if len(fields) > _EXIT_CODE_FIELD - _STATE_FIELD:
        raw_exit = int(field_at(_EXIT_CODE_FIELD))

    return StatRecord(
        pid=pid,
        command=command,
        state=field_at(_STATE_FIELD),
        ppid=int(field_at(_PPID_FIELD)),
        user_seconds=int(field_at(_UTIME_FIELD)) / ticks,
        system_seconds=int(field_at(_STIME_FIELD)) / ticks,
        exit_code=raw_exit // 256,
    )


def parse_status_fields(text: str) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        fields[key] = value.lstrip()
    return fields


def parse_context_switches(text: str) -> ContextSwitches:
    fields = parse_status_fields(text)
    return ContextSwitches(
        voluntary=int(fields.get(VOLUNTARY_KEY, 0)),
        nonvoluntary=int(fields.get(NONVOLUNTARY_KEY, 0)),
    )


def stat_path(pid: int, proc_root: Path | str = "/proc") -> Path:
    return Path(proc_root) / str(pid) / "stat"


def status_path(pid: int, proc_root: Path | str = "/proc") -> Path:
    return Path(proc_root) / str(pid) / "status"


def read_stat(pid: int, proc_root: Path | str = "/proc", clock_ticks: Optional[int] = None) -> StatRecord:
    content = stat_path(pid, proc_root).read_text(encoding="utf-8", errors="replace")
    return parse_stat_line(content, clock_ticks)


def read_status(pid: int, proc_root: Path | str = "/proc") -> ContextSwitches:
    content = status_path(pid, proc_root).read_text(encoding="utf-8", errors="replace")
    return parse_context_switches(content)
