import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import pytest

from pipestat.config import AccountingConfig, ShellConfig
from pipestat.errors import AccountingUnavailableError, InputShapeError
from pipestat.pipelines.runner import ForegroundGroup, InterruptGuard, PipelineRunner, run_pipeline
from pipestat.reporter import report_lines

pytestmark = pytest.mark.skipif(
    not (hasattr(os, "fork") and Path("/proc/self/stat").exists()),
    reason="requires os.fork and procfs",
)

PYTHON = sys.executable


def _python(code: str, *args: str):
    return [PYTHON, "-c", code, *args]


def _reap_leftovers():
    while True:
        try:
            os.waitpid(-1, 0)
        except ChildProcessError:
            return


@pytest.fixture
def fork_counter(monkeypatch):
    calls = []
    real_fork = os.fork

    def counting_fork():
        pid = real_fork()
        if pid:
            calls.append(pid)
        return pid

    monkeypatch.setattr(os, "fork", counting_fork)
    return calls


@pytest.mark.parametrize("length", [1, 2, 3, 4, 5])
def test_pipes_and_forks_match_length(length, fork_counter):
    stats = run_pipeline([["true"]] * length)
    assert stats.pipes_allocated == length - 1
    assert len(fork_counter) == length
    assert sorted(stats.pids) == sorted(fork_counter)
    assert len(stats.table) == length
    assert {row.pid for row in stats.table} == set(stats.pids)


@pytest.mark.parametrize("length", [1, 2, 3, 4, 5])
def test_bytes_flow_unmodified_through_every_stage(tmp_path: Path, length):
    payload = bytes(range(256)) * 1024
    source = tmp_path / "in.bin"
    target = tmp_path / "out.bin"
    source.write_bytes(payload)

    stdin_fd = os.open(source, os.O_RDONLY)
    stdout_fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    try:
        stats = run_pipeline([["cat"]] * length, stdin_fd=stdin_fd, stdout_fd=stdout_fd)
    finally:
        os.close(stdin_fd)
        os.close(stdout_fd)

    assert target.read_bytes() == payload
    assert all(row.exit_code == 0 for row in stats.table)


def test_stages_only_run_after_every_stage_is_wired(tmp_path: Path):
    marks = [tmp_path / f"stage{index}.ts" for index in range(4)]
    code = "import sys, time; open(sys.argv[1], 'w').write(repr(time.time()))"
    stats = run_pipeline([_python(code, str(mark)) for mark in marks])

    assert stats.wired_at is not None
    for mark in marks:
        assert float(mark.read_text()) >= stats.wired_at


def test_slots_follow_termination_order():
    unit = 0.3
    delays = [3, 1, 2]
    commands = [_python(f"import time; time.sleep({delay * unit})") for delay in delays]
    stats = run_pipeline(commands)

    assert stats.slot_stages() == [1, 2, 0]
    assert [row.pid for row in stats.table] == [stats.pids[1], stats.pids[2], stats.pids[0]]


def test_exit_code_round_trip():
    stats = run_pipeline([["sh", "-c", "exit 42"]])
    (row,) = stats.table
    assert row.exit_code == 42
    assert row.exit_signal is None
    assert row.command == "sh"
    assert row.state == "Z"
    assert row.ppid == os.getpid()
    assert not row.ghost


def test_signal_termination_reports_name_without_exit_code():
    stats = run_pipeline([["sh", "-c", "kill -TERM $$"]])
    (row,) = stats.table
    assert row.exit_code is None
    assert row.exit_signal == signal.strsignal(signal.SIGTERM)
    assert "(EXSIG)" in report_lines(stats.table)[0]


def test_too_many_commands_spawn_nothing(fork_counter):
    with pytest.raises(InputShapeError):
        run_pipeline([["true"]] * 6)
    assert fork_counter == []


def test_missing_program_is_a_hidden_ghost(capfd):
    stats = run_pipeline([["pipestat-no-such-program-xyz"], ["false"]])
    captured = capfd.readouterr()

    assert "pipestat-no-such-program-xyz" in captured.err
    ghosts = stats.ghosts
    assert len(ghosts) == 1 and ghosts[0].stage == 0
    assert ghosts[0].exit_code == 1

    # a real exit status of 1 is not mistaken for a ghost
    lines = report_lines(stats.table)
    assert len(lines) == 1
    assert "(CMD)false" in lines[0]
    assert "(EXCODE)1" in lines[0]


def test_unavailable_accounting_is_skipped_by_default(tmp_path: Path):
    config = ShellConfig(accounting=AccountingConfig(proc_root=str(tmp_path)))
    stats = PipelineRunner(config).run([["true"], ["true"]])
    assert stats.table == []
    assert sorted(stats.skipped) == sorted(stats.pids)


def test_unavailable_accounting_is_fatal_in_strict_mode(tmp_path: Path):
    config = ShellConfig(accounting=AccountingConfig(proc_root=str(tmp_path), strict=True))
    try:
        with pytest.raises(AccountingUnavailableError):
            PipelineRunner(config).run([["true"]])
    finally:
        _reap_leftovers()


def _interrupt_later(delay: float) -> int:
    """Fork a helper that sends SIGINT to this process after ``delay`` seconds."""
    target = os.getpid()
    pid = os.fork()
    if pid == 0:
        try:
            time.sleep(delay)
            os.kill(target, signal.SIGINT)
        finally:
            os._exit(0)
    return pid


def test_interrupt_during_pipeline_is_ignored_by_default():
    helper = _interrupt_later(0.2)
    try:
        stats = run_pipeline([_python("import time; time.sleep(0.6)")])
    finally:
        os.waitpid(helper, 0)
    (row,) = stats.table
    assert row.exit_code == 0
    assert row.exit_signal is None


def test_interrupt_is_forwarded_when_configured():
    config = ShellConfig(interrupt_policy="forward")
    helper = _interrupt_later(0.3)
    try:
        stats = PipelineRunner(config).run([["sleep", "5"]])
    finally:
        os.waitpid(helper, 0)
    (row,) = stats.table
    assert row.exit_signal == signal.strsignal(signal.SIGINT)


def test_interrupt_guard_restores_handler():
    previous = signal.getsignal(signal.SIGINT)
    with InterruptGuard("ignore") as guard:
        signal.raise_signal(signal.SIGINT)
    assert guard.interrupts == 1
    assert signal.getsignal(signal.SIGINT) is previous


def test_interrupt_while_forking_leaves_no_stage_behind(monkeypatch):
    real_fork = os.fork

    def interrupted_fork():
        pid = real_fork()
        if pid:
            signal.raise_signal(signal.SIGINT)
        return pid

    monkeypatch.setattr(os, "fork", interrupted_fork)
    stats = run_pipeline([["true"], ["true"]])
    assert len(stats.table) == 2
    assert all(row.exit_code == 0 for row in stats.table)


def test_upstream_writer_is_killed_by_broken_pipe():
    devnull = os.open(os.devnull, os.O_WRONLY)
    try:
        stats = run_pipeline([["yes"], ["head", "-n", "1"]], stdout_fd=devnull)
    finally:
        os.close(devnull)
    rows = {row.stage: row for row in stats.table}
    assert rows[0].command == "yes"
    assert rows[0].exit_code is None
    assert rows[0].exit_signal == signal.strsignal(signal.SIGPIPE)
    assert rows[1].exit_code == 0


def test_other_children_keep_their_exit_status():
    proc = subprocess.Popen(["sh", "-c", "exit 3"])
    try:
        stats = run_pipeline([["sleep", "0.5"]])
    finally:
        returncode = proc.wait(timeout=5)
    assert returncode == 3
    assert proc.pid not in stats.pids
    (row,) = stats.table
    assert row.command == "sleep"
    assert row.exit_code == 0


def test_stages_share_the_first_stage_process_group(tmp_path: Path):
    marks = [tmp_path / f"pgid{index}" for index in range(3)]
    code = "import os, sys; open(sys.argv[1], 'w').write(str(os.getpgrp()))"
    stats = run_pipeline([_python(code, str(mark)) for mark in marks])

    groups = {int(mark.read_text()) for mark in marks}
    assert groups == {stats.pids[0]}
    assert stats.pids[0] != os.getpgrp()


def test_foreground_handoff_is_a_no_op_without_a_terminal():
    read_fd, write_fd = os.pipe()
    try:
        with ForegroundGroup(os.getpgrp(), fds=(read_fd, write_fd)) as foreground:
            assert foreground._fd is None
    finally:
        os.close(read_fd)
        os.close(write_fd)
