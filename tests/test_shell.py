import io
import os
from pathlib import Path

import pytest
from rich.console import Console

from pipestat.shell import EXIT_ARGUMENTS_MESSAGE, ShellSession

needs_processes = pytest.mark.skipif(
    not (hasattr(os, "fork") and Path("/proc/self/stat").exists()),
    reason="requires os.fork and procfs",
)


def _scripted(*events):
    queue = list(events)
    prompts = []

    def read_line(prompt):
        prompts.append(prompt)
        if not queue:
            raise EOFError
        event = queue.pop(0)
        if isinstance(event, BaseException):
            raise event
        return event

    return read_line, prompts


def _session(*events):
    buffer = io.StringIO()
    read_line, prompts = _scripted(*events)
    session = ShellSession(console=Console(file=buffer, width=200), read_line=read_line)
    return session, buffer, prompts


def test_exit_ends_session():
    session, buffer, prompts = _session("exit")
    assert session.run() == 0
    assert "Terminated" in buffer.getvalue()
    assert str(os.getpid()) in prompts[0]


def test_exit_with_arguments_is_rejected():
    session, buffer, _ = _session("exit now", "exit")
    assert session.run() == 0
    assert EXIT_ARGUMENTS_MESSAGE in buffer.getvalue()


def test_interrupt_while_reading_discards_line_and_reprompts():
    session, buffer, prompts = _session(KeyboardInterrupt(), "exit")
    assert session.run() == 0
    assert len(prompts) == 2


def test_end_of_input_ends_session():
    session, _, prompts = _session()
    assert session.run() == 0
    assert len(prompts) == 1


def test_invalid_lines_keep_session_alive():
    session, buffer, _ = _session("ls |", "a|b|c|d|e|f", "exit")
    assert session.run() == 0
    output = buffer.getvalue()
    assert "first or last character" in output
    assert "maximum allowed number of commands is 5" in output
    assert session.history == []


@needs_processes
def test_runs_pipeline_and_reports():
    session, buffer, _ = _session("true | sh -c 'exit 3'", "exit")
    assert session.run() == 0
    (stats,) = session.history
    assert len(stats.table) == 2
    output = buffer.getvalue()
    assert "(CMD)true" in output
    assert "(EXCODE)3" in output
