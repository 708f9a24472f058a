import pytest

from pipestat.accounting import ProcessStats
from pipestat.evaluation import benchmark_pipeline, results_to_frame, summarize
from pipestat.pipelines.base import PipelineRunStats


def _run(user_seconds, ghost=False):
    rows = [
        ProcessStats(
            pid=100,
            command="cat",
            state="Z",
            ppid=1,
            user_seconds=user_seconds,
            system_seconds=0.0,
            voluntary_ctxt_switches=4,
            nonvoluntary_ctxt_switches=0,
            exit_code=0,
            stage=0,
        ),
        ProcessStats(
            pid=101,
            command="nope",
            state="Z",
            ppid=1,
            user_seconds=0.0,
            system_seconds=0.0,
            voluntary_ctxt_switches=0,
            nonvoluntary_ctxt_switches=0,
            exit_code=1,
            stage=1,
            ghost=ghost,
        ),
    ]
    return PipelineRunStats(
        commands=[["cat"], ["nope"]],
        pids=[100, 101],
        table=rows,
        pipes_allocated=1,
        wired_at=0.0,
        duration_seconds=0.1,
    )


def test_results_to_frame_has_one_row_per_slot():
    frame = results_to_frame([_run(0.2), _run(0.4)])
    assert len(frame) == 4
    assert list(frame["run"]) == [0, 0, 1, 1]
    assert list(frame["slot"]) == [0, 1, 0, 1]


def test_summarize_averages_per_stage_and_drops_ghosts():
    summary = summarize(results_to_frame([_run(0.2, ghost=True), _run(0.4, ghost=True)]))
    assert list(summary["command"]) == ["cat"]
    assert summary.loc[0, "user_seconds"] == pytest.approx(0.3)
    assert summary.loc[0, "runs"] == 2


def test_summarize_empty_frame():
    assert summarize(results_to_frame([])).empty


def test_repeat_must_be_positive():
    with pytest.raises(ValueError):
        benchmark_pipeline([["true"]], repeat=0)
