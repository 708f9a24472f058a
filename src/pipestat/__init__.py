"""Pipeline execution engine with per-process /proc accounting."""

from .accounting import ProcessStats, parse_context_switches, parse_stat_line
from .commands import parse_command_line
from .config import (
    AccountingConfig,
    BarrierConfig,
    ReportConfig,
    ShellConfig,
    load_shell_config,
)
from .pipelines.base import PipelineRunStats
from .pipelines.runner import PipelineRunner, run_pipeline
from .cli import app

__all__ = [
    "AccountingConfig",
    "BarrierConfig",
    "ReportConfig",
    "ShellConfig",
    "load_shell_config",
    "ProcessStats",
    "parse_stat_line",
    "parse_context_switches",
    "parse_command_line",
    "PipelineRunStats",
    "PipelineRunner",
    "run_pipeline",
    "app",
]
