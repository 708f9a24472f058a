"""Typer CLI entrypoints."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .commands import parse_command_line
from .config import ShellConfig, load_shell_config
from .errors import AccountingUnavailableError, CommandLineError, PipelineBuildError
from .evaluation import benchmark_pipeline, results_to_frame, summarize
from .logging_utils import get_logger, set_global_log_level
from .pipelines.runner import PipelineRunner
from .reporter import Reporter
from .shell import ShellSession

app = typer.Typer(add_completion=False, help="Run piped command lines and report per-process statistics")
console = Console()
logger = get_logger("CLI")

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to YAML config")


def _load_config(config_path: Optional[Path]) -> ShellConfig:
    try:
        config = load_shell_config(config_path) if config_path else ShellConfig()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        raise typer.Exit(code=2)
    set_global_log_level(config.log_level)
    return config


def _parse_or_exit(line: str, config: ShellConfig):
    try:
        commands = parse_command_line(line, config.max_commands)
    except CommandLineError as exc:
        console.print(f"pipestat: {exc}", markup=False, highlight=False)
        raise typer.Exit(code=1)
    if not commands:
        console.print("pipestat: nothing to run", markup=False, highlight=False)
        raise typer.Exit(code=1)
    return commands


@app.command()
def shell(config_path: Optional[Path] = CONFIG_OPTION) -> None:
    """Start the interactive prompt."""
    config = _load_config(config_path)
    session = ShellSession(config, console=console)
    try:
        code = session.run()
    except AccountingUnavailableError as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1)
    raise typer.Exit(code=code)


@app.command()
def run(
    line: str = typer.Argument(..., help='Command line, e.g. "ls -l | wc -l"'),
    config_path: Optional[Path] = CONFIG_OPTION,
    table: bool = typer.Option(False, "--table", help="Render statistics as a table"),
    timings: bool = typer.Option(False, "--timings", help="Print build/release/collect timings"),
) -> None:
    """Run a single command line and print its statistics."""
    config = _load_config(config_path)
    commands = _parse_or_exit(line, config)
    try:
        stats = PipelineRunner(config).run(commands)
    except (PipelineBuildError, AccountingUnavailableError) as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1)
    reporter = Reporter(console, style="table" if table else config.report.style)
    reporter.render(stats)
    if timings:
        reporter.render_timings(stats)


@app.command()
def bench(
    line: str = typer.Argument(..., help="Command line to run repeatedly"),
    repeat: int = typer.Option(3, "--repeat", "-n", min=1, help="Number of runs"),
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Run a command line several times and summarise per-stage accounting."""
    config = _load_config(config_path)
    commands = _parse_or_exit(line, config)
    devnull = os.open(os.devnull, os.O_WRONLY)
    try:
        results = benchmark_pipeline(commands, config, repeat=repeat, stdout_fd=devnull)
    except (PipelineBuildError, AccountingUnavailableError) as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1)
    finally:
        os.close(devnull)

    summary = summarize(results_to_frame(results))
    output = Table(title=f"Pipeline Benchmark ({repeat} runs)", show_lines=False)
    for column in summary.columns:
        output.add_column(column)
    for _, row in summary.iterrows():
        output.add_row(
            *(f"{row[col]:.2f}" if isinstance(row[col], float) else str(row[col]) for col in summary.columns)
        )
    console.print(output)


def run_cli() -> None:
    app()


if __name__ == "__main__":
    run_cli()
