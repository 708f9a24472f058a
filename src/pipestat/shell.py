"""Interactive prompt loop around the pipeline runner."""

from __future__ import annotations

import os
from typing import Callable, List, Optional

from rich.console import Console

from .commands import is_exit, parse_command_line
from .config import ShellConfig
from .errors import CommandLineError, PipelineBuildError
from .logging_utils import get_logger
from .pipelines.base import PipelineRunStats
from .pipelines.runner import PipelineRunner
from .reporter import Reporter

EXIT_ARGUMENTS_MESSAGE = '"exit" with other arguments!!!'


class ShellSession:
    """Read a command line, run it, report it, until ``exit`` or end of input.

    A Ctrl-C while waiting for input discards the partial line and prompts
    again. Errors in one line never end the session, except an accounting
    failure in strict mode, which propagates to the caller.
    """

    def __init__(
        self,
        config: Optional[ShellConfig] = None,
        console: Optional[Console] = None,
        read_line: Callable[[str], str] = input,
    ):
        self.config = config or ShellConfig()
        self.console = console or Console()
        self.read_line = read_line
        self.runner = PipelineRunner(self.config)
        self.reporter = Reporter(self.console, style=self.config.report.style)
        self.logger = get_logger("ShellSession")
        self.history: List[PipelineRunStats] = []

    @property
    def prompt(self) -> str:
        return self.config.prompt.format(pid=os.getpid())

    def _say(self, message: str) -> None:
        self.console.print(f"pipestat: {message}", markup=False, highlight=False)

    def handle_line(self, line: str) -> bool:
        """Process one line; return False when the session should end."""
        try:
            commands = parse_command_line(line, self.config.max_commands)
        except CommandLineError as exc:
            self._say(str(exc))
            return True
        if not commands:
            return True

        if is_exit(commands):
            if len(commands) == 1 and len(commands[0]) == 1:
                self._say("Terminated")
                return False
            self._say(EXIT_ARGUMENTS_MESSAGE)
            return True

        try:
            stats = self.runner.run(commands)
        except PipelineBuildError as exc:
            self.logger.error("Pipeline aborted: %s", exc)
            return True
        self.history.append(stats)
        if stats.table:
            self.reporter.render(stats)
        return True

    def run(self) -> int:
        while True:
            try:
                line = self.read_line(self.prompt)
            except KeyboardInterrupt:
                # cancel only the pending read
                self.console.print()
                continue
            except EOFError:
                self.console.print()
                return 0
            if not self.handle_line(line):
                return 0
