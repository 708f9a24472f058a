"""Configuration dataclasses and helpers for the pipeline shell."""

from __future__ import annotations

import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Literal

import yaml

INTERRUPT_POLICIES = ("ignore", "forward")
REPORT_STYLES = ("plain", "table")


@dataclass
class BarrierConfig:
    release_signal: str = "SIGUSR1"

    @property
    def signum(self) -> signal.Signals:
        try:
            return signal.Signals[self.release_signal.upper()]
        except KeyError:
            raise ValueError(f"Unknown release signal: {self.release_signal}") from None


@dataclass
class AccountingConfig:
    proc_root: str = "/proc"
    strict: bool = False

    @property
    def root(self) -> Path:
        return Path(self.proc_root)


@dataclass
class ReportConfig:
    style: Literal["plain", "table"] = "plain"


@dataclass
class ShellConfig:
    max_commands: int = 5
    prompt: str = "\n## pipestat [{pid}] ##\t"
    log_level: str = "WARNING"
    interrupt_policy: Literal["ignore", "forward"] = "ignore"
    barrier: BarrierConfig = field(default_factory=BarrierConfig)
    accounting: AccountingConfig = field(default_factory=AccountingConfig)
    report: ReportConfig = field(default_factory=ReportConfig)

    def validate(self) -> None:
        if not isinstance(self.max_commands, int) or self.max_commands < 1:
            raise ValueError(f"max_commands must be positive, got {self.max_commands}")
        if self.interrupt_policy not in INTERRUPT_POLICIES:
            raise ValueError(f"Unsupported interrupt policy: {self.interrupt_policy}")
        if self.report.style not in REPORT_STYLES:
            raise ValueError(f"Unsupported report style: {self.report.style}")
        # raises on unknown names
        self.barrier.signum


def _load_section(data: Dict[str, Any], section_key: str, target_type: Any) -> Any:
    section = data.get(section_key) or {}
    try:
        return target_type(**section)
    except TypeError as exc:
        raise ValueError(f"Invalid '{section_key}' section: {exc}") from exc


def load_shell_config(path: str | Path) -> ShellConfig:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        try:
            raw: Dict[str, Any] = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Malformed config file {config_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"Config file {config_path} must hold a mapping")

    config = ShellConfig(
        max_commands=raw.get("max_commands", ShellConfig.max_commands),
        prompt=raw.get("prompt", ShellConfig.prompt),
        log_level=raw.get("log_level", ShellConfig.log_level),
        interrupt_policy=raw.get("interrupt_policy", ShellConfig.interrupt_policy),
        barrier=_load_section(raw, "barrier", BarrierConfig),
        accounting=_load_section(raw, "accounting", AccountingConfig),
        report=_load_section(raw, "report", ReportConfig),
    )
    config.validate()
    return config
