# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""State and console helpers shared by every pgext command."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

import typer

from ..config import Config
from ..config_loader import load_config
from ..errors import ConfigError
from ..logging import fail as core_fail
from ..logging import info as core_info
from ..logging import ok as core_ok
from ..logging import section as core_section
from ..logging import warn as core_warn

EXIT_OK: Final[int] = 0
EXIT_FAILURES: Final[int] = 1
EXIT_CONFIG_ERROR: Final[int] = 2


class CLIError(RuntimeError):
    """Error raised when a CLI command fails and should exit with a status code."""

    def __init__(self, message: str, *, exit_code: int = EXIT_FAILURES) -> None:
        """Initialise the error with a message and exit code.

        Args:
            message: Human-readable error message shown to the user.
            exit_code: Exit status associated with the failure.
        """

        super().__init__(message)
        self.exit_code = exit_code


@dataclass(slots=True)
class CLILogger:
    """Adapter around project logging helpers respecting CLI display settings."""

    use_emoji: bool
    use_color: bool

    def section(self, title: str) -> None:
        core_section(title, use_color=self.use_color)

    def info(self, message: str) -> None:
        core_info(message, use_emoji=self.use_emoji, use_color=self.use_color)

    def ok(self, message: str) -> None:
        core_ok(message, use_emoji=self.use_emoji, use_color=self.use_color)

    def warn(self, message: str) -> None:
        core_warn(message, use_emoji=self.use_emoji, use_color=self.use_color)

    def fail(self, message: str) -> None:
        core_fail(message, use_emoji=self.use_emoji, use_color=self.use_color)

    def echo(self, message: str) -> None:
        """Print ``message`` verbatim, without styling."""

        typer.echo(message)


@dataclass(slots=True)
class CLIState:
    """Global options captured by the root callback."""

    root: Path
    config_path: Path | None = None
    verbose: bool = False
    color: bool = True
    emoji: bool = True
    _config: Config | None = field(default=None, repr=False)

    @property
    def logger(self) -> CLILogger:
        return CLILogger(use_emoji=self.emoji, use_color=self.color)

    def config(self) -> Config:
        """Return the layered configuration, loading it on first use.

        Raises:
            CLIError: With exit code 2 when the configuration is invalid.
        """

        if self._config is None:
            try:
                self._config = load_config(self.root, config_path=self.config_path, env=os.environ)
            except ConfigError as exc:
                raise CLIError(exc.describe(), exit_code=EXIT_CONFIG_ERROR) from exc
        return self._config


def get_state(ctx: typer.Context) -> CLIState:
    """Return the :class:`CLIState` stored by the root callback."""

    state = ctx.find_object(CLIState)
    if state is None:
        state = CLIState(root=Path.cwd())
        ctx.obj = state
    return state


def exit_with(error: CLIError, logger: CLILogger) -> typer.Exit:
    """Report ``error`` and return the matching :class:`typer.Exit`."""

    for line in str(error).splitlines():
        logger.fail(line)
    return typer.Exit(code=error.exit_code)


__all__ = [
    "CLIError",
    "CLILogger",
    "CLIState",
    "EXIT_CONFIG_ERROR",
    "EXIT_FAILURES",
    "EXIT_OK",
    "exit_with",
    "get_state",
]
