# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Safe, cancellable wrappers around ``subprocess`` execution."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import signal

# Bandit: subprocess usage is intentional. Commands are argument lists built from
# validated catalog data and never pass through a shell.
import subprocess  # nosec B404
import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from subprocess import CompletedProcess
from typing import Final, Protocol

LOGGER = logging.getLogger(__name__)

_POLL_INTERVAL: Final[float] = 0.2


class CancellationToken:
    """Cooperative cancellation flag shared by concurrent workers."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None
        self._lock = threading.Lock()

    def cancel(self, reason: str) -> None:
        """Request cancellation, keeping the first ``reason`` supplied.

        Args:
            reason: Description of why outstanding work should stop.
        """

        with self._lock:
            if self._reason is None:
                self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Return ``True`` once cancellation has been requested."""

        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """Return the reason passed to the first :meth:`cancel` call."""

        return self._reason


@dataclass(slots=True)
class CommandOptions:
    """Command execution options."""

    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    timeout: float | None = None
    cancel: CancellationToken | None = field(default=None, repr=False)


class CommandTimeoutError(RuntimeError):
    """Raised when a subprocess exceeds its configured timeout."""

    def __init__(self, command: Sequence[str], timeout: float, output: str) -> None:
        super().__init__(f"Command '{command[0]}' timed out after {timeout:.1f}s")
        self.command = tuple(command)
        self.timeout = timeout
        self.output = output


class CommandCancelledError(RuntimeError):
    """Raised when a subprocess is killed because cancellation was requested."""

    def __init__(self, command: Sequence[str], output: str) -> None:
        super().__init__(f"Command '{command[0]}' was cancelled")
        self.command = tuple(command)
        self.output = output


class CommandRunner(Protocol):
    """Callable protocol for invoking external commands."""

    def __call__(
        self,
        cmd: Sequence[str],
        *,
        options: CommandOptions | None = None,
    ) -> CompletedProcess[str]:
        """Execute ``cmd`` returning a completed subprocess.

        Args:
            cmd: Command to execute including executable and arguments.
            options: Optional command execution configuration.

        Returns:
            CompletedProcess[str]: Completed subprocess with merged output in ``stdout``.
        """


def _normalize_args(args: Sequence[str]) -> list[str]:
    """Normalise the subprocess argument sequence.

    Args:
        args: Raw command arguments supplied by the caller.

    Returns:
        list[str]: Validated argument list suitable for subprocess execution.

    Raises:
        ValueError: If no arguments are provided.
        FileNotFoundError: If the executable cannot be resolved on ``PATH``.
    """

    if not args:
        msg = "subprocess command requires at least one argument"
        raise ValueError(msg)

    head, *rest = args
    head_path = Path(head)
    if head_path.is_absolute() or head.startswith("./"):
        return [str(head), *rest]

    resolved = shutil.which(head)
    if resolved is None:
        msg = f"Executable '{head}' was not found on PATH"
        raise FileNotFoundError(msg)
    return [resolved, *rest]


def _terminate(process: subprocess.Popen[str]) -> str:
    """Kill ``process`` and its process group, returning any captured output."""

    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        process.kill()
    stdout, _ = process.communicate()
    return stdout or ""


def run_command(args: Sequence[str], *, options: CommandOptions | None = None) -> CompletedProcess[str]:
    """Execute ``args`` with stdout and stderr merged into one captured stream.

    The child runs in its own session so that timeouts and cancellation can kill
    every process a build tool spawns.

    Args:
        args: Command and argument sequence to execute.
        options: Execution options; defaults to :class:`CommandOptions`.

    Returns:
        CompletedProcess[str]: Completed process with the merged output in ``stdout``.

    Raises:
        FileNotFoundError: If the executable cannot be resolved on ``PATH``.
        CommandTimeoutError: When the command exceeds ``options.timeout``.
        CommandCancelledError: When ``options.cancel`` is triggered while running.
    """

    resolved_options = options or CommandOptions()
    normalized = _normalize_args(args)
    LOGGER.debug("running %s (cwd=%s)", shlex.join(normalized), resolved_options.cwd)

    cancel = resolved_options.cancel
    if cancel is not None and cancel.cancelled:
        raise CommandCancelledError(normalized, "")

    # Bandit: arguments are passed as a list without shell expansion.
    process = subprocess.Popen(  # nosec B603
        normalized,
        cwd=str(resolved_options.cwd) if resolved_options.cwd is not None else None,
        env=dict(resolved_options.env) if resolved_options.env is not None else None,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        errors="replace",
        start_new_session=True,
    )
    timeout = resolved_options.timeout
    deadline = None if timeout is None else time.monotonic() + timeout
    while True:
        wait = _POLL_INTERVAL
        if deadline is not None:
            wait = max(0.0, min(wait, deadline - time.monotonic()))
        try:
            stdout, _ = process.communicate(timeout=wait)
            break
        except subprocess.TimeoutExpired:
            if cancel is not None and cancel.cancelled:
                raise CommandCancelledError(normalized, _terminate(process)) from None
            if deadline is not None and timeout is not None and time.monotonic() >= deadline:
                raise CommandTimeoutError(normalized, timeout, _terminate(process)) from None

    completed: CompletedProcess[str] = CompletedProcess(
        args=normalized,
        returncode=process.returncode,
        stdout=stdout or "",
        stderr=None,
    )
    return completed


__all__ = [
    "CancellationToken",
    "CommandCancelledError",
    "CommandOptions",
    "CommandRunner",
    "CommandTimeoutError",
    "run_command",
]
