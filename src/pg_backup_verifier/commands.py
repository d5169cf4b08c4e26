from __future__ import annotations

import logging
import shlex
import subprocess

from .models import CommandResult

DEFAULT_COMMAND_TIMEOUT_SECONDS = 300

logger = logging.getLogger(__name__)


class CommandExecutionError(RuntimeError):
    def __init__(self, message: str, *, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result


class CommandRunner:
    """Run shell-style command lines without a local shell.

    Command lines are tokenized with POSIX rules, so quoting in the line is
    honored but variables and backticks are passed through literally.
    """

    def __init__(self, *, timeout_seconds: int = DEFAULT_COMMAND_TIMEOUT_SECONDS) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.timeout_seconds = timeout_seconds

    def run(self, command: str) -> CommandResult:
        result, error = self.run_unchecked(command)
        if error is not None:
            raise error
        return result

    def run_unchecked(self, command: str) -> tuple[CommandResult, CommandExecutionError | None]:
        logger.debug("Running command: %s", command)
        try:
            argv = shlex.split(command)
        except ValueError as error:
            result = CommandResult(command=command, stdout="", stderr="", returncode=-1)
            return result, CommandExecutionError(f"unable to parse command {command!r}: {error}", result=result)
        if not argv:
            result = CommandResult(command=command, stdout="", stderr="", returncode=-1)
            return result, CommandExecutionError("command line is empty", result=result)

        try:
            completed = subprocess.run(
                argv,
                check=False,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except (OSError, subprocess.TimeoutExpired) as error:
            result = CommandResult(command=command, stdout="", stderr="", returncode=-1)
            failure = CommandExecutionError(f"command {argv[0]!r} could not be executed: {error}", result=result)
            failure.__cause__ = error
            return result, failure

        result = CommandResult(
            command=command,
            stdout=completed.stdout,
            stderr=completed.stderr,
            returncode=completed.returncode,
        )
        if completed.returncode != 0:
            stderr = completed.stderr.strip() or completed.stdout.strip() or "<empty>"
            return result, CommandExecutionError(
                f"command exited with code {completed.returncode}: {command}\nstderr:\n{stderr}",
                result=result,
            )
        return result, None
