"""Command runner for executing shell commands.

This module provides the base command execution functionality used by
the kubectl command module and the orchestrator's script steps.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path

from loguru import logger

from ..errors import CommandError
from .types import CommandResult

# Return code reported for commands that could not be started at all
NOT_STARTED = -1


class CommandRunner:
    """Low-level command executor with consistent result handling.

    Every call is synchronous: the runner waits for the process to exit
    before returning. A command that cannot be started (missing binary,
    bad working directory) is reported as a failed ``CommandResult`` rather
    than an exception, so callers decide which failures are fatal.
    """

    def __init__(self, project_root: Path) -> None:
        """Initialize the command runner.

        Args:
            project_root: Path to the deploy tree root.
                         Commands will be executed from this directory by default.
        """
        self.project_root = project_root

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path | None = None,
        capture_output: bool = True,
    ) -> CommandResult:
        """Execute a command and return structured result.

        Args:
            cmd: Command and arguments as a sequence
            cwd: Working directory (defaults to project_root)
            capture_output: Whether to capture stdout/stderr

        Returns:
            CommandResult with success status, output, and return code
        """
        workdir = cwd or self.project_root
        logger.debug(f"Running command: {' '.join(cmd)} (cwd={workdir})")
        try:
            result = subprocess.run(
                list(cmd),
                cwd=workdir,
                capture_output=capture_output,
                text=True,
                check=False,
            )
        except OSError as exc:
            logger.debug(f"Command could not be started: {exc}")
            return CommandResult(
                success=False, stderr=str(exc), returncode=NOT_STARTED
            )

        logger.debug(f"Command exited with {result.returncode}")
        return CommandResult(
            success=result.returncode == 0,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            returncode=result.returncode,
        )

    def run_streaming(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path | None = None,
        on_output: Callable[[str], None] | None = None,
    ) -> CommandResult:
        """Execute a command with real-time output streaming.

        Runs a command and calls the on_output callback for each line of
        output until the process exits.

        Args:
            cmd: Command and arguments as a sequence
            cwd: Working directory (defaults to project_root)
            on_output: Callback function called with each line of output.
                      If None, output is collected but not streamed.

        Returns:
            CommandResult with success status, collected output, and return code
        """
        env = os.environ.copy()
        env["PYTHONUNBUFFERED"] = "1"

        logger.debug(f"Streaming command: {' '.join(cmd)}")
        try:
            process = subprocess.Popen(
                list(cmd),
                cwd=cwd or self.project_root,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,  # Merge stderr into stdout
                text=True,
                bufsize=1,
                env=env,
            )
        except OSError as exc:
            return CommandResult(
                success=False, stderr=str(exc), returncode=NOT_STARTED
            )

        stdout_lines: list[str] = []

        if process.stdout:
            for line in iter(process.stdout.readline, ""):
                line = line.rstrip("\n")
                if line:
                    stdout_lines.append(line)
                    if on_output:
                        on_output(line)

        process.wait()

        return CommandResult(
            success=process.returncode == 0,
            stdout="\n".join(stdout_lines),
            stderr="",  # stderr is merged into stdout
            returncode=process.returncode or 0,
        )

    def run_checked(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path | None = None,
    ) -> CommandResult:
        """Execute a command, raising on failure.

        Args:
            cmd: Command and arguments
            cwd: Working directory (defaults to project_root)

        Returns:
            The successful CommandResult

        Raises:
            CommandError: If the command fails to start or exits non-zero
        """
        result = self.run(cmd, cwd=cwd)
        if not result.success:
            raise CommandError(cmd, result)
        return result
