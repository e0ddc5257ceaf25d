"""Build runner for executing compile and install commands.

This module handles:
- Executing commands with subprocess in their own process group
- Capturing combined stdout/stderr to a log file
- Enforcing wall-clock timeouts (the whole process group is killed)
- The compile step: primary command with one fallback attempt
"""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from sitedeploy.errors import BuildError, BuildTimeoutError

logger = logging.getLogger(__name__)

# Characters of output kept in error messages
OUTPUT_TAIL_CHARS = 4000


@dataclass
class CommandResult:
    """Result of a single command execution.

    Attributes:
        command: The command that was executed.
        exit_code: Process exit code.
        output: Combined stdout/stderr.
        started_at: Start time.
        finished_at: Finish time.
    """

    command: str
    exit_code: int
    output: str
    started_at: datetime
    finished_at: datetime

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


@dataclass
class BuildResult:
    """Result of the compile step.

    Attributes:
        command: The command that produced the output.
        used_fallback: Whether the fallback command was needed.
        attempts: Every command run, in order.
    """

    command: str
    used_fallback: bool
    attempts: list[CommandResult]


def output_tail(output: str, limit: int = OUTPUT_TAIL_CHARS) -> str:
    """Return the last ``limit`` characters of command output."""
    output = output.strip()
    if len(output) <= limit:
        return output
    return "..." + output[-limit:]


def _kill_process_group(proc: subprocess.Popen[bytes]) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except OSError:
        proc.kill()


def run_command(
    command: str | list[str],
    cwd: Path,
    log_path: Path,
    timeout: float | None = None,
    env_override: dict[str, str] | None = None,
) -> CommandResult:
    """Run a command, appending its combined output to a log file.

    Args:
        command: Command line (split with shlex) or argument list.
        cwd: Working directory.
        log_path: Log file to append to.
        timeout: Wall-clock timeout in seconds (None = no timeout).
        env_override: Optional environment variable overrides.

    Returns:
        CommandResult with exit code and output.

    Raises:
        BuildTimeoutError: If the command exceeds the timeout.
        BuildError: If the command cannot be started.
    """
    argv = shlex.split(command) if isinstance(command, str) else list(command)
    if not argv:
        raise BuildError("Empty command", code="execution_error")
    cmd_str = shlex.join(argv)

    env: dict[str, str] | None = None
    if env_override:
        env = dict(os.environ)
        env.update(env_override)

    logger.info("Executing: %s (cwd=%s)", cmd_str, cwd)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    started_at = datetime.now(timezone.utc)

    with log_path.open("a", encoding="utf-8") as log_file:
        log_file.write(f"# Command: {cmd_str}\n")
        log_file.write(f"# Started: {started_at.isoformat()}\n")
        log_file.write(f"# CWD: {cwd}\n")
        log_file.write("# " + "=" * 70 + "\n")
        log_file.flush()

        try:
            proc = subprocess.Popen(
                argv,
                cwd=cwd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=env,
                start_new_session=True,
            )
        except OSError as e:
            message = f"Failed to execute {cmd_str}: {e}"
            log_file.write(f"# {message}\n")
            raise BuildError(
                message, code="execution_error", log_path=str(log_path)
            ) from e

        try:
            raw_output, _ = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            _kill_process_group(proc)
            raw_output, _ = proc.communicate()
            output = raw_output.decode("utf-8", errors="replace")
            log_file.write(output)
            log_file.write(f"\n# TIMEOUT after {timeout} seconds\n")
            message = f"Build timed out after {timeout} seconds: {cmd_str}"
            logger.error("%s. See log: %s", message, log_path)
            tail = output_tail(output)
            raise BuildTimeoutError(
                f"{message}\n{tail}" if tail else message,
                log_path=str(log_path),
            ) from e

        output = raw_output.decode("utf-8", errors="replace")
        finished_at = datetime.now(timezone.utc)
        log_file.write(output)
        log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
        log_file.write(f"# Exit code: {proc.returncode}\n")
        result = CommandResult(
            command=cmd_str,
            exit_code=proc.returncode,
            output=output,
            started_at=started_at,
            finished_at=finished_at,
        )
        log_file.write(f"# Duration: {result.duration:.1f}s\n\n")

    if not result.success:
        logger.warning("%s exited with %d. See log: %s", cmd_str, result.exit_code, log_path)

    return result


def run_build(
    source_dir: Path,
    log_path: Path,
    build_command: str,
    fallback_command: str | None = None,
    timeout: float | None = None,
) -> BuildResult:
    """Compile a staged tree, trying one fallback command on failure.

    A timeout is not retried with the fallback; it fails the build directly.

    Args:
        source_dir: Staged source tree.
        log_path: Build log file.
        build_command: Primary command.
        fallback_command: Command tried once if the primary fails.
        timeout: Wall-clock timeout per command in seconds.

    Returns:
        BuildResult describing the successful command.

    Raises:
        BuildTimeoutError: If a command exceeds the timeout.
        BuildError: If every command fails.
    """
    attempts: list[CommandResult] = []

    primary = run_command(build_command, source_dir, log_path, timeout=timeout)
    attempts.append(primary)
    if primary.success:
        return BuildResult(command=primary.command, used_fallback=False, attempts=attempts)

    if fallback_command:
        logger.info("Primary build failed, trying fallback: %s", fallback_command)
        fallback = run_command(fallback_command, source_dir, log_path, timeout=timeout)
        attempts.append(fallback)
        if fallback.success:
            return BuildResult(
                command=fallback.command, used_fallback=True, attempts=attempts
            )

    last = attempts[-1]
    message = f"Build failed with exit code {last.exit_code}: {last.command}"
    tail = output_tail(last.output)
    logger.error("%s. See log: %s", message, log_path)
    raise BuildError(
        f"{message}\n{tail}" if tail else message,
        code="build_failed",
        log_path=str(log_path),
    )


__all__ = [
    "OUTPUT_TAIL_CHARS",
    "BuildResult",
    "CommandResult",
    "output_tail",
    "run_build",
    "run_command",
]
