"""Tests for builds/runner.py module.

Commands are small Python snippets run with the current interpreter.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from sitedeploy.builds.runner import output_tail, run_build, run_command
from sitedeploy.errors import BuildError, BuildTimeoutError

from helpers import FAILING_SCRIPT, python_command


class TestOutputTail:
    """Tests for output_tail."""

    def test_short_output_unchanged(self) -> None:
        """Output under the limit should be returned stripped."""
        assert output_tail("  hello \n") == "hello"

    def test_long_output_truncated(self) -> None:
        """Only the last characters should be kept."""
        result = output_tail("a" * 50 + "END", limit=3)
        assert result == "...END"


class TestRunCommand:
    """Tests for run_command."""

    def test_success_appends_log(self, tmp_path: Path) -> None:
        """Output should be captured and appended to the log."""
        log = tmp_path / "build.log"
        log.write_text("previous\n")

        result = run_command(python_command("print('hello')"), tmp_path, log)

        assert result.success
        assert result.exit_code == 0
        assert "hello" in result.output
        assert result.duration >= 0
        content = log.read_text()
        assert content.startswith("previous\n")
        assert "hello" in content
        assert "# Exit code: 0" in content
        assert f"# Duration: {result.duration:.1f}s" in content

    def test_stderr_is_combined(self, tmp_path: Path) -> None:
        """stderr should be captured with stdout."""
        script = "import sys\nsys.stderr.write('oops\\n')"
        result = run_command(python_command(script), tmp_path, tmp_path / "log")
        assert "oops" in result.output

    def test_nonzero_exit(self, tmp_path: Path) -> None:
        """A failing command should return its exit code."""
        result = run_command(python_command(FAILING_SCRIPT), tmp_path, tmp_path / "log")
        assert not result.success
        assert result.exit_code == 3

    def test_timeout_kills_process(self, tmp_path: Path) -> None:
        """Exceeding the timeout should raise BuildTimeoutError."""
        log = tmp_path / "log"
        with pytest.raises(BuildTimeoutError) as exc_info:
            run_command(
                python_command("import time\ntime.sleep(30)"), tmp_path, log, timeout=0.5
            )
        assert exc_info.value.code == "build_timeout"
        assert exc_info.value.log_path == str(log)
        assert "TIMEOUT" in log.read_text()

    def test_missing_executable(self, tmp_path: Path) -> None:
        """An unknown executable should raise BuildError."""
        with pytest.raises(BuildError) as exc_info:
            run_command("definitely-not-a-real-binary-xyz", tmp_path, tmp_path / "log")
        assert exc_info.value.code == "execution_error"

    def test_env_override(self, tmp_path: Path) -> None:
        """Environment overrides should reach the command."""
        script = "import os\nprint(os.environ['SITEDEPLOY_TEST_VAR'])"
        result = run_command(
            python_command(script),
            tmp_path,
            tmp_path / "log",
            env_override={"SITEDEPLOY_TEST_VAR": "marker-42"},
        )
        assert "marker-42" in result.output


class TestRunBuild:
    """Tests for run_build."""

    def test_primary_success(self, tmp_path: Path) -> None:
        """A successful primary command should not use the fallback."""
        result = run_build(
            tmp_path,
            tmp_path / "log",
            build_command=python_command("print('ok')"),
            fallback_command=python_command("raise SystemExit(9)"),
        )
        assert result.used_fallback is False
        assert len(result.attempts) == 1

    def test_fallback_used_once(self, tmp_path: Path) -> None:
        """A failing primary command should trigger one fallback attempt."""
        result = run_build(
            tmp_path,
            tmp_path / "log",
            build_command=python_command(FAILING_SCRIPT),
            fallback_command=python_command("print('fallback ok')"),
        )
        assert result.used_fallback is True
        assert [a.exit_code for a in result.attempts] == [3, 0]

    def test_both_fail(self, tmp_path: Path) -> None:
        """When every command fails the error should carry the output tail."""
        with pytest.raises(BuildError) as exc_info:
            run_build(
                tmp_path,
                tmp_path / "log",
                build_command=python_command(FAILING_SCRIPT),
                fallback_command=python_command(FAILING_SCRIPT),
            )
        assert exc_info.value.code == "build_failed"
        assert "compile error: boom" in str(exc_info.value)
        assert "exit code 3" in str(exc_info.value)

    def test_timeout_skips_fallback(self, tmp_path: Path) -> None:
        """A timed-out primary command should not be retried."""
        with patch(
            "sitedeploy.builds.runner.run_command",
            side_effect=BuildTimeoutError("Build timed out"),
        ) as mock_run:
            with pytest.raises(BuildTimeoutError):
                run_build(
                    tmp_path,
                    tmp_path / "log",
                    build_command="build",
                    fallback_command="fallback",
                    timeout=1,
                )
        assert mock_run.call_count == 1
