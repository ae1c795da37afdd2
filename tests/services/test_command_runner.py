import subprocess
import sys
import time

import pytest

from rkeupgrader.errors import UpgraderError
from rkeupgrader.services.command_runner import CommandRunner


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None

    def error(self, *_args, **_kwargs):
        return None


def test_command_runner_raises_with_stderr():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(UpgraderError, match="boom"):
        runner.run(
            [sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(1)"],
            check=True,
            capture_output=True,
        )


def test_command_runner_returns_when_check_disabled():
    runner = CommandRunner(logger=DummyLogger())

    result = runner.run(
        [sys.executable, "-c", "import sys; sys.exit(1)"],
        check=False,
        capture_output=True,
    )

    assert result.returncode == 1


def test_command_runner_timeout_raises_error():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(UpgraderError, match="timed out"):
        runner.run(
            [sys.executable, "-c", "import time; time.sleep(2)"],
            check=True,
            capture_output=True,
            timeout=0.1,
        )


def test_command_runner_reports_missing_binary():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(UpgraderError, match="Required command not found"):
        runner.run(["rkeupgrader-definitely-missing-binary"], capture_output=True)


def test_run_logged_tees_output_and_keeps_exit_code(tmp_path):
    runner = CommandRunner(logger=DummyLogger())
    log_path = tmp_path / "rke_up.log"
    echoed = []

    result = runner.run_logged(
        [
            sys.executable,
            "-c",
            "import os, sys; print('cwd=' + os.getcwd()); sys.stderr.write('failure\\n'); sys.exit(3)",
        ],
        log_path=str(log_path),
        cwd=str(tmp_path),
        echo=echoed.append,
    )

    assert result.returncode == 3
    assert "cwd=" in result.stdout
    assert tmp_path.name in result.stdout
    assert "failure" in result.stdout
    log_text = log_path.read_text(encoding="utf-8")
    assert "failure" in log_text
    assert echoed == result.stdout.splitlines()


def test_run_logged_kills_silent_command_at_deadline(tmp_path):
    runner = CommandRunner(logger=DummyLogger(), default_timeout=0.5)
    log_path = tmp_path / "rke_up.log"

    start = time.monotonic()
    with pytest.raises(UpgraderError, match="timed out after 0.5s"):
        runner.run_logged([sys.executable, "-c", "import time; time.sleep(30)"], log_path=str(log_path))

    assert time.monotonic() - start < 10
    assert log_path.exists()


def test_run_logged_keeps_output_written_before_deadline(tmp_path):
    runner = CommandRunner(logger=DummyLogger())
    log_path = tmp_path / "rke_util.log"

    with pytest.raises(UpgraderError, match="Partial output"):
        runner.run_logged(
            [
                sys.executable,
                "-c",
                "import sys, time; print('waiting for nodes'); sys.stdout.flush(); time.sleep(30)",
            ],
            log_path=str(log_path),
            timeout=1.0,
        )

    assert "waiting for nodes" in log_path.read_text(encoding="utf-8")


def test_run_logged_does_not_start_command_when_log_cannot_be_opened(tmp_path):
    class RecordingSubprocess:
        PIPE = subprocess.PIPE
        STDOUT = subprocess.STDOUT

        def __init__(self):
            self.started = []

        def Popen(self, cmd, **_kwargs):
            self.started.append(cmd)
            raise AssertionError("command must not start")

    fake = RecordingSubprocess()
    runner = CommandRunner(logger=DummyLogger(), subprocess_module=fake)

    with pytest.raises(UpgraderError, match="Could not open log file"):
        runner.run_logged(["rke", "up"], log_path=str(tmp_path / "missing" / "rke_up.log"))

    assert fake.started == []
