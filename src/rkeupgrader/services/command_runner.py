"""Subprocess execution service for RKEUpgrader."""

import subprocess
import threading
from collections import deque
from typing import Deque, List, Optional

from rkeupgrader.errors import UpgraderError


class CommandRunner:
    """Runs external commands with consistent error handling."""

    TAIL_LINES = 40
    READER_GRACE = 5.0

    def __init__(self, logger, default_timeout: Optional[float] = None, subprocess_module=subprocess):
        self.logger = logger
        self.default_timeout = default_timeout
        self.subprocess = subprocess_module

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = " ".join(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout

        try:
            result = self.subprocess.run(
                cmd,
                text=True,
                capture_output=capture_output,
                timeout=effective_timeout,
                cwd=cwd,
            )
        except FileNotFoundError as exc:
            raise UpgraderError(
                f"Required command not found: {cmd[0]}. Please install it and try again."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise UpgraderError(f"Command timed out after {effective_timeout}s: {cmd_str}") from exc
        except OSError as exc:
            raise UpgraderError(f"Failed to execute command: {cmd_str}. {exc}") from exc

        if capture_output and result.stdout:
            self.logger.debug("Command output: %s", result.stdout.strip())

        if result.returncode == 0 or not check:
            return result

        stderr = (result.stderr or "").strip() if capture_output else ""
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr:
            message = f"{message}\n{stderr}"
        raise UpgraderError(message)

    def run_logged(
        self,
        cmd: List[str],
        log_path: str,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        echo=None,
    ) -> subprocess.CompletedProcess:
        """Streams combined output into ``log_path`` and returns it captured.

        The deadline holds even while the command prints nothing. The exit
        status is never checked here; callers decide what a non-zero status
        means for their step.
        """
        cmd_str = " ".join(cmd)
        self.logger.debug("Executing (log: %s): %s", log_path, cmd_str)
        effective_timeout = timeout if timeout is not None else self.default_timeout

        try:
            log_file = open(log_path, "w", encoding="utf-8")
        except OSError as exc:
            raise UpgraderError(f"Could not open log file {log_path}: {exc}") from exc

        captured: List[str] = []
        tail: Deque[str] = deque(maxlen=self.TAIL_LINES)
        timed_out = False

        with log_file:
            try:
                process = self.subprocess.Popen(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    bufsize=1,
                    cwd=cwd,
                )
            except FileNotFoundError as exc:
                raise UpgraderError(
                    f"Required command not found: {cmd[0]}. Please install it and try again."
                ) from exc
            except OSError as exc:
                raise UpgraderError(f"Failed to execute command: {cmd_str}. {exc}") from exc

            reader = threading.Thread(
                target=self._pump,
                args=(process.stdout, log_file, captured, tail, echo),
                daemon=True,
            )
            reader.start()

            try:
                process.wait(timeout=effective_timeout or None)
            except subprocess.TimeoutExpired:
                timed_out = True
                process.kill()
                process.wait()
            except KeyboardInterrupt:
                process.kill()
                process.wait()
                raise
            finally:
                reader.join(self.READER_GRACE)

        if timed_out:
            raise UpgraderError(
                f"Command timed out after {effective_timeout}s: {cmd_str}. "
                f"Partial output is in {log_path}"
            )

        if process.returncode != 0 and tail:
            self.logger.error("Recent output of %s:\n%s", cmd[0], "\n".join(tail))

        return subprocess.CompletedProcess(cmd, process.returncode, stdout="\n".join(captured), stderr="")

    def _pump(self, stream, log_file, captured: List[str], tail: Deque[str], echo):
        for line in stream:
            log_file.write(line)
            cleaned = line.rstrip()
            captured.append(cleaned)
            tail.append(cleaned)
            self.logger.debug(cleaned)
            if echo is not None and cleaned:
                echo(cleaned)
