"""Invocation of a provisioned rke binary."""

import subprocess
from typing import List, Optional


class RkeBinary:
    """Builds and runs rke subcommands; exit codes are left to the caller."""

    IGNORE_DOCKER_VERSION_FLAG = "--ignore-docker-version"

    def __init__(
        self,
        path: str,
        command_runner,
        ignore_docker_version: bool = True,
        timeout: Optional[float] = None,
        echo=None,
    ):
        self.path = path
        self.command_runner = command_runner
        self.ignore_docker_version = ignore_docker_version
        self.timeout = timeout
        self.echo = echo

    def _flags(self) -> List[str]:
        return [self.IGNORE_DOCKER_VERSION_FLAG] if self.ignore_docker_version else []

    def snapshot_save(self, config_path: str, name: str) -> subprocess.CompletedProcess:
        cmd = [self.path, "etcd", "snapshot-save", f"--config={config_path}", f"--name={name}"]
        return self.command_runner.run(
            cmd + self._flags(), check=False, capture_output=True, timeout=self.timeout
        )

    def snapshot_restore(self, config_path: str, name: str) -> subprocess.CompletedProcess:
        cmd = [self.path, "etcd", "snapshot-restore", f"--config={config_path}", "--name", name]
        return self.command_runner.run(
            cmd + self._flags(), check=False, capture_output=True, timeout=self.timeout
        )

    def get_state_file(self, config_name: str, cwd: str, log_path: str) -> subprocess.CompletedProcess:
        cmd = [self.path, "util", "get-state-file"] + self._flags() + ["--config", config_name]
        return self.command_runner.run_logged(
            cmd, log_path=log_path, cwd=cwd, timeout=self.timeout, echo=self.echo
        )

    def up(self, config_name: str, cwd: str, log_path: str) -> subprocess.CompletedProcess:
        cmd = [self.path, "up"] + self._flags() + ["--config", config_name]
        return self.command_runner.run_logged(
            cmd, log_path=log_path, cwd=cwd, timeout=self.timeout, echo=self.echo
        )
