"""Filesystem helpers for RKEUpgrader."""

import logging
import os
import shutil
import sys

from rich.console import Console

from rkeupgrader.errors import UpgraderError


class FileSystemService:
    """Encapsulates file and directory side effects."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def set_permissions(self, path: str, mode: int):
        if sys.platform == "win32":
            return

        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def ensure_dir(self, path: str, mode: int):
        os.makedirs(path, exist_ok=True)
        self.set_permissions(path, mode)

    def copy_file(self, source: str, destination: str, mode=None) -> str:
        try:
            shutil.copy2(source, destination)
        except OSError as exc:
            raise UpgraderError(f"Could not copy {source} to {destination}: {exc}") from exc
        if mode is not None:
            self.set_permissions(destination, mode)
        self.logger.debug("Copied %s to %s", source, destination)
        return destination
