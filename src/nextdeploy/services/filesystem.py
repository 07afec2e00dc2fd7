"""Filesystem helpers for nextdeploy."""

import getpass
import logging
import os
import sys
from typing import Callable, Optional

from nextdeploy.errors import CommandError, DeployerError
from nextdeploy.services.package_manager import with_sudo


class FileSystemService:
    """Encapsulates file and directory side effects."""

    def __init__(self, logger: logging.Logger, run_cmd: Optional[Callable] = None):
        self.logger = logger
        self.run_cmd = run_cmd

    def set_permissions(self, path: str, mode: int):
        if sys.platform == "win32":
            return

        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def ensure_directory(self, path: str, mode: Optional[int] = None):
        """Creates ``path``; retries through sudo and takes ownership when denied."""
        try:
            os.makedirs(path, exist_ok=True)
        except PermissionError as exc:
            if self.run_cmd is None:
                raise DeployerError(f"Permission denied creating {path}: {exc}") from exc
            self.logger.info("Creating %s with elevated privileges", path)
            user = getpass.getuser()
            try:
                self.run_cmd(with_sudo(["mkdir", "-p", path]))
                self.run_cmd(with_sudo(["chown", "-R", f"{user}:{user}", path]))
            except CommandError as sudo_exc:
                raise DeployerError(f"Could not create {path}: {sudo_exc}") from sudo_exc
        if mode is not None:
            self.set_permissions(path, mode)

    def is_empty_dir(self, path: str) -> bool:
        return os.path.isdir(path) and not os.listdir(path)

