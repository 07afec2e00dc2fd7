"""Backup of the previous deployment directory."""

import os
import re
import shutil
from datetime import datetime
from typing import Callable, List, Optional

from nextdeploy.constants import BACKUP_TIMESTAMP_FORMAT, DIR_MODE
from nextdeploy.errors import BackupFailed, DeployerError
from nextdeploy.errors_catalog import actionable_error
from nextdeploy.models import BackupRecord


class BackupManager:
    """Moves an existing deployment aside before it gets replaced."""

    def __init__(
        self,
        backup_root: str,
        app_name: str,
        logger,
        filesystem_service,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.backup_root = backup_root
        self.app_name = app_name
        self.logger = logger
        self.filesystem_service = filesystem_service
        self.clock = clock

    def backup_path_for(self, created_at: datetime) -> str:
        base = os.path.join(
            self.backup_root, f"{self.app_name}_{created_at.strftime(BACKUP_TIMESTAMP_FORMAT)}"
        )
        candidate = base
        suffix = 1
        while os.path.exists(candidate):
            candidate = f"{base}_{suffix}"
            suffix += 1
        return candidate

    def backup_if_exists(self, project_directory: str) -> Optional[BackupRecord]:
        if not os.path.isdir(project_directory):
            self.logger.info("No existing deployment at %s; skipping backup", project_directory)
            return None

        created_at = self.clock()
        try:
            self.filesystem_service.ensure_directory(self.backup_root, DIR_MODE)
        except DeployerError as exc:
            raise BackupFailed(
                actionable_error(
                    "backup_failed",
                    source=project_directory,
                    destination=self.backup_root,
                    detail=exc,
                )
            ) from exc

        destination = self.backup_path_for(created_at)
        self.logger.info("Creating backup at %s", destination)
        try:
            shutil.move(project_directory, destination)
        except (OSError, shutil.Error) as exc:
            raise BackupFailed(
                actionable_error(
                    "backup_failed",
                    source=project_directory,
                    destination=destination,
                    detail=exc,
                )
            ) from exc

        if os.path.exists(project_directory) or not os.path.isdir(destination):
            raise BackupFailed(
                actionable_error(
                    "backup_failed",
                    source=project_directory,
                    destination=destination,
                    detail="directory was not relocated",
                )
            )

        return BackupRecord(
            source_path=project_directory,
            destination_path=destination,
            created_at=created_at,
        )

    def list_backups(self) -> List[str]:
        if not os.path.isdir(self.backup_root):
            return []

        pattern = re.compile(rf"^{re.escape(self.app_name)}_(\d{{8}}_\d{{6}})(?:_(\d+))?$")
        entries = []
        for name in os.listdir(self.backup_root):
            match = pattern.match(name)
            path = os.path.join(self.backup_root, name)
            if match and os.path.isdir(path):
                entries.append(((match.group(1), int(match.group(2) or 0)), path))
        return [path for _, path in sorted(entries)]

    def prune(self, keep: Optional[int]) -> List[str]:
        """Deletes the oldest backups beyond ``keep``; ``None`` keeps everything."""
        if keep is None:
            return []

        backups = self.list_backups()
        stale = backups[: max(0, len(backups) - keep)]
        removed = []
        for path in stale:
            try:
                shutil.rmtree(path)
            except OSError as exc:
                self.logger.warning("Could not remove old backup %s: %s", path, exc)
                continue
            self.logger.info("Removed old backup %s", path)
            removed.append(path)
        return removed
