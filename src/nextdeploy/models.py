"""Shared domain models for nextdeploy."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping, Optional

from rich.console import Console

from nextdeploy.constants import BACKUP_DIR


@dataclass(frozen=True)
class SecretsDocument:
    """Opaque secret material; values never show up in repr or logs."""

    path: str
    values: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class DeploymentConfig:
    repository_url: str
    branch: str
    required_version: str
    app_name: str
    project_directory: str
    start_script: str = "start"
    build_script: str = "build"
    backup_directory: str = BACKUP_DIR
    backup_keep: Optional[int] = None
    secrets: Optional[SecretsDocument] = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class BackupRecord:
    source_path: str
    destination_path: str
    created_at: datetime


@dataclass(frozen=True)
class ExecutionContext:
    """Everything a stage needs, threaded explicitly through the pipeline."""

    config: DeploymentConfig
    logger: logging.Logger
    console: Console
    log_file: Optional[str]
    started_at: datetime
