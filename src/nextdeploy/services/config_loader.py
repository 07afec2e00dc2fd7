"""Configuration loader for nextdeploy."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from nextdeploy.constants import BACKUP_DIR
from nextdeploy.errors import ConfigIncomplete, ConfigInvalid, ConfigMissing
from nextdeploy.errors_catalog import actionable_error
from nextdeploy.models import DeploymentConfig, SecretsDocument


class ConfigLoader:
    """Loads and validates the deployment config and the secrets document.

    Both files may be JSON or YAML; JSON documents are valid YAML, so a
    single ``yaml.safe_load`` handles either.
    """

    SUPPORTED_KEYS = {
        "github": {"repository_url", "branch"},
        "node": {"required_version"},
        "pm2": {"app_name", "start_script"},
        "project": {"directory", "build_script"},
        "backup": {"directory", "keep"},
    }

    REQUIRED_FIELDS = (
        ("github", "repository_url", "GitHub repository URL"),
        ("github", "branch", "GitHub branch"),
        ("node", "required_version", "Node.js version"),
        ("pm2", "app_name", "PM2 app name"),
        ("project", "directory", "Project directory"),
    )

    REPOSITORY_SCHEMES = ("https://", "http://", "ssh://", "git://", "file://")
    SCP_STYLE_URL = re.compile(r"^[\w.-]+@[\w.-]+:[^\s]+$")
    APP_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
    VERSION = re.compile(r"^v?\d+(?:\.\d+){0,2}$")

    def __init__(self, logger=None):
        self.logger = logger

    def load(self, config_path: str, secrets_path: str) -> DeploymentConfig:
        for label, path in (("Config file", config_path), ("Secrets file", secrets_path)):
            if not Path(path).is_file():
                raise ConfigMissing(actionable_error("config_missing", label=label, path=path))

        parsed = self._parse(config_path, "config file")
        secrets = self.load_secrets(secrets_path)

        if parsed is None:
            parsed = {}
        if not isinstance(parsed, dict):
            raise ConfigInvalid(
                actionable_error(
                    "config_invalid",
                    label="config file",
                    path=config_path,
                    detail="root must be a mapping",
                )
            )

        self._check_keys(parsed, config_path)

        values = {}
        for group, key, label in self.REQUIRED_FIELDS:
            value = self._scalar(parsed, group, key, config_path)
            if not value:
                raise ConfigIncomplete(
                    actionable_error("config_incomplete", field=f"{group}.{key}", label=label)
                )
            values[key] = value

        repository_url = self._validate_repository_url(values["repository_url"], config_path)
        required_version = values["required_version"]
        if not self.VERSION.match(required_version):
            raise self._invalid(
                config_path,
                f"node.required_version '{required_version}' must look like 18, 18.17 or 18.17.0",
            )

        app_name = values["app_name"]
        if not self.APP_NAME.match(app_name):
            raise self._invalid(
                config_path,
                f"pm2.app_name '{app_name}' may only contain letters, digits, '.', '_' and '-'",
            )

        return DeploymentConfig(
            repository_url=repository_url,
            branch=values["branch"],
            required_version=required_version.lstrip("v"),
            app_name=app_name,
            project_directory=self._resolve_path(values["directory"]),
            start_script=self._scalar(parsed, "pm2", "start_script", config_path) or "start",
            build_script=self._scalar(parsed, "project", "build_script", config_path) or "build",
            backup_directory=self._resolve_path(
                self._scalar(parsed, "backup", "directory", config_path) or BACKUP_DIR
            ),
            backup_keep=self._backup_keep(parsed, config_path),
            secrets=secrets,
        )

    def load_secrets(self, secrets_path: str) -> SecretsDocument:
        if not Path(secrets_path).is_file():
            raise ConfigMissing(
                actionable_error("config_missing", label="Secrets file", path=secrets_path)
            )

        parsed = self._parse(secrets_path, "secrets file")
        if parsed is None:
            parsed = {}
        if not isinstance(parsed, dict):
            raise ConfigInvalid(
                actionable_error(
                    "config_invalid",
                    label="secrets file",
                    path=secrets_path,
                    detail="root must be a mapping",
                )
            )
        return SecretsDocument(path=secrets_path, values=parsed)

    def _parse(self, path: str, label: str) -> Any:
        try:
            return yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError, UnicodeDecodeError) as exc:
            # yaml errors may quote the offending line; never echo secret contents
            detail = type(exc).__name__ if label == "secrets file" else str(exc)
            raise ConfigInvalid(
                actionable_error("config_invalid", label=label, path=path, detail=detail)
            ) from exc

    def _check_keys(self, parsed: Dict[str, Any], config_path: str):
        unknown_groups = sorted(set(parsed) - set(self.SUPPORTED_KEYS))
        if unknown_groups:
            raise self._invalid(config_path, f"unknown configuration groups: {', '.join(unknown_groups)}")

        for group, allowed in self.SUPPORTED_KEYS.items():
            section = parsed.get(group)
            if section is None:
                continue
            if not isinstance(section, dict):
                raise self._invalid(config_path, f"'{group}' must be a mapping")
            unknown = sorted(set(section) - allowed)
            if unknown:
                unknown_list = ", ".join(f"{group}.{key}" for key in unknown)
                raise self._invalid(config_path, f"unknown configuration keys: {unknown_list}")

    def _scalar(self, parsed: Dict[str, Any], group: str, key: str, config_path: str) -> Optional[str]:
        value = (parsed.get(group) or {}).get(key)
        if value is None:
            return None
        if isinstance(value, float):
            raise self._invalid(
                config_path, f"{group}.{key} was read as the number {value!r}; quote it as a string"
            )
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise self._invalid(config_path, f"{group}.{key} must be a string")
        return str(value).strip()

    def _backup_keep(self, parsed: Dict[str, Any], config_path: str) -> Optional[int]:
        value = (parsed.get("backup") or {}).get("keep")
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise self._invalid(config_path, "backup.keep must be a positive integer")
        return value

    def _validate_repository_url(self, url: str, config_path: str) -> str:
        if url.startswith(self.REPOSITORY_SCHEMES) or self.SCP_STYLE_URL.match(url):
            if url.startswith("http://") and self.logger:
                self.logger.warning(
                    "Repository URL uses insecure HTTP. Prefer HTTPS or SSH whenever possible."
                )
            return url
        raise self._invalid(
            config_path,
            "github.repository_url must be an https://, ssh://, git://, file:// "
            "or user@host:path URL",
        )

    @staticmethod
    def _resolve_path(value: str) -> str:
        return os.path.abspath(os.path.expanduser(value))

    @staticmethod
    def _invalid(config_path: str, detail: str) -> ConfigInvalid:
        return ConfigInvalid(
            actionable_error("config_invalid", label="config file", path=config_path, detail=detail)
        )
