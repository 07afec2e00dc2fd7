"""Actionable error catalog for nextdeploy."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "config_missing": {
        "what": "{label} not found: {path}",
        "next": "Create the file or point to it with `--config` / `--secrets`.",
    },
    "config_invalid": {
        "what": "Invalid {label} '{path}': {detail}",
        "next": "Fix the JSON/YAML syntax and make sure the root is a mapping.",
    },
    "config_incomplete": {
        "what": "{label} not configured ({field}).",
        "next": "Set `{field}` in the configuration file.",
    },
    "no_package_manager": {
        "what": "No supported package manager found (looked for: {candidates}).",
        "next": "Install one of the supported package managers or provision the host manually.",
    },
    "install_failed": {
        "what": "Failed to install {tool}.",
        "next": "Install {tool} manually and re-run the deployment.",
    },
    "backup_failed": {
        "what": "Failed to back up {source} to {destination}: {detail}",
        "next": "Check free disk space and permissions on the backup directory.",
    },
    "clone_failed": {
        "what": "Failed to clone branch '{branch}' of {url}.",
        "next": "Verify the repository URL, the branch name and the host's credentials.",
    },
    "dependency_install_failed": {
        "what": "Failed to install project dependencies with `{command}`.",
        "next": "Run `{command}` inside the project directory to inspect the error.",
    },
    "build_failed": {
        "what": "Failed to build project with `{command}`.",
        "next": "Fix the build locally; the previous deployment is kept in the backup directory.",
    },
    "supervisor_start_failed": {
        "what": "Failed to start PM2 process '{name}'.",
        "next": "Inspect `pm2 logs {name}` and the project's start script.",
    },
    "supervisor_persist_failed": {
        "what": "Failed to {action}.",
        "next": "Run the PM2 command by hand with sufficient privileges, then re-run.",
    },
    "status_check_failed": {
        "what": "PM2 process '{name}' is not healthy: {detail}",
        "next": "Inspect `pm2 describe {name}` and `pm2 logs {name}`.",
    },
    "log_setup_failed": {
        "what": "Cannot write log file {path}: {detail}",
        "next": "Run as a user that can write there or pass `--log-file`.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
