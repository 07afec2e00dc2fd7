"""PM2 process supervisor client."""

import getpass
import json
import os
from typing import Any, Callable, Dict, List

from nextdeploy.constants import PM2_STARTUP_PLATFORM
from nextdeploy.errors import (
    CommandError,
    StatusCheckFailed,
    SupervisorPersistFailed,
    SupervisorStartFailed,
)
from nextdeploy.errors_catalog import actionable_error
from nextdeploy.services.package_manager import is_root


class Pm2Client:
    """Replaces the named PM2 instance and makes the process table survive reboots.

    Failing to save the process table or to register boot startup is fatal:
    a deployment that would silently vanish on the next reboot is not
    reported as successful.
    """

    HEALTHY_STATUS = "online"

    def __init__(self, logger, console, run_cmd: Callable, start_script: str = "start"):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd
        self.start_script = start_script

    def redeploy(self, app_name: str, project_directory: str) -> str:
        self.console.print(f"[blue]Updating PM2 process '{app_name}'...[/blue]")
        self.stop(app_name)
        self.start(app_name, project_directory)
        self.save()
        self.register_startup()
        status = self.status(app_name)
        self.logger.info("PM2 process '%s' is %s", app_name, status)
        return status

    def stop(self, app_name: str):
        result = self.run_cmd(["pm2", "delete", app_name], check=False)
        if result.returncode == 0:
            self.logger.info("Removed previous PM2 process '%s'", app_name)
        else:
            self.logger.info("No previous PM2 process named '%s'", app_name)

    def start_cmd(self, app_name: str, project_directory: str) -> List[str]:
        return [
            "pm2",
            "start",
            "npm",
            "--name",
            app_name,
            "--cwd",
            project_directory,
            "--",
            "run",
            self.start_script,
        ]

    def start(self, app_name: str, project_directory: str):
        try:
            self.run_cmd(self.start_cmd(app_name, project_directory), cwd=project_directory)
        except CommandError as exc:
            raise SupervisorStartFailed(
                f"{actionable_error('supervisor_start_failed', name=app_name)}\n{exc}"
            ) from exc

    def save(self):
        try:
            self.run_cmd(["pm2", "save"])
        except CommandError as exc:
            raise SupervisorPersistFailed(
                f"{actionable_error('supervisor_persist_failed', action='save PM2 process list')}\n{exc}"
            ) from exc

    def startup_cmd(self) -> List[str]:
        user = getpass.getuser()
        home = os.path.expanduser("~")
        cmd = ["pm2", "startup", PM2_STARTUP_PLATFORM, "-u", user, "--hp", home]
        if is_root():
            return cmd
        return ["sudo", "env", f"PATH={os.environ.get('PATH', '')}"] + cmd

    def register_startup(self):
        try:
            self.run_cmd(self.startup_cmd())
        except CommandError as exc:
            raise SupervisorPersistFailed(
                f"{actionable_error('supervisor_persist_failed', action='setup PM2 startup')}\n{exc}"
            ) from exc

    def process_list(self, app_name: str = "*") -> List[Dict[str, Any]]:
        try:
            result = self.run_cmd(["pm2", "jlist"])
        except CommandError as exc:
            raise StatusCheckFailed(
                actionable_error("status_check_failed", name=app_name, detail=exc)
            ) from exc
        return self._parse_jlist(result.stdout or "", app_name)

    def status(self, app_name: str) -> str:
        processes = self.process_list(app_name)

        matching = [proc for proc in processes if proc.get("name") == app_name]
        if not matching:
            raise StatusCheckFailed(
                actionable_error("status_check_failed", name=app_name, detail="process not found")
            )
        if len(matching) > 1:
            raise StatusCheckFailed(
                actionable_error(
                    "status_check_failed",
                    name=app_name,
                    detail=f"{len(matching)} instances registered",
                )
            )

        status = (matching[0].get("pm2_env") or {}).get("status", "unknown")
        if status != self.HEALTHY_STATUS:
            raise StatusCheckFailed(
                actionable_error("status_check_failed", name=app_name, detail=f"status is {status}")
            )
        return status

    @staticmethod
    def _parse_jlist(output: str, app_name: str = "*") -> List[Dict[str, Any]]:
        # pm2 may print update notices before the JSON payload
        for line in reversed(output.strip().splitlines()):
            line = line.strip()
            if not line.startswith("["):
                continue
            try:
                parsed = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, list):
                return [proc for proc in parsed if isinstance(proc, dict)]

        raise StatusCheckFailed(
            actionable_error("status_check_failed", name=app_name, detail="unreadable `pm2 jlist` output")
        )
