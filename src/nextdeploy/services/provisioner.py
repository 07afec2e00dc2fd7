"""Host provisioning: required tools, Node.js runtime and PM2."""

import os
import shutil
import tempfile
from typing import Callable, Iterable, Optional

import requests
from packaging import version

from nextdeploy.errors import CommandError, DeployerError, InstallFailed
from nextdeploy.errors_catalog import actionable_error
from nextdeploy.services.package_manager import PackageManager, detect_package_manager, with_sudo


def runtime_version_matches(required: str, reported: Optional[str]) -> bool:
    """Major-prefix match between a required and a reported runtime version.

    The release components of ``required`` must equal the leading components
    of ``reported``: ``18`` matches ``v18.17.0`` and ``18.17`` matches
    ``18.17.3``, while ``1`` does not match ``18.0.0``. This is a deliberate
    approximation, not semantic-version range matching.
    """
    if not reported:
        return False

    clean_required = required.strip().lstrip("v")
    clean_reported = reported.strip().lstrip("v")
    try:
        required_release = version.Version(clean_required).release
        reported_release = version.Version(clean_reported).release
    except version.InvalidVersion:
        required_parts = clean_required.split(".")
        return clean_reported.split(".")[: len(required_parts)] == required_parts

    return reported_release[: len(required_release)] == required_release


class DependencyProvisioner:
    """Makes sure the host has the tools the deployment shells out to."""

    RUNTIME_COMMAND = "node"
    SUPERVISOR_COMMAND = "pm2"

    def __init__(
        self,
        logger,
        console,
        run_cmd: Callable,
        which: Callable[[str], Optional[str]] = shutil.which,
        requests_module=requests,
        package_manager: Optional[PackageManager] = None,
    ):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd
        self.which = which
        self.requests = requests_module
        self._package_manager = package_manager
        self._index_updated = False

    @property
    def package_manager(self) -> PackageManager:
        if self._package_manager is None:
            self._package_manager = detect_package_manager(self.which)
            self.logger.info("Detected package manager: %s", self._package_manager.name)
        return self._package_manager

    def ensure(self, required_tools: Iterable[str], required_version: str):
        self.console.print("[blue]Checking system dependencies...[/blue]")
        manager = self.package_manager

        for tool in sorted(set(required_tools)):
            self.ensure_tool(tool, manager)

        self.ensure_runtime(required_version, manager)
        self.ensure_supervisor(manager)

    def ensure_tool(self, tool: str, manager: PackageManager):
        if self.which(tool):
            self.logger.info("%s is already installed", tool)
            return

        self.logger.warning("%s not found. Installing %s...", tool, tool)
        self._update_index(manager)
        self._install(manager.install_cmd([tool]), tool)
        self.logger.info("%s installed successfully", tool)

    def installed_runtime_version(self) -> Optional[str]:
        if not self.which(self.RUNTIME_COMMAND):
            return None
        try:
            result = self.run_cmd([self.RUNTIME_COMMAND, "--version"], check=False)
        except CommandError:
            return None
        if result.returncode != 0:
            return None
        return (result.stdout or "").strip() or None

    def ensure_runtime(self, required_version: str, manager: PackageManager):
        current = self.installed_runtime_version()
        if runtime_version_matches(required_version, current):
            self.logger.info("Node.js %s satisfies required version %s", current, required_version)
            return

        if current:
            self.logger.warning(
                "Node.js %s does not match required version %s. Reinstalling...",
                current,
                required_version,
            )
        else:
            self.logger.info("Installing Node.js %s...", required_version)

        major = required_version.split(".")[0]
        if not manager.pins_runtime_version():
            self.logger.warning(
                "%s cannot pin Node.js versions; installing the distribution package instead.",
                manager.name,
            )

        self._update_index(manager)
        setup_url = manager.runtime_setup_url(major)
        if setup_url:
            self._run_setup_script(setup_url)
            # the setup script registers a new repository
            self._index_updated = True
        self._install(manager.runtime_install_cmd(major), self.RUNTIME_COMMAND)

        installed = self.installed_runtime_version()
        if runtime_version_matches(required_version, installed):
            self.logger.info("Node.js %s installed successfully", installed)
        else:
            self.logger.warning(
                "Installed Node.js reports %s, which does not match %s. Continuing anyway.",
                installed or "<unknown>",
                required_version,
            )

    def ensure_supervisor(self, manager: PackageManager):
        if self.which(self.SUPERVISOR_COMMAND):
            self.logger.info("%s is already installed", self.SUPERVISOR_COMMAND)
            return

        self.logger.warning("pm2 not found. Installing pm2...")
        cmd = ["npm", "install", "-g", "pm2"]
        if manager.needs_sudo:
            cmd = with_sudo(cmd)
        self._install(cmd, self.SUPERVISOR_COMMAND)
        self.logger.info("pm2 installed successfully")

    def _update_index(self, manager: PackageManager):
        if self._index_updated:
            return
        cmd = manager.update_index_cmd()
        self._index_updated = True
        if cmd is None:
            return
        self.logger.info("Updating package list...")
        try:
            self.run_cmd(cmd)
        except CommandError as exc:
            raise InstallFailed(f"Failed to update package list. {exc}", tool=manager.name) from exc

    def _run_setup_script(self, url: str):
        self.logger.info("Setting up Node.js repository from %s", url)
        try:
            response = self.requests.get(url, timeout=60)
            response.raise_for_status()
            script = response.text
        except self.requests.RequestException as exc:
            raise InstallFailed(
                f"Failed to setup Node.js repository: {exc}", tool=self.RUNTIME_COMMAND
            ) from exc

        fd, script_path = tempfile.mkstemp(prefix="nodesource-setup-", suffix=".sh")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                file_obj.write(script)
            self._install(with_sudo(["bash", script_path], preserve_env=True), self.RUNTIME_COMMAND)
        finally:
            if os.path.exists(script_path):
                os.remove(script_path)

    def _install(self, cmd, tool: str):
        try:
            self.run_cmd(cmd)
        except DeployerError as exc:
            raise InstallFailed(
                f"{actionable_error('install_failed', tool=tool)}\n{exc}", tool=tool
            ) from exc
