"""npm dependency installation and build."""

import os
from typing import Callable, List

from nextdeploy.constants import LOCKFILE_NAME
from nextdeploy.errors import BuildFailed, CommandError, DependencyInstallFailed
from nextdeploy.errors_catalog import actionable_error


class BuildRunner:
    def __init__(self, logger, console, run_cmd: Callable, build_script: str = "build"):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd
        self.build_script = build_script

    def install_cmd(self, project_directory: str) -> List[str]:
        if os.path.isfile(os.path.join(project_directory, LOCKFILE_NAME)):
            return ["npm", "ci"]
        return ["npm", "install"]

    def install(self, project_directory: str):
        cmd = self.install_cmd(project_directory)
        command = " ".join(cmd)
        self.console.print("[blue]Installing project dependencies...[/blue]")
        self.logger.info("Installing project dependencies with `%s`...", command)

        try:
            self.run_cmd(cmd, cwd=project_directory)
        except CommandError as exc:
            raise DependencyInstallFailed(
                f"{actionable_error('dependency_install_failed', command=command)}\n{exc}"
            ) from exc

    def build(self, project_directory: str):
        cmd = ["npm", "run", self.build_script]
        command = " ".join(cmd)
        self.console.print("[blue]Building project...[/blue]")
        self.logger.info("Building project with `%s`...", command)

        try:
            self.run_cmd(cmd, cwd=project_directory)
        except CommandError as exc:
            raise BuildFailed(f"{actionable_error('build_failed', command=command)}\n{exc}") from exc

        self.logger.info("Build finished")
