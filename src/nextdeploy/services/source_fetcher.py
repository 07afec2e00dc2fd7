"""Git checkout of the application source."""

import os
from typing import Callable

from rich.markup import escape

from nextdeploy.errors import CloneFailed, CommandError
from nextdeploy.errors_catalog import actionable_error
from nextdeploy.services.command_runner import mask_credentials


class SourceFetcher:
    """Shallow-clones a single branch into the deployment directory."""

    def __init__(self, logger, console, run_cmd: Callable):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd

    def clone_cmd(self, repository_url: str, branch: str, destination: str):
        return [
            "git",
            "clone",
            "--depth",
            "1",
            "--single-branch",
            "--branch",
            branch,
            repository_url,
            destination,
        ]

    def fetch(self, repository_url: str, branch: str, destination: str):
        safe_url = mask_credentials(repository_url)
        if os.path.exists(destination) and not (os.path.isdir(destination) and not os.listdir(destination)):
            raise CloneFailed(
                f"{actionable_error('clone_failed', branch=branch, url=safe_url)}\n"
                f"Destination {destination} exists and is not empty."
            )

        self.console.print(f"[blue]Cloning {escape(f'{safe_url} ({branch})')}...[/blue]")
        self.logger.info("Cloning branch %s of %s into %s", branch, safe_url, destination)

        try:
            self.run_cmd(self.clone_cmd(repository_url, branch, destination))
        except CommandError as exc:
            detail = exc.stderr or str(exc)
            raise CloneFailed(
                f"{actionable_error('clone_failed', branch=branch, url=safe_url)}\n{detail}"
            ) from exc

        self.logger.info("Repository cloned into %s", destination)
