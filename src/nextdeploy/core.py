import logging
import os
import shutil
import subprocess
from datetime import datetime
from typing import Callable, List, Optional

import requests
from rich.console import Console
from rich.markup import escape

from .constants import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_SECRETS_FILE,
    DIR_MODE,
    LOG_FILE,
    REQUIRED_TOOLS,
)
from .errors import DeployerError
from .models import BackupRecord, DeploymentConfig, ExecutionContext
from .services.backup import BackupManager
from .services.build_runner import BuildRunner
from .services.command_runner import CommandRunner, mask_credentials
from .services.config_loader import ConfigLoader
from .services.filesystem import FileSystemService
from .services.log_sink import DeployLogHandler, attach_log_file, detach_log_file
from .services.provisioner import DependencyProvisioner
from .services.source_fetcher import SourceFetcher
from .services.supervisor import Pm2Client

console = Console()
logger = logging.getLogger("nextdeploy")


class Deployer:
    """Provisions the host, then clones, builds and (re)starts the application."""

    def __init__(
        self,
        config_path: str = DEFAULT_CONFIG_FILE,
        secrets_path: str = DEFAULT_SECRETS_FILE,
        log_file: Optional[str] = LOG_FILE,
        verbose: bool = False,
        command_runner: Optional[CommandRunner] = None,
        which: Callable[[str], Optional[str]] = shutil.which,
        requests_module=requests,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config_path = config_path
        self.secrets_path = secrets_path
        self.log_file = log_file
        self.verbose = verbose
        self.command_runner = command_runner or CommandRunner(logger=logger)
        self.which = which
        self.requests = requests_module
        self.clock = clock

        self.context: Optional[ExecutionContext] = None
        self.backup_record: Optional[BackupRecord] = None
        self.current_step_name: Optional[str] = None
        self.pm2_status: Optional[str] = None

        self.config_loader = ConfigLoader(logger=logger)
        self.filesystem_service = FileSystemService(logger=logger, run_cmd=self._run_cmd)
        self.provisioner: Optional[DependencyProvisioner] = None
        self.backup_manager: Optional[BackupManager] = None
        self.source_fetcher: Optional[SourceFetcher] = None
        self.build_runner: Optional[BuildRunner] = None
        self.supervisor: Optional[Pm2Client] = None

    @property
    def config(self) -> DeploymentConfig:
        if self.context is None:
            raise DeployerError("Configuration has not been loaded yet.")
        return self.context.config

    def _run_cmd(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = True,
        cwd: Optional[str] = None,
        env=None,
    ) -> subprocess.CompletedProcess:
        return self.command_runner.run(
            cmd, check=check, capture_output=capture_output, cwd=cwd, env=env
        )

    def _run_step(self, name: str, callback, *args, **kwargs):
        self.current_step_name = name
        logger.debug("Step started: %s", name)
        result = callback(*args, **kwargs)
        logger.debug("Step finished: %s", name)
        self.current_step_name = None
        return result

    def _build_context(self, config: DeploymentConfig) -> ExecutionContext:
        started_at = self.clock()
        return ExecutionContext(
            config=config,
            logger=logger,
            console=console,
            log_file=self.log_file,
            started_at=started_at,
        )

    def _build_services(self, context: ExecutionContext):
        config = context.config
        self.provisioner = DependencyProvisioner(
            logger=context.logger,
            console=context.console,
            run_cmd=self._run_cmd,
            which=self.which,
            requests_module=self.requests,
        )
        self.backup_manager = BackupManager(
            backup_root=config.backup_directory,
            app_name=config.app_name,
            logger=context.logger,
            filesystem_service=self.filesystem_service,
            clock=lambda: context.started_at,
        )
        self.source_fetcher = SourceFetcher(
            logger=context.logger, console=context.console, run_cmd=self._run_cmd
        )
        self.build_runner = BuildRunner(
            logger=context.logger,
            console=context.console,
            run_cmd=self._run_cmd,
            build_script=config.build_script,
        )
        self.supervisor = Pm2Client(
            logger=context.logger,
            console=context.console,
            run_cmd=self._run_cmd,
            start_script=config.start_script,
        )

    def load_configuration(self) -> DeploymentConfig:
        config = self.config_loader.load(self.config_path, self.secrets_path)
        logger.info(
            "Loaded configuration for '%s' (%s @ %s, Node.js %s, %d secret(s))",
            config.app_name,
            mask_credentials(config.repository_url),
            config.branch,
            config.required_version,
            len(config.secrets or ()),
        )
        self.context = self._build_context(config)
        self._build_services(self.context)
        return config

    def provision_host(self):
        logger.info("Installing system dependencies...")
        self.provisioner.ensure(REQUIRED_TOOLS, self.config.required_version)

    def backup_previous_deployment(self) -> Optional[BackupRecord]:
        self.backup_record = self.backup_manager.backup_if_exists(self.config.project_directory)
        return self.backup_record

    def prepare_project_directory(self):
        project_directory = self.config.project_directory
        if os.path.exists(project_directory) and not self.filesystem_service.is_empty_dir(
            project_directory
        ):
            raise DeployerError(
                f"Project directory {project_directory} still exists after backup; refusing to overwrite it."
            )
        self.filesystem_service.ensure_directory(project_directory)

    def fetch_source(self):
        config = self.config
        self.source_fetcher.fetch(config.repository_url, config.branch, config.project_directory)
        self.filesystem_service.set_permissions(config.project_directory, DIR_MODE)

    def install_dependencies(self):
        self.build_runner.install(self.config.project_directory)

    def build_project(self):
        self.build_runner.build(self.config.project_directory)

    def redeploy_process(self) -> str:
        self.pm2_status = self.supervisor.redeploy(
            self.config.app_name, self.config.project_directory
        )
        return self.pm2_status

    def prune_backups(self) -> List[str]:
        return self.backup_manager.prune(self.config.backup_keep)

    def run(self) -> int:
        exit_code = 1
        log_handler: Optional[DeployLogHandler] = None

        try:
            self.current_step_name = "setup_logging"
            if self.log_file:
                log_handler = attach_log_file(logger, self.log_file, verbose=self.verbose)
            self.current_step_name = None

            logger.info("Starting deployment process")
            self._run_step("load_configuration", self.load_configuration)
            self._run_step("install_dependencies", self.provision_host)

            logger.info("Starting application deployment...")
            self._run_step("backup_existing_deployment", self.backup_previous_deployment)
            self._run_step("prepare_project_directory", self.prepare_project_directory)
            self._run_step("clone_repository", self.fetch_source)
            self._run_step("install_project_dependencies", self.install_dependencies)
            self._run_step("build_project", self.build_project)
            self._run_step("update_pm2_process", self.redeploy_process)
            self._run_step("prune_backups", self.prune_backups)

            console.print("[bold green]Deployment completed successfully![/bold green]")
            logger.info("Deployment completed successfully!")
            exit_code = 0
            return exit_code

        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            return exit_code
        except DeployerError as exc:
            step = self.current_step_name or "run"
            logger.error("[%s] %s (%s)", step, exc, exc.code)
            console.print(f"[bold red]Error:[/bold red] {escape(f'[{step}] {exc}')}")
            return exit_code
        except Exception as exc:
            step = self.current_step_name or "run"
            logger.exception("Unexpected error during %s", step)
            console.print(f"[bold red]Unexpected error:[/bold red] {escape(f'[{step}] {exc}')}")
            return exit_code
        finally:
            if exit_code != 0 and self.backup_record is not None:
                logger.warning(
                    "Previous deployment preserved at %s. Restore it manually if needed.",
                    self.backup_record.destination_path,
                )
            log_file = self.context.log_file if self.context else self.log_file
            if exit_code != 0 and log_handler is not None:
                console.print(f"[dim]Full deployment log: {escape(str(log_file))}[/dim]")
            detach_log_file(logger, log_handler)
