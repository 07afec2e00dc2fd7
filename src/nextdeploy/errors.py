"""Domain errors for nextdeploy."""

from typing import Optional


class DeployerError(RuntimeError):
    """Raised when the deployment cannot continue safely."""

    code = "ND000"


class LogSetupFailed(DeployerError):
    code = "ND001"


class CommandError(DeployerError):
    """An external command could not be executed or exited non-zero."""

    code = "ND002"

    def __init__(
        self,
        message: str,
        cmd: Optional[list] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.cmd = cmd or []
        self.returncode = returncode
        self.stderr = stderr


class ConfigError(DeployerError):
    code = "ND010"


class ConfigMissing(ConfigError):
    code = "ND011"


class ConfigInvalid(ConfigError):
    code = "ND012"


class ConfigIncomplete(ConfigError):
    code = "ND013"


class ProvisionError(DeployerError):
    code = "ND020"


class NoPackageManager(ProvisionError):
    code = "ND021"


class InstallFailed(ProvisionError):
    code = "ND022"

    def __init__(self, message: str, tool: str):
        super().__init__(message)
        self.tool = tool


class BackupFailed(DeployerError):
    code = "ND030"


class CloneFailed(DeployerError):
    code = "ND040"


class DependencyInstallFailed(DeployerError):
    code = "ND050"


class BuildFailed(DeployerError):
    code = "ND051"


class SupervisorError(DeployerError):
    code = "ND060"


class SupervisorStartFailed(SupervisorError):
    code = "ND061"


class SupervisorPersistFailed(SupervisorError):
    code = "ND062"


class StatusCheckFailed(SupervisorError):
    code = "ND063"
