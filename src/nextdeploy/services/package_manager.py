"""System package manager adapters for nextdeploy."""

import os
import shutil
from typing import Callable, List, Optional, Sequence, Type

from nextdeploy.constants import NODESOURCE_DEB_SETUP_URL, NODESOURCE_RPM_SETUP_URL
from nextdeploy.errors import NoPackageManager
from nextdeploy.errors_catalog import actionable_error


def is_root() -> bool:
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


def with_sudo(cmd: List[str], preserve_env: bool = False) -> List[str]:
    if is_root():
        return cmd
    prefix = ["sudo", "-E"] if preserve_env else ["sudo"]
    return prefix + cmd


class PackageManager:
    """Command templates for one system package manager."""

    name = ""
    binary = ""
    needs_sudo = True
    runtime_packages: Sequence[str] = ("nodejs", "npm")
    # Setup script that registers a versioned Node.js repository, if the vendor has one.
    nodesource_setup_url: Optional[str] = None

    def _privileged(self, cmd: List[str]) -> List[str]:
        return with_sudo(cmd) if self.needs_sudo else cmd

    def update_index_cmd(self) -> Optional[List[str]]:
        return None

    def install_cmd(self, packages: Sequence[str]) -> List[str]:
        raise NotImplementedError

    def runtime_setup_url(self, major: str) -> Optional[str]:
        if self.nodesource_setup_url is None:
            return None
        return self.nodesource_setup_url.format(major=major)

    def runtime_install_cmd(self, major: str) -> List[str]:
        return self.install_cmd(self.runtime_packages)

    def pins_runtime_version(self) -> bool:
        return self.nodesource_setup_url is not None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class AptPackageManager(PackageManager):
    name = "apt"
    binary = "apt-get"
    runtime_packages = ("nodejs",)
    nodesource_setup_url = NODESOURCE_DEB_SETUP_URL

    def update_index_cmd(self):
        return self._privileged(["apt-get", "update"])

    def install_cmd(self, packages):
        return self._privileged(["apt-get", "install", "-y", *packages])


class DnfPackageManager(PackageManager):
    name = "dnf"
    binary = "dnf"
    runtime_packages = ("nodejs",)
    nodesource_setup_url = NODESOURCE_RPM_SETUP_URL

    def install_cmd(self, packages):
        return self._privileged([self.binary, "install", "-y", *packages])


class YumPackageManager(DnfPackageManager):
    name = "yum"
    binary = "yum"


class ZypperPackageManager(PackageManager):
    name = "zypper"
    binary = "zypper"

    def update_index_cmd(self):
        return self._privileged(["zypper", "--non-interactive", "refresh"])

    def install_cmd(self, packages):
        return self._privileged(["zypper", "--non-interactive", "install", *packages])

    def runtime_install_cmd(self, major):
        return self.install_cmd([f"nodejs{major}", f"npm{major}"])

    def pins_runtime_version(self):
        return True


class PacmanPackageManager(PackageManager):
    name = "pacman"
    binary = "pacman"

    def update_index_cmd(self):
        return self._privileged(["pacman", "-Sy", "--noconfirm"])

    def install_cmd(self, packages):
        return self._privileged(["pacman", "-S", "--noconfirm", "--needed", *packages])


class ApkPackageManager(PackageManager):
    name = "apk"
    binary = "apk"

    def update_index_cmd(self):
        return self._privileged(["apk", "update"])

    def install_cmd(self, packages):
        return self._privileged(["apk", "add", "--no-cache", *packages])


class BrewPackageManager(PackageManager):
    name = "brew"
    binary = "brew"
    needs_sudo = False

    def update_index_cmd(self):
        return ["brew", "update"]

    def install_cmd(self, packages):
        return ["brew", "install", *packages]

    def runtime_install_cmd(self, major):
        return ["brew", "install", f"node@{major}"]

    def pins_runtime_version(self):
        return True


PACKAGE_MANAGERS: Sequence[Type[PackageManager]] = (
    AptPackageManager,
    DnfPackageManager,
    YumPackageManager,
    ZypperPackageManager,
    PacmanPackageManager,
    ApkPackageManager,
    BrewPackageManager,
)


def detect_package_manager(
    which: Callable[[str], Optional[str]] = shutil.which,
    candidates: Sequence[Type[PackageManager]] = PACKAGE_MANAGERS,
) -> PackageManager:
    """Returns the first available package manager in priority order."""
    for manager_cls in candidates:
        if which(manager_cls.binary):
            return manager_cls()

    names = ", ".join(manager_cls.binary for manager_cls in candidates)
    raise NoPackageManager(actionable_error("no_package_manager", candidates=names))
