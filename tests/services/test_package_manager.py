import pytest

import nextdeploy.services.package_manager as package_manager_module
from nextdeploy.errors import NoPackageManager
from nextdeploy.services.package_manager import (
    AptPackageManager,
    BrewPackageManager,
    DnfPackageManager,
    PacmanPackageManager,
    detect_package_manager,
    with_sudo,
)


def _which_for(*available):
    return lambda name: f"/usr/bin/{name}" if name in available else None


def test_detects_first_manager_in_priority_order():
    manager = detect_package_manager(_which_for("pacman", "apt-get", "brew"))

    assert isinstance(manager, AptPackageManager)


def test_detects_yum_when_dnf_is_absent():
    manager = detect_package_manager(_which_for("yum"))

    assert manager.name == "yum"
    assert manager.install_cmd(["git"])[-4:] == ["yum", "install", "-y", "git"]


def test_raises_when_no_manager_is_available():
    with pytest.raises(NoPackageManager, match="apt-get, dnf, yum"):
        detect_package_manager(_which_for())


def test_sudo_prefix_depends_on_privileges(monkeypatch):
    monkeypatch.setattr(package_manager_module, "is_root", lambda: False)
    assert with_sudo(["apt-get", "update"]) == ["sudo", "apt-get", "update"]
    assert with_sudo(["bash", "setup.sh"], preserve_env=True) == ["sudo", "-E", "bash", "setup.sh"]

    monkeypatch.setattr(package_manager_module, "is_root", lambda: True)
    assert with_sudo(["apt-get", "update"]) == ["apt-get", "update"]


def test_apt_uses_nodesource_for_pinned_runtime(monkeypatch):
    monkeypatch.setattr(package_manager_module, "is_root", lambda: True)
    manager = AptPackageManager()

    assert manager.runtime_setup_url("18") == "https://deb.nodesource.com/setup_18.x"
    assert manager.runtime_install_cmd("18") == ["apt-get", "install", "-y", "nodejs"]
    assert manager.update_index_cmd() == ["apt-get", "update"]
    assert manager.pins_runtime_version() is True


def test_dnf_uses_rpm_nodesource_script():
    assert DnfPackageManager().runtime_setup_url("20") == "https://rpm.nodesource.com/setup_20.x"


def test_brew_never_uses_sudo_and_installs_versioned_formula(monkeypatch):
    monkeypatch.setattr(package_manager_module, "is_root", lambda: False)
    manager = BrewPackageManager()

    assert manager.install_cmd(["git"]) == ["brew", "install", "git"]
    assert manager.runtime_install_cmd("18") == ["brew", "install", "node@18"]
    assert manager.runtime_setup_url("18") is None


def test_pacman_cannot_pin_runtime_version(monkeypatch):
    monkeypatch.setattr(package_manager_module, "is_root", lambda: True)
    manager = PacmanPackageManager()

    assert manager.pins_runtime_version() is False
    assert manager.runtime_install_cmd("18") == [
        "pacman",
        "-S",
        "--noconfirm",
        "--needed",
        "nodejs",
        "npm",
    ]
