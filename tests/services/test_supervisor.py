import json
import subprocess

import pytest

import nextdeploy.services.supervisor as supervisor_module
from nextdeploy.errors import (
    CommandError,
    StatusCheckFailed,
    SupervisorPersistFailed,
    SupervisorStartFailed,
)
from nextdeploy.services.supervisor import Pm2Client


class DummyLogger:
    def __init__(self):
        self.infos = []

    def info(self, message, *args):
        self.infos.append(message % args if args else message)


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class FakePm2:
    """Keeps a PM2-like process table in memory."""

    def __init__(self, processes=None, fail=(), status="online", jlist_prefix=""):
        self.processes = list(processes or [])
        self.fail = set(fail)
        self.status = status
        self.jlist_prefix = jlist_prefix
        self.calls = []

    def __call__(self, cmd, check=True, capture_output=True, cwd=None, env=None):
        self.calls.append((cmd, cwd))
        pm2_args = cmd[cmd.index("pm2") + 1 :]
        action = pm2_args[0]
        if action in self.fail:
            if not check:
                return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="")
            raise CommandError(f"Command failed (1): {' '.join(cmd)}", cmd=cmd, returncode=1)
        if action == "delete":
            name = pm2_args[1]
            if name not in self.processes:
                return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="not found")
            self.processes = [proc for proc in self.processes if proc != name]
        elif action == "start":
            self.processes.append(pm2_args[pm2_args.index("--name") + 1])
        elif action == "jlist":
            payload = [{"name": name, "pm2_env": {"status": self.status}} for name in self.processes]
            return subprocess.CompletedProcess(
                cmd, 0, stdout=self.jlist_prefix + json.dumps(payload) + "\n", stderr=""
            )
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")


@pytest.fixture(autouse=True)
def run_as_root(monkeypatch):
    monkeypatch.setattr(supervisor_module, "is_root", lambda: True)
    monkeypatch.setattr(supervisor_module.getpass, "getuser", lambda: "deploy")


def test_redeploy_replaces_existing_instance(tmp_path):
    pm2 = FakePm2(processes=["demo", "other"])
    client = Pm2Client(DummyLogger(), DummyConsole(), pm2)

    status = client.redeploy("demo", str(tmp_path))

    assert status == "online"
    assert sorted(pm2.processes) == ["demo", "other"]
    actions = [cmd[1] for cmd, _ in pm2.calls]
    assert actions == ["delete", "start", "save", "startup", "jlist"]
    start_cmd, start_cwd = pm2.calls[1]
    assert start_cmd == [
        "pm2",
        "start",
        "npm",
        "--name",
        "demo",
        "--cwd",
        str(tmp_path),
        "--",
        "run",
        "start",
    ]
    assert start_cwd == str(tmp_path)


def test_redeploy_twice_keeps_a_single_instance(tmp_path):
    pm2 = FakePm2()
    client = Pm2Client(DummyLogger(), DummyConsole(), pm2)

    client.redeploy("demo", str(tmp_path))
    client.redeploy("demo", str(tmp_path))

    assert pm2.processes == ["demo"]


def test_missing_previous_instance_is_informational(tmp_path):
    logger = DummyLogger()
    client = Pm2Client(logger, DummyConsole(), FakePm2())

    client.redeploy("demo", str(tmp_path))

    assert "No previous PM2 process named 'demo'" in logger.infos


def test_start_failure_is_fatal(tmp_path):
    client = Pm2Client(DummyLogger(), DummyConsole(), FakePm2(fail={"start"}))

    with pytest.raises(SupervisorStartFailed, match="Failed to start PM2 process 'demo'"):
        client.redeploy("demo", str(tmp_path))


@pytest.mark.parametrize("action,text", [("save", "save PM2 process list"), ("startup", "setup PM2 startup")])
def test_persistence_failures_are_fatal(tmp_path, action, text):
    client = Pm2Client(DummyLogger(), DummyConsole(), FakePm2(fail={action}))

    with pytest.raises(SupervisorPersistFailed, match=text):
        client.redeploy("demo", str(tmp_path))


def test_startup_uses_sudo_env_path_when_not_root(monkeypatch):
    monkeypatch.setattr(supervisor_module, "is_root", lambda: False)
    monkeypatch.setenv("PATH", "/usr/local/bin:/usr/bin")
    monkeypatch.setenv("HOME", "/home/deploy")
    client = Pm2Client(DummyLogger(), DummyConsole(), FakePm2())

    assert client.startup_cmd() == [
        "sudo",
        "env",
        "PATH=/usr/local/bin:/usr/bin",
        "pm2",
        "startup",
        "systemd",
        "-u",
        "deploy",
        "--hp",
        "/home/deploy",
    ]


def test_status_query_failure_is_fatal(tmp_path):
    client = Pm2Client(DummyLogger(), DummyConsole(), FakePm2(fail={"jlist"}))

    with pytest.raises(StatusCheckFailed, match="demo"):
        client.redeploy("demo", str(tmp_path))


def test_status_rejects_non_online_instance():
    client = Pm2Client(DummyLogger(), DummyConsole(), FakePm2(processes=["demo"], status="errored"))

    with pytest.raises(StatusCheckFailed, match="status is errored"):
        client.status("demo")


def test_status_rejects_duplicate_instances():
    client = Pm2Client(DummyLogger(), DummyConsole(), FakePm2(processes=["demo", "demo"]))

    with pytest.raises(StatusCheckFailed, match="2 instances registered"):
        client.status("demo")


def test_status_ignores_notices_before_json_payload():
    pm2 = FakePm2(processes=["demo"], jlist_prefix=">>>> In-memory PM2 is out-of-date\n")
    client = Pm2Client(DummyLogger(), DummyConsole(), pm2)

    assert client.status("demo") == "online"


def test_status_rejects_unreadable_output():
    def garbage_run_cmd(cmd, **_kwargs):
        return subprocess.CompletedProcess(cmd, 0, stdout="not json at all", stderr="")

    client = Pm2Client(DummyLogger(), DummyConsole(), garbage_run_cmd)

    with pytest.raises(StatusCheckFailed, match="unreadable"):
        client.status("demo")
