import json
import socket
from typing import Dict, List, Optional

import paramiko
import pytest

from zivpn_panel.config import settings
from zivpn_panel.remote.host import CommandResult, CommandTimeout, RemoteHost
from zivpn_panel.remote.orchestrator import (
    DEFAULT_VPN_CONFIG,
    Orchestrator,
    RemoteActionError,
    filter_stderr,
)
from zivpn_panel.schemas import SshConfig

CONFIG_PATH = "/etc/zivpn/config.json"
SSH = SshConfig(host="vpn.example.com", username="root", password="pw")


class FakeHost(RemoteHost):
    def __init__(
        self,
        config: SshConfig,
        connect_timeout: float = 10.0,
        files: Optional[Dict[str, str]] = None,
        stderr: str = "",
        connect_error: Optional[BaseException] = None,
        run_error: Optional[BaseException] = None,
    ):
        super().__init__(config, connect_timeout)
        self.files = dict(files or {})
        self.stderr = stderr
        self.connect_error = connect_error
        self.run_error = run_error
        self.commands: List[str] = []
        self.dirs: List[str] = []
        self.connected = False
        self.closed = False

    def connect(self) -> None:
        if self.connect_error:
            raise self.connect_error
        self.connected = True

    def run(self, command: str, timeout: float) -> CommandResult:
        self.commands.append(command)
        if self.run_error:
            raise self.run_error
        return CommandResult(stdout="ok\n", stderr=self.stderr, exit_status=0)

    def read_file(self, path: str) -> Optional[str]:
        return self.files.get(path)

    def write_file(self, path: str, data: str) -> None:
        self.files[path] = data

    def make_dirs(self, path: str, timeout: float) -> None:
        self.dirs.append(path)

    def close(self) -> None:
        self.closed = True


def make_orchestrator(**host_options):
    hosts: List[FakeHost] = []

    def factory(config, timeout):
        host = FakeHost(config, timeout, **host_options)
        hosts.append(host)
        return host

    return Orchestrator(host_factory=factory), hosts


def test_update_config_without_file_uses_default_skeleton():
    orchestrator, hosts = make_orchestrator()

    result = orchestrator.execute("updateVpnConfig", SSH, {"usernames": ["alice", "bob"]})

    assert result["success"] is True
    written = json.loads(hosts[0].files[CONFIG_PATH])
    assert written["listen"] == DEFAULT_VPN_CONFIG["listen"]
    assert written["obfs"] == "zivpn"
    assert written["auth"] == {
        "mode": "passwords",
        "config": [{"user": "alice", "pass": "alice"}, {"user": "bob", "pass": "bob"}],
    }
    assert hosts[0].dirs == ["/etc/zivpn"]
    assert hosts[0].closed


def test_update_config_keeps_other_settings():
    existing = {
        "listen": ":6000",
        "custom": {"keep": True},
        "auth": {"mode": "passwords", "config": [{"user": "old", "pass": "old"}]},
    }
    orchestrator, hosts = make_orchestrator(files={CONFIG_PATH: json.dumps(existing)})

    orchestrator.execute("updateVpnConfig", SSH, {"usernames": ["new"]})

    written = json.loads(hosts[0].files[CONFIG_PATH])
    assert written["listen"] == ":6000"
    assert written["custom"] == {"keep": True}
    assert written["auth"]["config"] == [{"user": "new", "pass": "new"}]


def test_update_config_replaces_unparsable_file():
    orchestrator, hosts = make_orchestrator(files={CONFIG_PATH: "{broken"})
    orchestrator.execute("updateVpnConfig", SSH, {"usernames": []})
    written = json.loads(hosts[0].files[CONFIG_PATH])
    assert written["auth"]["config"] == []
    assert written["cert"] == DEFAULT_VPN_CONFIG["cert"]


def test_update_config_requires_username_list():
    orchestrator, hosts = make_orchestrator()
    with pytest.raises(RemoteActionError):
        orchestrator.execute("updateVpnConfig", SSH, {"usernames": "alice"})
    assert hosts[0].closed
    assert CONFIG_PATH not in hosts[0].files


def test_tty_warning_is_not_a_failure():
    orchestrator, hosts = make_orchestrator(stderr="stty: not a tty\n")
    result = orchestrator.execute("restartService", SSH)
    assert result == {"success": True, "data": "ok\n"}
    assert hosts[0].commands == ["sudo systemctl restart zivpn"]


def test_restart_uses_server_service_command():
    orchestrator, hosts = make_orchestrator()
    config = SSH.model_copy(update={"service_command": "systemctl restart zivpn-udp"})
    orchestrator.execute("restartService", config)
    assert hosts[0].commands == ["sudo systemctl restart zivpn-udp"]


def test_real_stderr_is_a_failure():
    orchestrator, hosts = make_orchestrator(stderr="stty: not a tty\nFailed to restart zivpn.service: Access denied\n")
    with pytest.raises(RemoteActionError, match="Access denied") as excinfo:
        orchestrator.execute("restartService", SSH)
    assert "not a tty" not in str(excinfo.value)
    assert hosts[0].closed


def test_reset_failure_is_prefixed():
    orchestrator, _ = make_orchestrator(stderr="wget: unable to resolve host address")
    with pytest.raises(RemoteActionError, match="^Script execution failed: wget"):
        orchestrator.execute("resetConfig", SSH)


def test_unknown_action_fails_before_connecting():
    orchestrator, hosts = make_orchestrator()
    with pytest.raises(RemoteActionError, match="Invalid action specified"):
        orchestrator.execute("rebootEverything", SSH)
    assert hosts == []


def test_connect_error_is_described_and_host_closed():
    orchestrator, hosts = make_orchestrator(connect_error=socket.gaierror(-2, "Name or service not known"))
    with pytest.raises(RemoteActionError, match="Host not found: could not resolve vpn.example.com"):
        orchestrator.execute("restartService", SSH)
    assert hosts[0].closed
    assert hosts[0].commands == []


def test_command_timeout_propagates():
    orchestrator, hosts = make_orchestrator(run_error=CommandTimeout("Command timed out after 15s."))
    with pytest.raises(CommandTimeout):
        orchestrator.execute("restartService", SSH)
    assert hosts[0].closed


def test_connection_test_success():
    orchestrator, hosts = make_orchestrator()
    result = orchestrator.execute("testConnection", SSH)
    assert result["success"] is True
    assert [entry["level"] for entry in result["log"]] == ["INFO", "SUCCESS"]
    assert hosts[0].closed


@pytest.mark.parametrize("error, message", [
    (paramiko.AuthenticationException("bad auth"), "Authentication failed"),
    (socket.timeout("timed out"), "Connection timed out"),
    (socket.gaierror(-2, "Name or service not known"), "Host not found"),
])
def test_connection_test_failure_is_classified(error, message):
    orchestrator, hosts = make_orchestrator(connect_error=error)
    result = orchestrator.execute("testConnection", SSH)
    assert result["success"] is False
    assert result["error"].startswith(message)
    assert result["log"][-1]["level"] == "ERROR"
    assert hosts[0].closed


def test_filter_stderr():
    assert filter_stderr("stty: not a tty\n") == ""
    assert filter_stderr("stty: not a tty\nreal problem\n") == "real problem"


def test_command_defaults_come_from_settings():
    orchestrator = Orchestrator.from_settings(settings)
    assert orchestrator.default_service_command == settings.DEFAULT_SERVICE_COMMAND
    assert orchestrator.reset_script_command == settings.RESET_SCRIPT_COMMAND
    assert Orchestrator().default_service_command == settings.DEFAULT_SERVICE_COMMAND
