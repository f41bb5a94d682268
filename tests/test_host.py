import json
import time
from typing import Dict, List, Optional

import pytest

from zivpn_panel.remote.host import CommandTimeout, ParamikoHost, RemoteCommandError
from zivpn_panel.remote.orchestrator import DEFAULT_VPN_CONFIG, Orchestrator
from zivpn_panel.schemas import SshConfig

CONFIG_PATH = "/etc/zivpn/config.json"
SSH = SshConfig(host="vpn.example.com", username="root", password="pw")


class FakeChannel:
    """Канал paramiko с заранее заданным выводом."""

    def __init__(
        self,
        stdout: bytes = b"",
        stderr: bytes = b"",
        exit_status: int = 0,
        endless_output: bool = False,
        finishes: bool = True,
    ):
        self._stdout = [stdout] if stdout else []
        self._stderr = [stderr] if stderr else []
        self.exit_status = exit_status
        self.endless_output = endless_output
        self.finishes = finishes
        self.command: Optional[str] = None
        self.closed = False

    def exec_command(self, command: str) -> None:
        self.command = command

    def recv_ready(self) -> bool:
        return self.endless_output or bool(self._stdout)

    def recv(self, size: int) -> bytes:
        if self.endless_output:
            return b"y\n"
        return self._stdout.pop(0)

    def recv_stderr_ready(self) -> bool:
        return bool(self._stderr)

    def recv_stderr(self, size: int) -> bytes:
        return self._stderr.pop(0)

    def exit_status_ready(self) -> bool:
        return self.finishes and not self.endless_output

    def recv_exit_status(self) -> int:
        return self.exit_status

    def close(self) -> None:
        self.closed = True


class FakeTransport:
    def __init__(self, channels: List[FakeChannel]):
        self.channels = channels
        self.opened: List[FakeChannel] = []

    def is_active(self) -> bool:
        return True

    def open_session(self) -> FakeChannel:
        channel = self.channels.pop(0) if self.channels else FakeChannel()
        self.opened.append(channel)
        return channel


class FakeRemoteFile:
    def __init__(self, sftp: "FakeSftp", path: str, mode: str):
        self.sftp = sftp
        self.path = path
        self.mode = mode

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def read(self) -> bytes:
        return self.sftp.files[self.path]

    def write(self, data: bytes) -> None:
        self.sftp.files[self.path] = data


class FakeSftp:
    def __init__(self, files: Optional[Dict[str, bytes]] = None):
        self.files = dict(files or {})
        self.close_calls = 0

    def open(self, path: str, mode: str = "r") -> FakeRemoteFile:
        if "r" in mode and path not in self.files:
            raise FileNotFoundError(2, "No such file")
        return FakeRemoteFile(self, path, mode)

    def close(self) -> None:
        self.close_calls += 1


class FakeClient:
    def __init__(self, channels: Optional[List[FakeChannel]] = None, files: Optional[Dict[str, bytes]] = None):
        self.transport = FakeTransport(list(channels or []))
        self.sftp = FakeSftp(files)
        self.close_calls = 0

    def get_transport(self) -> FakeTransport:
        return self.transport

    def open_sftp(self) -> FakeSftp:
        return self.sftp

    def close(self) -> None:
        self.close_calls += 1


def connected_host(client: FakeClient) -> ParamikoHost:
    host = ParamikoHost(SSH)
    host.client = client
    return host


class FakeClientHost(ParamikoHost):
    """ParamikoHost, который вместо сети подключается к FakeClient."""

    fake_client: FakeClient

    def connect(self) -> None:
        self.client = self.fake_client


def test_run_collects_output_and_exit_status():
    channel = FakeChannel(stdout=b"active\n", stderr=b"stty: not a tty\n", exit_status=0)
    host = connected_host(FakeClient([channel]))

    result = host.run("systemctl is-active zivpn", timeout=5)

    assert result.stdout == "active\n"
    assert result.stderr == "stty: not a tty\n"
    assert result.exit_status == 0
    assert channel.command == "systemctl is-active zivpn"
    assert channel.closed


def test_timeout_fires_while_output_keeps_coming():
    channel = FakeChannel(endless_output=True)
    host = connected_host(FakeClient([channel]))

    started = time.monotonic()
    with pytest.raises(CommandTimeout, match="timed out"):
        host.run("yes", timeout=0.2)

    assert time.monotonic() - started < 2
    assert channel.closed


def test_timeout_fires_on_silent_command():
    channel = FakeChannel(finishes=False)
    host = connected_host(FakeClient([channel]))

    with pytest.raises(CommandTimeout):
        host.run("sleep 100", timeout=0.1)
    assert channel.closed


def test_run_requires_connection():
    with pytest.raises(RuntimeError):
        ParamikoHost(SSH).run("true", timeout=1)


def test_missing_file_reads_as_none():
    host = connected_host(FakeClient())
    assert host.read_file(CONFIG_PATH) is None


def test_invalid_utf8_file_is_still_readable():
    host = connected_host(FakeClient(files={CONFIG_PATH: b"\xff\xfe{not utf8"}))
    content = host.read_file(CONFIG_PATH)
    assert isinstance(content, str)
    assert "{not utf8" in content


def test_write_file_encodes_utf8():
    client = FakeClient()
    connected_host(client).write_file(CONFIG_PATH, '{"obfs": "зивпн"}')
    assert client.sftp.files[CONFIG_PATH] == '{"obfs": "зивпн"}'.encode("utf-8")


def test_make_dirs_failure_raises():
    channel = FakeChannel(stderr=b"mkdir: cannot create directory '/etc/zivpn': Permission denied\n", exit_status=1)
    host = connected_host(FakeClient([channel]))

    with pytest.raises(RemoteCommandError, match="Permission denied"):
        host.make_dirs("/etc/zivpn", timeout=5)
    assert channel.command == "mkdir -p /etc/zivpn"


def test_make_dirs_quotes_path():
    channel = FakeChannel()
    connected_host(FakeClient([channel])).make_dirs("/opt/my dir", timeout=5)
    assert channel.command == "mkdir -p '/opt/my dir'"


def test_close_is_idempotent():
    client = FakeClient(files={CONFIG_PATH: b"{}"})
    host = connected_host(client)
    host.read_file(CONFIG_PATH)

    host.close()
    host.close()

    assert client.sftp.close_calls == 1
    assert client.close_calls == 1
    assert host.client is None
    ParamikoHost(SSH).close()


def test_update_config_replaces_undecodable_file():
    client = FakeClient(files={CONFIG_PATH: b"\xff\xfe{not utf8"})

    def factory(config, timeout):
        host = FakeClientHost(config, timeout)
        host.fake_client = client
        return host

    result = Orchestrator(host_factory=factory).execute("updateVpnConfig", SSH, {"usernames": ["alice"]})

    assert result["success"] is True
    written = json.loads(client.sftp.files[CONFIG_PATH].decode("utf-8"))
    assert written["listen"] == DEFAULT_VPN_CONFIG["listen"]
    assert written["auth"]["config"] == [{"user": "alice", "pass": "alice"}]
    assert client.transport.opened[0].command == "mkdir -p /etc/zivpn"
    assert client.close_calls == 1
