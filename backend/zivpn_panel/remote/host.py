import logging
import shlex
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import paramiko

from zivpn_panel.schemas import SshConfig

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.05
RECV_BUFFER = 32768


class CommandTimeout(Exception):
    pass


class RemoteCommandError(Exception):
    pass


@dataclass
class CommandResult:
    stdout: str
    stderr: str
    exit_status: Optional[int] = None


class RemoteHost(ABC):
    """Одно соединение с удалённым хостом."""

    def __init__(self, config: SshConfig, connect_timeout: float = 10.0):
        self.config = config
        self.connect_timeout = connect_timeout

    @abstractmethod
    def connect(self) -> None:
        ...

    @abstractmethod
    def run(self, command: str, timeout: float) -> CommandResult:
        """Выполнить команду; CommandTimeout, если она не завершилась вовремя."""

    @abstractmethod
    def read_file(self, path: str) -> Optional[str]:
        """Прочитать файл; None, если его нет."""

    @abstractmethod
    def write_file(self, path: str, data: str) -> None:
        ...

    @abstractmethod
    def make_dirs(self, path: str, timeout: float) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        """Закрыть соединение. Безопасно вызывать в любом состоянии."""


class ParamikoHost(RemoteHost):
    """RemoteHost поверх paramiko: exec-каналы и SFTP."""

    def __init__(self, config: SshConfig, connect_timeout: float = 10.0):
        super().__init__(config, connect_timeout)
        self.client: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None

    def connect(self) -> None:
        client = paramiko.SSHClient()
        # Хосты добавляются панелью вручную, ключи заранее неизвестны
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        client.connect(
            hostname=self.config.host,
            port=self.config.port,
            username=self.config.username,
            password=self.config.password,
            timeout=self.connect_timeout,
            banner_timeout=self.connect_timeout,
            auth_timeout=self.connect_timeout,
            look_for_keys=False,
            allow_agent=False,
        )
        self.client = client

    def _require_client(self) -> paramiko.SSHClient:
        if self.client is None:
            raise RuntimeError("Not connected")
        return self.client

    def _sftp_client(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            self._sftp = self._require_client().open_sftp()
        return self._sftp

    def run(self, command: str, timeout: float) -> CommandResult:
        transport = self._require_client().get_transport()
        if transport is None or not transport.is_active():
            raise RemoteCommandError("SSH session is not active")

        channel = transport.open_session()
        stdout, stderr = [], []
        deadline = time.monotonic() + timeout
        try:
            channel.exec_command(command)
            while True:
                # Срок проверяется до чтения: поток вывода может не прекращаться
                if time.monotonic() > deadline:
                    raise CommandTimeout(f"Command timed out after {timeout:g}s.")
                if channel.recv_ready():
                    stdout.append(channel.recv(RECV_BUFFER))
                elif channel.recv_stderr_ready():
                    stderr.append(channel.recv_stderr(RECV_BUFFER))
                elif channel.exit_status_ready() or channel.closed:
                    break
                else:
                    time.sleep(POLL_INTERVAL)

            exit_status = channel.recv_exit_status() if channel.exit_status_ready() else None
        finally:
            channel.close()

        return CommandResult(
            stdout=b"".join(stdout).decode("utf-8", errors="replace"),
            stderr=b"".join(stderr).decode("utf-8", errors="replace"),
            exit_status=exit_status,
        )

    def read_file(self, path: str) -> Optional[str]:
        try:
            with self._sftp_client().open(path, "r") as remote_file:
                return remote_file.read().decode("utf-8", errors="replace")
        except FileNotFoundError:
            return None

    def write_file(self, path: str, data: str) -> None:
        with self._sftp_client().open(path, "w") as remote_file:
            remote_file.write(data.encode("utf-8"))

    def make_dirs(self, path: str, timeout: float) -> None:
        # У SFTP нет аналога mkdir -p
        result = self.run(f"mkdir -p {shlex.quote(path)}", timeout)
        if result.exit_status not in (0, None):
            raise RemoteCommandError(result.stderr.strip() or f"mkdir -p {path} failed")

    def close(self) -> None:
        if self._sftp is not None:
            try:
                self._sftp.close()
            except Exception as e:
                logger.debug(f"Failed to close SFTP session: {e}")
            self._sftp = None
        if self.client is not None:
            self.client.close()
            self.client = None
