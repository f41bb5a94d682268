"""Одно административное действие над одним удалённым VPN-хостом.

На каждый вызов открывается новое соединение, которое закрывается до
возврата результата. Повторов и пула соединений нет: неудачная попытка
окончательна, оператор может повторить её вручную.
"""
import copy
import json
import logging
import posixpath
import socket
from typing import Any, Callable, Dict, List, Optional

import paramiko

from zivpn_panel.config import DEFAULT_SERVICE_COMMAND, RESET_SCRIPT_COMMAND
from zivpn_panel.jsontree import get_at_path, set_at_path
from zivpn_panel.remote.host import CommandResult, ParamikoHost, RemoteHost
from zivpn_panel.schemas import SshConfig

logger = logging.getLogger(__name__)

TTY_WARNING = "not a tty"

DEFAULT_VPN_CONFIG: Dict[str, Any] = {
    "listen": ":5667",
    "cert": "/etc/zivpn/zivpn.crt",
    "key": "/etc/zivpn/zivpn.key",
    "obfs": "zivpn",
    "auth": {
        "mode": "passwords",
        "config": [],
    },
}

HostFactory = Callable[[SshConfig, float], RemoteHost]


class RemoteActionError(Exception):
    pass


def filter_stderr(stderr: str) -> str:
    """Убрать из stderr безвредное предупреждение о TTY."""
    lines = [line for line in stderr.splitlines() if TTY_WARNING not in line]
    return "\n".join(lines).strip()


def describe_connection_error(exc: BaseException, config: SshConfig) -> str:
    if isinstance(exc, socket.gaierror):
        return f"Host not found: could not resolve {config.host}."
    if isinstance(exc, paramiko.AuthenticationException):
        return "Authentication failed. Check username/password."
    if isinstance(exc, (TimeoutError, socket.timeout)) or "timed out" in str(exc).lower():
        return "Connection timed out. Check the host IP, port and firewall."
    return str(exc) or exc.__class__.__name__


def log_entry(level: str, message: str) -> Dict[str, str]:
    return {"level": level, "message": message}


class Orchestrator:
    ACTIONS = ("testConnection", "updateVpnConfig", "restartService", "resetConfig")

    def __init__(
        self,
        host_factory: HostFactory = ParamikoHost,
        connect_timeout: float = 10.0,
        command_timeout: float = 15.0,
        script_timeout: float = 60.0,
        default_service_command: str = DEFAULT_SERVICE_COMMAND,
        reset_script_command: str = RESET_SCRIPT_COMMAND,
        config_path: str = "/etc/zivpn/config.json",
    ):
        self.host_factory = host_factory
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.script_timeout = script_timeout
        self.default_service_command = default_service_command
        self.reset_script_command = reset_script_command
        self.config_path = config_path

    @classmethod
    def from_settings(cls, settings, host_factory: HostFactory = ParamikoHost) -> "Orchestrator":
        return cls(
            host_factory=host_factory,
            connect_timeout=settings.SSH_CONNECT_TIMEOUT,
            command_timeout=settings.REMOTE_COMMAND_TIMEOUT,
            script_timeout=settings.RESET_SCRIPT_TIMEOUT,
            default_service_command=settings.DEFAULT_SERVICE_COMMAND,
            reset_script_command=settings.RESET_SCRIPT_COMMAND,
            config_path=settings.REMOTE_CONFIG_PATH,
        )

    def execute(self, action: str, config: SshConfig, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Выполнить действие; неудача любого действия, кроме testConnection, - исключение."""
        if action not in self.ACTIONS:
            raise RemoteActionError(f"Invalid action specified: '{action}'")
        if action == "testConnection":
            return self.test_connection(config)

        handlers = {
            "updateVpnConfig": self.update_vpn_config,
            "restartService": self.restart_service,
            "resetConfig": self.reset_config,
        }
        host = self.host_factory(config, self.connect_timeout)
        try:
            try:
                host.connect()
            except Exception as e:
                raise RemoteActionError(describe_connection_error(e, config)) from e
            return handlers[action](host, config, payload or {})
        finally:
            host.close()

    def test_connection(self, config: SshConfig) -> Dict[str, Any]:
        log: List[Dict[str, str]] = [
            log_entry("INFO", f"Attempting to connect to {config.username}@{config.host}:{config.port}..."),
        ]
        host = self.host_factory(config, self.connect_timeout)
        try:
            host.connect()
            log.append(log_entry("SUCCESS", "Connection established & authenticated."))
            return {"success": True, "message": "Connection successful", "log": log}
        except Exception as e:
            error = describe_connection_error(e, config)
            logger.warning(f"Connection test to {config.host} failed: {e!r}")
            log.append(log_entry("ERROR", error))
            return {"success": False, "error": error, "log": log}
        finally:
            host.close()

    def _parse_config(self, raw: Optional[str]) -> Dict[str, Any]:
        if not raw or not raw.strip():
            return copy.deepcopy(DEFAULT_VPN_CONFIG)
        try:
            config = json.loads(raw)
        except ValueError:
            logger.warning(f"{self.config_path} is not valid JSON, using the default config")
            return copy.deepcopy(DEFAULT_VPN_CONFIG)
        if not isinstance(config, dict):
            return copy.deepcopy(DEFAULT_VPN_CONFIG)
        return config

    def update_vpn_config(self, host: RemoteHost, config: SshConfig, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Переписать только auth.config удалённого конфига: пароль равен имени."""
        usernames = payload.get("usernames")
        if not isinstance(usernames, list) or not all(isinstance(u, str) for u in usernames):
            raise RemoteActionError("Payload must contain a list of usernames.")

        vpn_config = self._parse_config(host.read_file(self.config_path))
        previous = get_at_path(vpn_config, ["auth", "config"], [])
        vpn_config = set_at_path(
            vpn_config,
            ["auth", "config"],
            [{"user": username, "pass": username} for username in usernames],
        )

        host.make_dirs(posixpath.dirname(self.config_path), self.command_timeout)
        host.write_file(self.config_path, json.dumps(vpn_config, indent=2))

        previous_count = len(previous) if isinstance(previous, list) else 0
        logger.info(f"{config.host}: auth.config {previous_count} -> {len(usernames)} user(s)")
        return {"success": True, "message": "Config updated on VPS", "data": {"users": len(usernames)}}

    def _checked(self, result: CommandResult, prefix: str = "") -> CommandResult:
        errors = filter_stderr(result.stderr)
        if errors:
            raise RemoteActionError(f"{prefix}{errors}")
        return result

    def restart_service(self, host: RemoteHost, config: SshConfig, payload: Dict[str, Any]) -> Dict[str, Any]:
        command = config.service_command or self.default_service_command
        result = self._checked(host.run(f"sudo {command}", self.command_timeout))
        return {"success": True, "data": result.stdout}

    def reset_config(self, host: RemoteHost, config: SshConfig, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._checked(host.run(self.reset_script_command, self.script_timeout), "Script execution failed: ")
        return {"success": True, "message": "Reset script executed."}
