import asyncio
import json
import logging
import os
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from zivpn_panel.schemas import SshConfig

logger = logging.getLogger(__name__)

WORKER_MODULE = "zivpn_panel.remote.worker"
# Каталог, из которого импортируется пакет zivpn_panel
PACKAGE_ROOT = Path(__file__).resolve().parents[2]


class RemoteExecutor(ABC):
    """Выполняет одно удалённое действие и возвращает структурированный результат."""

    @abstractmethod
    async def run(self, action: str, ssh_config: SshConfig, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        ...


def parse_worker_error(stderr: str) -> str:
    """Достать сообщение из последней JSON-строки stderr воркера."""
    for line in reversed(stderr.strip().splitlines()):
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            body = json.loads(line)
        except ValueError:
            continue
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
    return stderr.strip() or "An unknown error occurred in the SSH worker."


class SubprocessExecutor(RemoteExecutor):
    """Запускает отдельный процесс воркера на каждое действие."""

    def __init__(self, python: str = sys.executable, module: str = WORKER_MODULE):
        self.python = python
        self.module = module

    def _env(self) -> Dict[str, str]:
        env = dict(os.environ)
        paths = [str(PACKAGE_ROOT)]
        if env.get("PYTHONPATH"):
            paths.append(env["PYTHONPATH"])
        env["PYTHONPATH"] = os.pathsep.join(paths)
        return env

    async def run(self, action: str, ssh_config: SshConfig, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        request = {
            "action": action,
            "sshConfig": ssh_config.model_dump(by_alias=True),
            "payload": payload or {},
        }
        process = await asyncio.create_subprocess_exec(
            self.python, "-m", self.module,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=self._env(),
        )
        stdout, stderr = await process.communicate(json.dumps(request).encode("utf-8"))

        if process.returncode != 0:
            error = parse_worker_error(stderr.decode("utf-8", errors="replace"))
            logger.error(f"SSH worker failed: action={action} host={ssh_config.host}: {error}")
            return {"success": False, "error": error}

        try:
            result = json.loads(stdout.decode("utf-8") or "{}")
        except ValueError:
            logger.error(f"SSH worker returned invalid output for action={action}")
            return {"success": False, "error": "The SSH worker returned invalid output."}
        if not isinstance(result, dict):
            return {"success": False, "error": "The SSH worker returned invalid output."}
        result.setdefault("success", True)
        return result


_executor = SubprocessExecutor()


def get_executor() -> RemoteExecutor:
    return _executor
