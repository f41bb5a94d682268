"""Дочерний процесс для одного удалённого действия.

Читает из stdin один JSON-запрос `{"action", "sshConfig", "payload"}`.
Успех: JSON-результат в stdout, код 0. Ошибка: `{"error": ...}` последней
строкой stderr, код 1.

    python -m zivpn_panel.remote.worker < request.json
"""
import json
import logging
import sys
from typing import Any, Dict

from zivpn_panel.config import settings
from zivpn_panel.remote.orchestrator import Orchestrator
from zivpn_panel.schemas import SshConfig

logger = logging.getLogger(__name__)


def _fail(message: str, **details: Any) -> int:
    body: Dict[str, Any] = {"error": message}
    body.update(details)
    sys.stderr.write("\n" + json.dumps(body) + "\n")
    return 1


def main() -> int:
    # stdout занят ответом, поэтому логи только в stderr
    logging.basicConfig(
        level=logging.WARNING,
        stream=sys.stderr,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        request = json.loads(sys.stdin.read())
        action = request["action"]
        ssh_config = SshConfig.model_validate(request["sshConfig"])
        payload = request.get("payload") or {}
    except (ValueError, KeyError, TypeError) as e:
        return _fail("Invalid JSON input to the SSH worker.", details=str(e))

    orchestrator = Orchestrator.from_settings(settings)
    try:
        result = orchestrator.execute(action, ssh_config, payload)
    except Exception as e:
        logger.debug(f"Action '{action}' on {ssh_config.host} failed", exc_info=True)
        return _fail(str(e) or "An unknown error occurred in the SSH worker.")

    sys.stdout.write(json.dumps(result))
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
