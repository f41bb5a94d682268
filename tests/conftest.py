import os

# Настройки читаются при импорте zivpn_panel.config
os.environ["OWNER_USERNAME"] = "owner"
os.environ["OWNER_PASSWORD"] = "owner-secret"
os.environ["SECRET_KEY"] = "test-secret-key"

from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from zivpn_panel.database import get_store
from zivpn_panel.main import app
from zivpn_panel.remote.executor import RemoteExecutor, get_executor
from zivpn_panel.routers.backups import get_backup_service
from zivpn_panel.schemas import SshConfig
from zivpn_panel.services.backups import BackupService
from zivpn_panel.storage.json_store import JsonFileStore

OWNER = {"username": "owner", "password": "owner-secret"}


class FakeExecutor(RemoteExecutor):
    """Запоминает вызовы вместо запуска воркера."""

    def __init__(self):
        self.calls: List[Tuple[str, SshConfig, Dict[str, Any]]] = []
        self.results: Dict[str, Dict[str, Any]] = {}

    async def run(self, action: str, ssh_config: SshConfig, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.calls.append((action, ssh_config, payload or {}))
        return dict(self.results.get(action, {"success": True}))


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(tmp_path / "data")


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def client(store, executor, tmp_path):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_executor] = lambda: executor
    app.dependency_overrides[get_backup_service] = lambda: BackupService(store, tmp_path / "backups")
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def login(client, username: str = OWNER["username"], password: str = OWNER["password"]):
    client.cookies.clear()
    response = client.post("/api/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return response


@pytest.fixture
def owner_client(client):
    login(client)
    return client


@pytest.fixture
def server_id(owner_client):
    response = owner_client.post("/api/manage-server", json={
        "name": "Frankfurt",
        "host": "10.0.0.1",
        "username": "root",
        "password": "root-pass",
    })
    assert response.status_code == 200, response.text
    return response.json()["server"]["id"]
