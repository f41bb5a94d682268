import asyncio
import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import ValidationError

from zivpn_panel.errors import NotFound, ValidationFailed
from zivpn_panel.expiry import utcnow
from zivpn_panel.schemas import BackupSnapshot, Credential, ServerDefinition, VpnUser
from zivpn_panel.storage.base import CREDENTIALS, SERVERS, VPN_USERS, DocumentStore

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "backup_"
TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
FILENAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+\.json$")


class BackupService:
    """Снимки серверов, менеджеров и VPN-пользователей."""

    def __init__(self, store: DocumentStore, backups_dir: Union[str, Path]):
        self.store = store
        self.backups_dir = Path(backups_dir)

    async def snapshot(self, now: Optional[datetime] = None) -> BackupSnapshot:
        """Собрать снимок из текущих данных (VPN-пользователи сгруппированы по serverId)."""
        credentials = [Credential.model_validate(d) for d in await self.store.read(CREDENTIALS)]
        servers = [ServerDefinition.model_validate(d) for d in await self.store.read(SERVERS)]
        vpn_users = [VpnUser.model_validate(d) for d in await self.store.read(VPN_USERS)]

        grouped: Dict[str, List[VpnUser]] = {}
        for user in vpn_users:
            grouped.setdefault(user.server_id, []).append(user)

        return BackupSnapshot.model_validate({
            "servers": [s.to_document() for s in servers],
            "managers": [c.to_document() for c in credentials if c.role == "manager"],
            "vpnUsers": {
                server_id: [u.to_document() for u in users]
                for server_id, users in grouped.items()
            },
            "createdAt": now or utcnow(),
        })

    async def create_backup(self, now: Optional[datetime] = None) -> str:
        """Записать снимок в новый файл backup_<дата>.json и вернуть его имя."""
        now = now or utcnow()
        snapshot = await self.snapshot(now)
        content = json.dumps(snapshot.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False)
        filename = await asyncio.to_thread(self._write_new_file, now, content)
        logger.info(f"Backup created: {filename}")
        return filename

    def _write_new_file(self, now: datetime, content: str) -> str:
        self.backups_dir.mkdir(parents=True, exist_ok=True)
        stem = f"{BACKUP_PREFIX}{now.strftime(TIMESTAMP_FORMAT)}"
        filename = f"{stem}.json"
        counter = 1
        while (self.backups_dir / filename).exists():
            filename = f"{stem}_{counter}.json"
            counter += 1
        (self.backups_dir / filename).write_text(content, encoding="utf-8")
        return filename

    async def list_backups(self) -> List[str]:
        """Имена файлов резервных копий, новые первыми."""
        def _list() -> List[str]:
            if not self.backups_dir.is_dir():
                return []
            return [p.name for p in self.backups_dir.iterdir() if p.is_file() and p.suffix == ".json"]

        return sorted(await asyncio.to_thread(_list), reverse=True)

    def _backup_path(self, filename: str) -> Path:
        if not FILENAME_PATTERN.match(filename) or filename.startswith("."):
            raise ValidationFailed("Invalid backup filename.")
        return self.backups_dir / filename

    async def load_backup(self, filename: str) -> BackupSnapshot:
        path = self._backup_path(filename)
        if not await asyncio.to_thread(path.is_file):
            raise NotFound("Backup file not found.")
        raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        try:
            return BackupSnapshot.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ValidationFailed(f"Backup file is not a valid snapshot: {e}")

    async def restore(self, snapshot: BackupSnapshot) -> Dict[str, int]:
        """Заменить (а не объединить) все три коллекции содержимым снимка.

        Владелец берётся из текущих данных, а не из снимка. Транзакции между
        коллекциями нет: каждая перезаписывается отдельным вызовом.
        """
        live_credentials = [Credential.model_validate(d) for d in await self.store.read(CREDENTIALS)]
        live_owner = next((c for c in live_credentials if c.role == "owner"), None)

        await self.store.write(SERVERS, [])
        await self.store.write(CREDENTIALS, [])
        await self.store.write(VPN_USERS, [])

        await self.store.write(SERVERS, [s.to_document() for s in snapshot.servers])

        managers = [m for m in snapshot.managers if m.role != "owner"]
        credentials = [m.to_document() for m in managers]
        if live_owner is not None:
            credentials.append(live_owner.to_document())
        await self.store.write(CREDENTIALS, credentials)

        vpn_users = []
        for server_id, users in snapshot.vpn_users.items():
            for user in users:
                vpn_users.append(VpnUser.model_validate({**user.to_document(), "serverId": server_id}))
        await self.store.write(VPN_USERS, [u.to_document() for u in vpn_users])

        counts = {
            "servers": len(snapshot.servers),
            "managers": len(managers),
            "vpnUsers": len(vpn_users),
        }
        logger.info(f"Backup restored: {counts}")
        return counts
