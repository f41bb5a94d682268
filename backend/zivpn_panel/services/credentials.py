import logging
import secrets
from typing import List, Optional, Set

from zivpn_panel.auth import hash_password, verify_password
from zivpn_panel.config import settings
from zivpn_panel.errors import AuthenticationFailed, Conflict, NotFound, ValidationFailed
from zivpn_panel.expiry import expires_in, is_expired, utcnow
from zivpn_panel.schemas import Credential, ManagerCreate, ManagerUpdate, SessionUser
from zivpn_panel.storage.base import CREDENTIALS, SERVERS, DocumentStore

logger = logging.getLogger(__name__)


def new_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(8)}"


class CredentialService:
    """Учётные записи владельца и менеджеров."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def list_all(self) -> List[Credential]:
        return [Credential.model_validate(doc) for doc in await self.store.read(CREDENTIALS)]

    async def save_all(self, credentials: List[Credential]) -> None:
        await self.store.write(CREDENTIALS, [c.to_document() for c in credentials])

    async def list_managers(self) -> List[Credential]:
        return [c for c in await self.list_all() if c.role == "manager"]

    async def get_owner(self) -> Optional[Credential]:
        return next((c for c in await self.list_all() if c.role == "owner"), None)

    async def sync_owner(self, username: str) -> Credential:
        """Отразить владельца из конфигурации в хранилище.

        Источник истины для владельца - настройки OWNER_USERNAME/OWNER_PASSWORD;
        в хранилище держится ровно одна запись role=owner без пароля и срока.
        """
        before = await self.store.read(CREDENTIALS)
        credentials = [Credential.model_validate(doc) for doc in before]
        owners = [c for c in credentials if c.role == "owner"]
        others = [c for c in credentials if c.role != "owner"]

        if owners:
            owner = owners[0]
            if owner.username != username:
                logger.info(f"Renaming stored owner '{owner.username}' to '{username}'")
            owner.username = username
            owner.password = None
            owner.assigned_server_id = None
            owner.expires_at = None
            if len(owners) > 1:
                logger.warning(f"Removing {len(owners) - 1} surplus owner record(s)")
        else:
            logger.info(f"Creating owner record for '{username}'")
            owner = Credential(
                id=new_id("user"),
                username=username,
                role="owner",
                created_at=utcnow(),
                expires_at=None,
            )

        if any(c.username == username for c in others):
            logger.warning(f"A manager account shares the owner username '{username}'")

        updated = [owner] + others
        documents = [c.to_document() for c in updated]
        if documents != before:
            await self.store.write(CREDENTIALS, documents)
        return owner

    async def authenticate(self, username: str, password: str) -> SessionUser:
        is_owner = secrets.compare_digest(username.encode(), settings.OWNER_USERNAME.encode()) and \
            secrets.compare_digest(password.encode(), settings.OWNER_PASSWORD.encode())
        if is_owner:
            return SessionUser(username=username, role="owner", assigned_server_id=None)

        managers = await self.list_managers()
        manager = next((m for m in managers if m.username == username), None)
        if manager is None or not verify_password(password, manager.password):
            raise AuthenticationFailed("Invalid username or password.")
        if is_expired(manager.expires_at):
            raise AuthenticationFailed("This account has expired.")

        return SessionUser(
            username=manager.username,
            role="manager",
            assigned_server_id=manager.assigned_server_id,
        )

    async def _server_ids(self) -> Set[str]:
        return {doc.get("id") for doc in await self.store.read(SERVERS)}

    def _username_taken(self, credentials: List[Credential], username: str, exclude_id: Optional[str] = None) -> bool:
        if username == settings.OWNER_USERNAME:
            return True
        return any(c.username == username and c.id != exclude_id for c in credentials)

    async def create_manager(self, data: ManagerCreate) -> Credential:
        if data.role != "manager":
            raise ValidationFailed("Only manager accounts can be created; the owner is configured on the server.")
        if not data.assigned_server_id:
            raise ValidationFailed("A server must be assigned to a manager.")
        if data.assigned_server_id not in await self._server_ids():
            raise ValidationFailed("The assigned server does not exist.")

        credentials = await self.list_all()
        if self._username_taken(credentials, data.username):
            raise Conflict("This username is already in use.")

        manager = Credential(
            id=new_id("user"),
            username=data.username,
            password=hash_password(data.password),
            role="manager",
            assigned_server_id=data.assigned_server_id,
            created_at=utcnow(),
            expires_at=expires_in(settings.MANAGER_TTL_DAYS),
        )
        credentials.append(manager)
        await self.save_all(credentials)
        logger.info(f"Manager '{manager.username}' created for server {manager.assigned_server_id}")
        return manager

    async def update_manager(self, data: ManagerUpdate) -> Credential:
        credentials = await self.list_all()
        manager = next((c for c in credentials if c.id == data.id), None)
        if manager is None:
            raise NotFound("User not found.")
        if manager.role == "owner":
            raise ValidationFailed("The owner account is managed through server configuration.")

        if data.username:
            if self._username_taken(credentials, data.username, exclude_id=manager.id):
                raise Conflict("This username is already in use.")
            manager.username = data.username

        if data.password:
            manager.password = hash_password(data.password)

        if "assigned_server_id" in data.model_fields_set:
            if data.assigned_server_id and data.assigned_server_id not in await self._server_ids():
                raise ValidationFailed("The assigned server does not exist.")
            manager.assigned_server_id = data.assigned_server_id or None

        if data.renew_days:
            manager.expires_at = expires_in(data.renew_days)

        await self.save_all(credentials)
        return manager

    async def delete_manager(self, credential_id: str) -> Credential:
        credentials = await self.list_all()
        manager = next((c for c in credentials if c.id == credential_id), None)
        if manager is None:
            raise NotFound("User not found.")
        if manager.role == "owner":
            raise ValidationFailed("The owner account cannot be deleted.")

        await self.save_all([c for c in credentials if c.id != credential_id])
        logger.info(f"Manager '{manager.username}' deleted")
        return manager
