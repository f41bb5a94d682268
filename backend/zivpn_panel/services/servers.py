import logging
from typing import List, Optional, Tuple

from zivpn_panel.auth import ensure_server_access
from zivpn_panel.errors import NotFound, PermissionDenied, ValidationFailed
from zivpn_panel.schemas import ServerDefinition, ServerUpsert, SessionUser, SshConfig
from zivpn_panel.services.credentials import new_id
from zivpn_panel.storage.base import CREDENTIALS, SERVERS, VPN_USERS, DocumentStore

logger = logging.getLogger(__name__)


class ServerService:
    """Реестр удалённых VPN-серверов."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def list_all(self) -> List[ServerDefinition]:
        return [ServerDefinition.model_validate(doc) for doc in await self.store.read(SERVERS)]

    async def get(self, server_id: str) -> ServerDefinition:
        server = next((s for s in await self.list_all() if s.id == server_id), None)
        if server is None:
            raise NotFound("Server not found.")
        return server

    async def save(self, data: ServerUpsert) -> ServerDefinition:
        """Создать сервер или обновить существующий (пароль сохраняется, если не передан)."""
        servers = await self.list_all()

        if data.server_id:
            server = next((s for s in servers if s.id == data.server_id), None)
            if server is None:
                raise NotFound("Server not found for update.")
            server.name = data.name
            server.host = data.host
            server.port = data.port
            server.username = data.username
            if "service_command" in data.model_fields_set:
                server.service_command = data.service_command or None
            if data.password:
                server.password = data.password
        else:
            if not data.password:
                raise ValidationFailed("A password is required for a new server.")
            server = ServerDefinition(
                id=new_id("server"),
                name=data.name,
                host=data.host,
                port=data.port,
                username=data.username,
                password=data.password,
                service_command=data.service_command or None,
            )
            servers.append(server)

        await self.store.write(SERVERS, [s.to_document() for s in servers])
        logger.info(f"Server '{server.name}' ({server.id}) saved")
        return server

    async def delete(self, server_id: str) -> Tuple[int, int]:
        """Удалить сервер каскадно.

        Менеджеры, назначенные на сервер, теряют назначение; VPN-пользователи
        сервера удаляются. Возвращает (снятых менеджеров, удалённых пользователей).
        """
        servers = await self.store.read(SERVERS)
        remaining = [s for s in servers if s.get("id") != server_id]
        if len(remaining) == len(servers):
            raise NotFound("Server not found.")

        credentials = await self.store.read(CREDENTIALS)
        unassigned = 0
        for credential in credentials:
            if credential.get("assignedServerId") == server_id:
                credential["assignedServerId"] = None
                unassigned += 1

        vpn_users = await self.store.read(VPN_USERS)
        kept_users = [u for u in vpn_users if u.get("serverId") != server_id]

        await self.store.write(SERVERS, remaining)
        await self.store.write(CREDENTIALS, credentials)
        await self.store.write(VPN_USERS, kept_users)

        removed = len(vpn_users) - len(kept_users)
        logger.info(f"Server {server_id} deleted: {unassigned} manager(s) unassigned, {removed} VPN user(s) removed")
        return unassigned, removed

    async def resolve_ssh_config(
        self,
        session: SessionUser,
        ssh_config: Optional[SshConfig] = None,
        server_id: Optional[str] = None,
    ) -> SshConfig:
        """Параметры SSH из запроса или из сохранённого сервера.

        Менеджер может обращаться только к своему серверу и только по serverId.
        """
        if server_id:
            ensure_server_access(session, server_id)
            server = await self.get(server_id)
            if ssh_config is not None and session.role == "owner":
                return ssh_config
            return self.ssh_config(server)
        if session.role != "owner":
            raise PermissionDenied("You do not have access to this server.")
        if ssh_config is None:
            raise ValidationFailed("Either sshConfig or serverId is required.")
        return ssh_config

    @staticmethod
    def ssh_config(server: ServerDefinition) -> SshConfig:
        if not server.password:
            raise ValidationFailed(f"Server '{server.name}' has no SSH password configured.")
        return SshConfig(
            host=server.host,
            port=server.port,
            username=server.username,
            password=server.password,
            service_command=server.service_command,
            name=server.name,
        )
