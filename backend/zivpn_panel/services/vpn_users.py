import logging
import secrets
from datetime import datetime
from typing import List, Optional

from zivpn_panel.config import settings
from zivpn_panel.errors import Conflict, NotFound
from zivpn_panel.expiry import expires_in, is_expired, utcnow
from zivpn_panel.schemas import VpnUser
from zivpn_panel.storage.base import SERVERS, VPN_USERS, DocumentStore

logger = logging.getLogger(__name__)

DUPLICATE_USERS = "DUPLICATE_USERS"


class VpnUserService:
    """VPN-пользователи, сгруппированные по серверам."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def list_all(self) -> List[VpnUser]:
        return [VpnUser.model_validate(doc) for doc in await self.store.read(VPN_USERS)]

    async def save_all(self, users: List[VpnUser]) -> None:
        await self.store.write(VPN_USERS, [u.to_document() for u in users])

    async def query(self, server_id: Optional[str] = None, created_by: Optional[str] = None) -> List[VpnUser]:
        """Пользователи по фильтрам, новые первыми."""
        users = await self.list_all()
        if server_id:
            users = [u for u in users if u.server_id == server_id]
        if created_by:
            users = [u for u in users if u.created_by == created_by]
        return sorted(users, key=lambda u: u.created_at, reverse=True)

    async def get(self, user_id: str) -> VpnUser:
        user = next((u for u in await self.list_all() if u.id == user_id), None)
        if user is None:
            raise NotFound("User not found.")
        return user

    async def create_batch(
        self,
        server_id: str,
        usernames: List[str],
        created_by: str,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[VpnUser]:
        """Создать пачку пользователей на сервере.

        Если хотя бы одно имя уже занято на этом сервере (или повторяется в
        самой пачке), не создаётся ни один пользователь.
        """
        if not any(doc.get("id") == server_id for doc in await self.store.read(SERVERS)):
            raise NotFound("Server not found.")

        users = await self.list_all()
        taken = {u.username for u in users if u.server_id == server_id}

        duplicates: List[str] = []
        seen = set()
        for username in usernames:
            if (username in taken or username in seen) and username not in duplicates:
                duplicates.append(username)
            seen.add(username)

        if duplicates:
            raise Conflict(
                f"The following usernames already exist on this server: {', '.join(duplicates)}",
                code=DUPLICATE_USERS,
                duplicates=duplicates,
            )

        now = now or utcnow()
        expires_at = expires_in(days or settings.DEFAULT_VPN_DAYS, now)
        new_users = [
            VpnUser(
                id=secrets.token_hex(8),
                username=username,
                server_id=server_id,
                created_by=created_by,
                created_at=now,
                expires_at=expires_at,
            )
            for username in usernames
        ]
        await self.save_all(users + new_users)
        logger.info(f"{len(new_users)} VPN user(s) created on server {server_id} by '{created_by}'")
        return new_users

    async def update(
        self,
        user_id: str,
        username: Optional[str] = None,
        renew: bool = False,
        days: Optional[int] = None,
    ) -> VpnUser:
        """Переименовать и/или продлить пользователя."""
        users = await self.list_all()
        user = next((u for u in users if u.id == user_id), None)
        if user is None:
            raise NotFound("User not found.")

        if username and username != user.username:
            clash = any(
                u.username == username and u.server_id == user.server_id and u.id != user.id
                for u in users
            )
            if clash:
                raise Conflict(
                    f"User \"{username}\" already exists on this server.",
                    code=DUPLICATE_USERS,
                    duplicates=[username],
                )
            user.username = username

        if renew or days:
            user.expires_at = expires_in(days or settings.DEFAULT_VPN_DAYS)

        await self.save_all(users)
        return user

    async def delete(self, user_id: str) -> VpnUser:
        users = await self.list_all()
        user = next((u for u in users if u.id == user_id), None)
        if user is None:
            raise NotFound("User not found.")
        await self.save_all([u for u in users if u.id != user_id])
        return user

    async def active_usernames(self, server_id: str, now: Optional[datetime] = None) -> List[str]:
        """Имена непросроченных пользователей сервера в порядке создания."""
        users = [u for u in await self.list_all() if u.server_id == server_id]
        users.sort(key=lambda u: u.created_at)
        return [u.username for u in users if not is_expired(u.expires_at, now)]
