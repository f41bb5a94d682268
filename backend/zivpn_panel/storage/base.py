from abc import ABC, abstractmethod
from typing import Any, Dict, List

CREDENTIALS = "credentials"
SERVERS = "servers"
VPN_USERS = "vpn-users"

COLLECTIONS = (CREDENTIALS, SERVERS, VPN_USERS)


class DocumentStore(ABC):
    """Хранилище документов: коллекция читается и пишется целиком."""

    async def startup(self) -> None:
        """Подготовить хранилище при запуске приложения."""

    async def shutdown(self) -> None:
        """Освободить ресурсы при остановке."""

    @abstractmethod
    async def read(self, collection: str) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def write(self, collection: str, documents: List[Dict[str, Any]]) -> None:
        ...

    @staticmethod
    def check_collection(collection: str) -> None:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
