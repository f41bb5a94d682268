from functools import lru_cache

from sqlalchemy.ext.asyncio import create_async_engine

from zivpn_panel.config import settings
from zivpn_panel.storage.base import DocumentStore
from zivpn_panel.storage.json_store import JsonFileStore
from zivpn_panel.storage.sql_store import SqlDocumentStore


def build_store() -> DocumentStore:
    """Создать хранилище согласно STORAGE_BACKEND."""
    if settings.STORAGE_BACKEND == "sql":
        engine = create_async_engine(settings.DATABASE_URL, echo=False)
        return SqlDocumentStore(engine)
    return JsonFileStore(settings.DATA_DIR)


@lru_cache
def _default_store() -> DocumentStore:
    return build_store()


def get_store() -> DocumentStore:
    return _default_store()
