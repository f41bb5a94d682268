import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from zivpn_panel.storage.base import COLLECTIONS, CREDENTIALS, SERVERS, VPN_USERS
from zivpn_panel.storage.json_store import JsonFileStore
from zivpn_panel.storage.sql_store import SqlDocumentStore


async def test_json_store_creates_missing_files(tmp_path):
    store = JsonFileStore(tmp_path / "data")
    await store.startup()
    for collection in COLLECTIONS:
        assert store.path_for(collection).read_text(encoding="utf-8") == "[]"
    assert await store.read(SERVERS) == []


async def test_json_store_round_trip(tmp_path):
    store = JsonFileStore(tmp_path)
    documents = [{"id": "1", "name": "Сервер"}, {"id": "2", "name": "B"}]
    await store.write(SERVERS, documents)
    assert await store.read(SERVERS) == documents
    assert "Сервер" in store.path_for(SERVERS).read_text(encoding="utf-8")


async def test_json_store_reads_corrupt_file_as_empty(tmp_path):
    store = JsonFileStore(tmp_path)
    store.path_for(VPN_USERS).write_text("{not json", encoding="utf-8")
    assert await store.read(VPN_USERS) == []

    store.path_for(VPN_USERS).write_text('{"id": "1"}', encoding="utf-8")
    assert await store.read(VPN_USERS) == []


async def test_unknown_collection_is_rejected(tmp_path):
    store = JsonFileStore(tmp_path)
    with pytest.raises(ValueError):
        await store.read("passwords")


async def test_sql_store_round_trip(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'db' / 'panel.db'}")
    store = SqlDocumentStore(engine)
    await store.startup()
    try:
        assert await store.read(CREDENTIALS) == []

        await store.write(CREDENTIALS, [{"id": "b", "username": "bob"}, {"id": "a", "username": "alice"}])
        await store.write(SERVERS, [{"id": "s1"}])
        assert await store.read(CREDENTIALS) == [
            {"id": "b", "username": "bob"},
            {"id": "a", "username": "alice"},
        ]

        await store.write(CREDENTIALS, [{"id": "c", "username": "carol"}])
        assert await store.read(CREDENTIALS) == [{"id": "c", "username": "carol"}]
        assert await store.read(SERVERS) == [{"id": "s1"}]
    finally:
        await store.shutdown()
