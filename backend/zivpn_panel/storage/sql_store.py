import logging
from pathlib import Path
from typing import Any, Dict, List

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from zivpn_panel.models import Base, StoredDocument
from zivpn_panel.storage.base import DocumentStore

logger = logging.getLogger(__name__)


class SqlDocumentStore(DocumentStore):
    """Коллекции документов в одной таблице `documents` (SQLAlchemy)."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = async_sessionmaker(engine, expire_on_commit=False)

    async def startup(self) -> None:
        url = self.engine.url
        if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        logger.info("Creating database tables...")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def shutdown(self) -> None:
        await self.engine.dispose()

    async def read(self, collection: str) -> List[Dict[str, Any]]:
        self.check_collection(collection)
        async with self.session_factory() as session:
            result = await session.execute(
                select(StoredDocument)
                .where(StoredDocument.collection == collection)
                .order_by(StoredDocument.position)
            )
            return [row.data for row in result.scalars()]

    async def write(self, collection: str, documents: List[Dict[str, Any]]) -> None:
        self.check_collection(collection)
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(StoredDocument).where(StoredDocument.collection == collection)
                )
                session.add_all([
                    StoredDocument(
                        collection=collection,
                        position=position,
                        doc_id=str(document.get("id", "")),
                        data=document,
                    )
                    for position, document in enumerate(documents)
                ])
