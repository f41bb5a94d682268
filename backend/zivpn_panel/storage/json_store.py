import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

from zivpn_panel.storage.base import COLLECTIONS, DocumentStore

logger = logging.getLogger(__name__)


class JsonFileStore(DocumentStore):
    """Коллекции в виде JSON-массивов: `<data_dir>/<collection>.json`."""

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)

    def path_for(self, collection: str) -> Path:
        self.check_collection(collection)
        return self.data_dir / f"{collection}.json"

    async def startup(self) -> None:
        for collection in COLLECTIONS:
            await asyncio.to_thread(self._ensure_file, self.path_for(collection))
        logger.info(f"JSON store ready in {self.data_dir.resolve()}")

    async def read(self, collection: str) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._read_sync, self.path_for(collection))

    async def write(self, collection: str, documents: List[Dict[str, Any]]) -> None:
        await asyncio.to_thread(self._write_sync, self.path_for(collection), documents)

    @staticmethod
    def _ensure_file(path: Path) -> None:
        if not path.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("[]", encoding="utf-8")

    def _read_sync(self, path: Path) -> List[Dict[str, Any]]:
        self._ensure_file(path)
        raw = path.read_text(encoding="utf-8")
        try:
            data = json.loads(raw) if raw.strip() else []
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing JSON from {path}: {e}. Returning empty list.")
            return []
        if not isinstance(data, list):
            logger.error(f"{path} does not contain a JSON array. Returning empty list.")
            return []
        return data

    def _write_sync(self, path: Path, documents: List[Dict[str, Any]]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(documents, indent=2, ensure_ascii=False), encoding="utf-8")
