import logging
from pathlib import Path
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError

from zivpn_panel.auth import require_owner
from zivpn_panel.config import settings
from zivpn_panel.database import get_store
from zivpn_panel.errors import PanelError, ValidationFailed
from zivpn_panel.schemas import BackupSnapshot, RestoreFromFile, SessionUser
from zivpn_panel.services.backups import BackupService
from zivpn_panel.storage.base import DocumentStore

logger = logging.getLogger(__name__)
router = APIRouter()


def get_backup_service(store: DocumentStore = Depends(get_store)) -> BackupService:
    return BackupService(store, Path(settings.DATA_DIR) / "backups")


def _snapshot_body(snapshot: BackupSnapshot) -> Dict[str, Any]:
    return snapshot.model_dump(mode="json", by_alias=True)


@router.get("/backup")
async def export_backup(
    owner: SessionUser = Depends(require_owner),
    backups: BackupService = Depends(get_backup_service),
):
    """Снимок текущих данных для скачивания."""
    try:
        return _snapshot_body(await backups.snapshot())
    except Exception as e:
        logger.error(f"Backup export error: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create backup: {e}")


@router.post("/backup")
async def restore_backup(
    body: Dict[str, Any] = Body(...),
    owner: SessionUser = Depends(require_owner),
    backups: BackupService = Depends(get_backup_service),
):
    """Восстановить данные из файла на сервере ({"filename"}) или из присланного снимка."""
    try:
        if "filename" in body:
            snapshot = await backups.load_backup(RestoreFromFile.model_validate(body).filename)
        else:
            snapshot = BackupSnapshot.model_validate(body)
    except ValidationError as e:
        raise ValidationFailed(f"Invalid backup data: {e.errors()[0]['msg']}")

    try:
        counts = await backups.restore(snapshot)
    except PanelError:
        raise
    except Exception as e:
        logger.error(f"Restore error: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to restore backup: {e}")
    return {"success": True, "message": "Backup restored successfully.", "restored": counts}


@router.post("/create-backup")
async def create_backup_file(
    owner: SessionUser = Depends(require_owner),
    backups: BackupService = Depends(get_backup_service),
):
    """Сохранить снимок в файл на сервере."""
    try:
        filename = await backups.create_backup()
    except Exception as e:
        logger.error(f"Create backup error: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create backup file: {e}")
    return {"success": True, "message": "Backup created.", "filename": filename}


@router.get("/backup/files", response_model=List[str])
async def list_backup_files(
    owner: SessionUser = Depends(require_owner),
    backups: BackupService = Depends(get_backup_service),
):
    return await backups.list_backups()


@router.get("/backup/files/{filename}")
async def read_backup_file(
    filename: str,
    owner: SessionUser = Depends(require_owner),
    backups: BackupService = Depends(get_backup_service),
):
    return _snapshot_body(await backups.load_backup(filename))
