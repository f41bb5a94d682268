import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from zivpn_panel.auth import require_owner
from zivpn_panel.database import get_store
from zivpn_panel.errors import PanelError
from zivpn_panel.expiry import expiry_status
from zivpn_panel.schemas import (
    Credential,
    ExpiryStatusOut,
    IdRequest,
    ManagerCreate,
    ManagerOut,
    ManagerUpdate,
    SessionUser,
)
from zivpn_panel.services.credentials import CredentialService
from zivpn_panel.storage.base import DocumentStore

logger = logging.getLogger(__name__)
router = APIRouter()


def manager_out(credential: Credential) -> ManagerOut:
    status_ = expiry_status(credential.expires_at)
    return ManagerOut(
        id=credential.id,
        username=credential.username,
        role=credential.role,
        assigned_server_id=credential.assigned_server_id,
        created_at=credential.created_at,
        expires_at=credential.expires_at,
        status=ExpiryStatusOut(label=status_.label, days_left=status_.days_left),
    )


@router.get("/create-user", response_model=List[ManagerOut])
async def list_managers(
    owner: SessionUser = Depends(require_owner),
    store: DocumentStore = Depends(get_store),
):
    """Список менеджеров."""
    try:
        managers = await CredentialService(store).list_managers()
        return [manager_out(m) for m in managers]
    except PanelError:
        raise
    except Exception as e:
        logger.error(f"Failed to fetch managers: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to fetch managers: {e}")


@router.post("/create-user")
async def create_manager(
    data: ManagerCreate,
    owner: SessionUser = Depends(require_owner),
    store: DocumentStore = Depends(get_store),
):
    """Создать менеджера, привязанного к серверу."""
    try:
        manager = await CredentialService(store).create_manager(data)
        return {"success": True, "user": manager_out(manager)}
    except PanelError:
        raise
    except Exception as e:
        logger.error(f"Create user error: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Error creating user: {e}")


@router.post("/update-user")
async def update_manager(
    data: ManagerUpdate,
    owner: SessionUser = Depends(require_owner),
    store: DocumentStore = Depends(get_store),
):
    """Изменить имя, пароль, сервер или продлить срок менеджера."""
    try:
        manager = await CredentialService(store).update_manager(data)
        return {"success": True, "message": "User updated successfully.", "user": manager_out(manager)}
    except PanelError:
        raise
    except Exception as e:
        logger.error(f"Update user error: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Error updating user: {e}")


@router.post("/delete-user")
async def delete_manager(
    data: IdRequest,
    owner: SessionUser = Depends(require_owner),
    store: DocumentStore = Depends(get_store),
):
    try:
        await CredentialService(store).delete_manager(data.id)
        return {"success": True, "message": "User deleted successfully."}
    except PanelError:
        raise
    except Exception as e:
        logger.error(f"Delete user error: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Error deleting user: {e}")
