import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from zivpn_panel.auth import ensure_server_access, get_current_session
from zivpn_panel.database import get_store
from zivpn_panel.errors import PanelError
from zivpn_panel.expiry import expiry_status
from zivpn_panel.schemas import (
    ExpiryStatusOut,
    SessionUser,
    VpnUser,
    VpnUserDelete,
    VpnUserOut,
    VpnUsersCreate,
    VpnUserUpdate,
)
from zivpn_panel.services.vpn_users import VpnUserService
from zivpn_panel.storage.base import DocumentStore

logger = logging.getLogger(__name__)
router = APIRouter()


def vpn_user_out(user: VpnUser) -> VpnUserOut:
    status_ = expiry_status(user.expires_at)
    return VpnUserOut(
        id=user.id,
        username=user.username,
        server_id=user.server_id,
        created_by=user.created_by,
        created_at=user.created_at,
        expires_at=user.expires_at,
        status=ExpiryStatusOut(label=status_.label, days_left=status_.days_left),
    )


@router.get("")
async def list_vpn_users(
    server_id: Optional[str] = Query(None, alias="serverId"),
    created_by: Optional[str] = Query(None, alias="createdBy"),
    session: SessionUser = Depends(get_current_session),
    store: DocumentStore = Depends(get_store),
):
    """VPN-пользователи с фильтрами serverId/createdBy."""
    if session.role != "owner":
        server_id = server_id or session.assigned_server_id
        ensure_server_access(session, server_id)
    try:
        users = await VpnUserService(store).query(server_id=server_id, created_by=created_by)
    except Exception as e:
        logger.error(f"Failed to fetch VPN users: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to fetch users: {e}")
    return [vpn_user_out(u) for u in users]


@router.post("")
async def create_vpn_users(
    data: VpnUsersCreate,
    session: SessionUser = Depends(get_current_session),
    store: DocumentStore = Depends(get_store),
):
    """Создать одного или нескольких пользователей на сервере."""
    ensure_server_access(session, data.server_id)
    created_by = session.username
    if session.role == "owner" and data.created_by:
        created_by = data.created_by

    try:
        users = await VpnUserService(store).create_batch(
            data.server_id,
            data.requested_usernames(),
            created_by,
            days=data.days,
        )
    except PanelError:
        raise
    except Exception as e:
        logger.error(f"Create VPN users error: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create users: {e}")
    return {"success": True, "users": [vpn_user_out(u) for u in users]}


@router.put("")
async def update_vpn_user(
    data: VpnUserUpdate,
    session: SessionUser = Depends(get_current_session),
    store: DocumentStore = Depends(get_store),
):
    """Переименовать и/или продлить пользователя."""
    service = VpnUserService(store)
    existing = await service.get(data.user_id)
    ensure_server_access(session, existing.server_id)
    try:
        user = await service.update(
            data.user_id,
            username=data.username.strip() if data.username else None,
            renew=data.renew,
            days=data.days,
        )
    except PanelError:
        raise
    except Exception as e:
        logger.error(f"Update VPN user error: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to update user: {e}")
    return {"success": True, "user": vpn_user_out(user)}


@router.delete("")
async def delete_vpn_user(
    data: VpnUserDelete,
    session: SessionUser = Depends(get_current_session),
    store: DocumentStore = Depends(get_store),
):
    service = VpnUserService(store)
    existing = await service.get(data.user_id)
    ensure_server_access(session, existing.server_id)
    try:
        await service.delete(data.user_id)
    except PanelError:
        raise
    except Exception as e:
        logger.error(f"Delete VPN user error: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to delete user: {e}")
    return {"success": True, "message": f"User {existing.username} deleted."}
