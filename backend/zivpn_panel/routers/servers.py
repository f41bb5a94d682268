import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from zivpn_panel.auth import ensure_server_access, get_current_session, require_owner
from zivpn_panel.database import get_store
from zivpn_panel.errors import PanelError
from zivpn_panel.schemas import ServerDefinition, ServerDelete, ServerOut, ServerUpsert, SessionUser
from zivpn_panel.services.servers import ServerService
from zivpn_panel.storage.base import DocumentStore

logger = logging.getLogger(__name__)
router = APIRouter()


def server_out(server: ServerDefinition) -> ServerOut:
    # Пароль наружу не отдаётся
    return ServerOut(
        id=server.id,
        name=server.name,
        host=server.host,
        port=server.port,
        username=server.username,
        service_command=server.service_command,
        has_password=bool(server.password),
    )


@router.get("/manage-server")
async def get_servers(
    server_id: Optional[str] = Query(None, alias="serverId"),
    session: SessionUser = Depends(get_current_session),
    store: DocumentStore = Depends(get_store),
):
    """Список серверов или один сервер по serverId.

    Менеджер видит только назначенный ему сервер.
    """
    service = ServerService(store)
    if server_id:
        ensure_server_access(session, server_id)
        return server_out(await service.get(server_id))

    try:
        servers = await service.list_all()
    except Exception as e:
        logger.error(f"Failed to fetch servers: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to fetch servers: {e}")

    if session.role != "owner":
        servers = [s for s in servers if s.id == session.assigned_server_id]
    return [server_out(s) for s in servers]


@router.post("/manage-server")
async def save_server(
    data: ServerUpsert,
    owner: SessionUser = Depends(require_owner),
    store: DocumentStore = Depends(get_store),
):
    """Создать или обновить сервер."""
    try:
        server = await ServerService(store).save(data)
        return {"success": True, "server": server_out(server)}
    except PanelError:
        raise
    except Exception as e:
        logger.error(f"Save server error: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to save server: {e}")


@router.delete("/manage-server")
async def delete_server(
    data: ServerDelete,
    owner: SessionUser = Depends(require_owner),
    store: DocumentStore = Depends(get_store),
):
    """Удалить сервер вместе с его VPN-пользователями."""
    try:
        unassigned, removed = await ServerService(store).delete(data.server_id)
    except PanelError:
        raise
    except Exception as e:
        logger.error(f"Delete server error: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to delete server: {e}")
    return {
        "success": True,
        "message": "Server deleted successfully.",
        "unassignedManagers": unassigned,
        "removedVpnUsers": removed,
    }
