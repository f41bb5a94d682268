import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from zivpn_panel.auth import get_current_session
from zivpn_panel.database import get_store
from zivpn_panel.errors import PermissionDenied
from zivpn_panel.remote.executor import RemoteExecutor, get_executor
from zivpn_panel.schemas import SessionUser, SshActionRequest, SyncUsersRequest
from zivpn_panel.services.servers import ServerService
from zivpn_panel.services.vpn_users import VpnUserService
from zivpn_panel.storage.base import DocumentStore

logger = logging.getLogger(__name__)
router = APIRouter()

# Действия, доступные только владельцу
OWNER_ONLY_ACTIONS = {"resetConfig"}


def _failure(result: dict) -> JSONResponse:
    body = dict(result)
    body["success"] = False
    body.setdefault("error", "Remote action failed.")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)


@router.post("/ssh")
async def run_ssh_action(
    request: SshActionRequest,
    session: SessionUser = Depends(get_current_session),
    store: DocumentStore = Depends(get_store),
    executor: RemoteExecutor = Depends(get_executor),
):
    """Выполнить одно действие на удалённом сервере."""
    if request.action in OWNER_ONLY_ACTIONS and session.role != "owner":
        raise PermissionDenied("Only the owner can perform this action.")

    ssh_config = await ServerService(store).resolve_ssh_config(session, request.ssh_config, request.server_id)
    logger.info(f"Remote action '{request.action}' on {ssh_config.host} requested by '{session.username}'")

    result = await executor.run(request.action, ssh_config, request.payload)
    if not result.get("success"):
        logger.warning(f"Remote action '{request.action}' on {ssh_config.host} failed: {result.get('error')}")
        return _failure(result)
    return result


@router.post("/sync-users")
async def sync_users(
    request: SyncUsersRequest,
    session: SessionUser = Depends(get_current_session),
    store: DocumentStore = Depends(get_store),
    executor: RemoteExecutor = Depends(get_executor),
):
    """Записать на сервер всех непросроченных пользователей и перезапустить сервис."""
    servers = ServerService(store)
    ssh_config = await servers.resolve_ssh_config(session, request.ssh_config, request.server_id)
    server = await servers.get(request.server_id)
    usernames = await VpnUserService(store).active_usernames(request.server_id)

    result = await executor.run("updateVpnConfig", ssh_config, {"usernames": usernames})
    if not result.get("success"):
        logger.warning(f"Sync of server '{server.name}' failed: {result.get('error')}")
        return _failure(result)

    if request.restart:
        restart = await executor.run("restartService", ssh_config)
        if not restart.get("success"):
            return _failure({
                "error": f"Config updated but the service restart failed: {restart.get('error')}",
                "users": len(usernames),
            })

    logger.info(f"Server '{server.name}' synchronized: {len(usernames)} user(s)")
    return {
        "success": True,
        "message": f"Users of server {server.name} have been synchronized.",
        "users": len(usernames),
    }
