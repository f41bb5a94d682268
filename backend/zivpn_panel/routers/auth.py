from fastapi import APIRouter, Depends, Response

from zivpn_panel.auth import (
    clear_session_cookie,
    create_session_token,
    get_current_session,
    set_session_cookie,
)
from zivpn_panel.database import get_store
from zivpn_panel.schemas import LoginRequest, LoginResponse, MessageResponse, SessionUser
from zivpn_panel.services.credentials import CredentialService
from zivpn_panel.storage.base import DocumentStore

router = APIRouter()


@router.post("/login", response_model=LoginResponse)
async def login(credentials: LoginRequest, response: Response, store: DocumentStore = Depends(get_store)):
    """Войти как владелец или менеджер; сессия кладётся в cookie."""
    user = await CredentialService(store).authenticate(credentials.username, credentials.password)
    set_session_cookie(response, create_session_token(user))
    return LoginResponse(user=user)


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response):
    clear_session_cookie(response)
    return MessageResponse(message="Logged out.")


@router.get("/me", response_model=SessionUser)
async def read_session(session: SessionUser = Depends(get_current_session)):
    """Текущая сессия (имя, роль, назначенный сервер)."""
    return session
