import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Response
from fastapi.security import APIKeyCookie
from jose import JWTError, jwt
from passlib.context import CryptContext

from zivpn_panel.config import settings
from zivpn_panel.database import get_store
from zivpn_panel.errors import AuthenticationFailed, PermissionDenied
from zivpn_panel.expiry import is_expired
from zivpn_panel.schemas import Credential, SessionUser
from zivpn_panel.storage.base import CREDENTIALS, DocumentStore

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
cookie_scheme = APIKeyCookie(name=settings.SESSION_COOKIE_NAME, auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, stored: Optional[str]) -> bool:
    """Проверить пароль против хеша или (для старых записей) открытого текста."""
    if not stored:
        return False
    if pwd_context.identify(stored) is None:
        return secrets.compare_digest(password.encode(), stored.encode())
    return pwd_context.verify(password, stored)


def create_session_token(user: SessionUser, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = user.model_dump(by_alias=True)
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(days=settings.SESSION_TTL_DAYS)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_session_token(token: str) -> SessionUser:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        payload.pop("exp", None)
        return SessionUser.model_validate(payload)
    except (JWTError, ValueError):
        raise AuthenticationFailed("Session is invalid or has expired.")


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_TTL_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=settings.SESSION_COOKIE_NAME, path="/")


async def get_current_session(
    token: Optional[str] = Depends(cookie_scheme),
    store: DocumentStore = Depends(get_store),
) -> SessionUser:
    """Сессия из cookie; для менеджера права перечитываются из хранилища."""
    if not token:
        raise AuthenticationFailed("Authentication required.")
    session = decode_session_token(token)
    if session.role == "owner":
        return session

    documents = await store.read(CREDENTIALS)
    manager = next(
        (Credential.model_validate(d) for d in documents
         if d.get("role") == "manager" and d.get("username") == session.username),
        None,
    )
    if manager is None:
        raise AuthenticationFailed("Session is no longer valid.")
    if is_expired(manager.expires_at):
        raise AuthenticationFailed("This account has expired.")
    return SessionUser(
        username=manager.username,
        role="manager",
        assigned_server_id=manager.assigned_server_id,
    )


async def require_owner(session: SessionUser = Depends(get_current_session)) -> SessionUser:
    if session.role != "owner":
        raise PermissionDenied("Only the owner can perform this action.")
    return session


def ensure_server_access(session: SessionUser, server_id: Optional[str]) -> None:
    """Менеджер работает только со своим назначенным сервером."""
    if session.role == "owner":
        return
    if not session.assigned_server_id or server_id != session.assigned_server_id:
        raise PermissionDenied("You do not have access to this server.")
