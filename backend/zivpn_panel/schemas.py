from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Модель с camelCase-именами полей в JSON (как в файлах данных)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Document(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# Документы хранилища
class Credential(Document):
    id: str
    username: str
    password: Optional[str] = None
    role: Literal["owner", "manager"] = "manager"
    assigned_server_id: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class ServerDefinition(Document):
    id: str
    name: str
    host: str
    port: int = 22
    username: str
    password: Optional[str] = None
    service_command: Optional[str] = None


class VpnUser(Document):
    id: str
    username: str
    server_id: str
    created_by: str
    created_at: datetime
    expires_at: datetime


class SnapshotVpnUser(VpnUser):
    # В снимке serverId задаётся ключом группы
    server_id: Optional[str] = None


class BackupSnapshot(CamelModel):
    servers: List[ServerDefinition] = []
    managers: List[Credential] = []
    vpn_users: Dict[str, List[SnapshotVpnUser]] = {}
    created_at: Optional[datetime] = None


# Ответы
class ExpiryStatusOut(CamelModel):
    label: Literal["Active", "Expiring", "Expired", "Permanent"]
    days_left: Optional[int] = None


class SessionUser(CamelModel):
    username: str
    role: Literal["owner", "manager"]
    assigned_server_id: Optional[str] = None


class LoginResponse(BaseModel):
    success: bool = True
    user: SessionUser


class ManagerOut(CamelModel):
    id: str
    username: str
    role: Literal["owner", "manager"]
    assigned_server_id: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    status: ExpiryStatusOut


class ServerOut(CamelModel):
    id: str
    name: str
    host: str
    port: int
    username: str
    service_command: Optional[str] = None
    has_password: bool


class VpnUserOut(CamelModel):
    id: str
    username: str
    server_id: str
    created_by: str
    created_at: datetime
    expires_at: datetime
    status: ExpiryStatusOut


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# Запросы
class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ManagerCreate(CamelModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    role: Literal["owner", "manager"] = "manager"
    assigned_server_id: Optional[str] = None


class ManagerUpdate(CamelModel):
    id: str = Field(min_length=1)
    username: Optional[str] = None
    password: Optional[str] = None
    assigned_server_id: Optional[str] = None
    renew_days: Optional[int] = Field(default=None, gt=0)


class IdRequest(BaseModel):
    id: str = Field(min_length=1)


class ServerUpsert(CamelModel):
    server_id: Optional[str] = None
    name: str = Field(min_length=1)
    host: str = Field(min_length=1)
    port: int = Field(default=22, ge=1, le=65535)
    username: str = Field(min_length=1)
    password: Optional[str] = None
    service_command: Optional[str] = None


class ServerDelete(CamelModel):
    server_id: str = Field(min_length=1)


class VpnUsersCreate(CamelModel):
    server_id: str = Field(min_length=1)
    usernames: Optional[List[str]] = None
    username: Optional[str] = None
    created_by: Optional[str] = None
    days: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def check_usernames(self):
        if not self.requested_usernames():
            raise ValueError("At least one username is required.")
        return self

    def requested_usernames(self) -> List[str]:
        names = list(self.usernames or [])
        if self.username:
            names.append(self.username)
        return [name.strip() for name in names if name and name.strip()]


class VpnUserUpdate(CamelModel):
    user_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("userId", "docId", "user_id"),
    )
    username: Optional[str] = None
    renew: bool = False
    days: Optional[int] = Field(default=None, gt=0)


class VpnUserDelete(CamelModel):
    user_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("userId", "docId", "user_id"),
    )


class SshConfig(CamelModel):
    host: str = Field(min_length=1)
    port: int = Field(default=22, ge=1, le=65535)
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    service_command: Optional[str] = None
    name: Optional[str] = None


RemoteAction = Literal["testConnection", "updateVpnConfig", "restartService", "resetConfig"]


class SshActionRequest(CamelModel):
    action: RemoteAction
    ssh_config: Optional[SshConfig] = None
    server_id: Optional[str] = None
    payload: Dict[str, Any] = {}


class SyncUsersRequest(CamelModel):
    server_id: str = Field(min_length=1)
    ssh_config: Optional[SshConfig] = None
    restart: bool = True


class RestoreFromFile(BaseModel):
    filename: str = Field(min_length=1)
