from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SERVICE_COMMAND = "systemctl restart zivpn"
RESET_SCRIPT_COMMAND = (
    "wget -O zi.sh https://raw.githubusercontent.com/zahidbd2/udp-zivpn/main/zi.sh"
    " && sudo chmod +x zi.sh && sudo ./zi.sh"
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        case_sensitive=True,
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Учётные данные владельца панели
    OWNER_USERNAME: str
    OWNER_PASSWORD: str
    SECRET_KEY: str

    # Хранилище
    DATA_DIR: str = "data"
    STORAGE_BACKEND: Literal["json", "sql"] = "json"
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/panel.db"

    # Сессия
    SESSION_COOKIE_NAME: str = "session"
    SESSION_TTL_DAYS: int = 30
    COOKIE_SECURE: bool = False
    CORS_ORIGINS: List[str] = ["*"]

    # Сроки действия учётных записей
    DEFAULT_VPN_DAYS: int = 30
    MANAGER_TTL_DAYS: int = 30

    # Удалённые хосты
    SSH_CONNECT_TIMEOUT: float = 10.0
    REMOTE_COMMAND_TIMEOUT: float = 15.0
    RESET_SCRIPT_TIMEOUT: float = 60.0
    DEFAULT_SERVICE_COMMAND: str = DEFAULT_SERVICE_COMMAND
    RESET_SCRIPT_COMMAND: str = RESET_SCRIPT_COMMAND
    REMOTE_CONFIG_PATH: str = "/etc/zivpn/config.json"


settings = Settings()
