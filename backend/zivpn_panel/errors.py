from typing import Any, Dict, Optional

from fastapi import status


class PanelError(Exception):
    """Базовая ошибка панели, которая превращается в HTTP-ответ."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, code: Optional[str] = None, **extra: Any):
        super().__init__(message)
        self.message = message
        self.code = code
        self.extra = extra

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.code:
            body["code"] = self.code
        body.update(self.extra)
        return body


class ValidationFailed(PanelError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationFailed(PanelError):
    status_code = status.HTTP_401_UNAUTHORIZED


class PermissionDenied(PanelError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(PanelError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(PanelError):
    status_code = status.HTTP_409_CONFLICT
