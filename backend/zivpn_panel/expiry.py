import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

EXPIRING_THRESHOLD_DAYS = 7
SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class ExpiryStatus:
    label: str
    days_left: Optional[int]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def expires_in(days: int, now: Optional[datetime] = None) -> datetime:
    """Момент истечения через `days` суток от `now`."""
    return (now or utcnow()) + timedelta(days=days)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def expiry_status(expires_at: Optional[datetime], now: Optional[datetime] = None) -> ExpiryStatus:
    """Статус учётной записи на момент `now`.

    Срок никогда не хранится как состояние: он вычисляется при чтении.
    Ровно в момент `expires_at` запись уже считается просроченной.
    """
    if expires_at is None:
        return ExpiryStatus("Permanent", None)

    now = _aware(now or utcnow())
    remaining = (_aware(expires_at) - now).total_seconds()
    days_left = math.ceil(remaining / SECONDS_PER_DAY)

    if days_left <= 0:
        return ExpiryStatus("Expired", days_left)
    if days_left <= EXPIRING_THRESHOLD_DAYS:
        return ExpiryStatus("Expiring", days_left)
    return ExpiryStatus("Active", days_left)


def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    return expiry_status(expires_at, now).label == "Expired"
