"""
Infrastructure - SQLModel models cho trạng thái client lưu cục bộ.
"""

from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from pandamall.domain.value_objects import as_utc, utcnow


class ClientStateEntry(SQLModel, table=True):
    """
    Một khóa trạng thái client: token, user (JSON), panda_marketplace,
    translation_{platform}_{productId}.
    """

    __tablename__ = "client_state"

    key: str = Field(primary_key=True, max_length=255)
    value: str
    # Luôn ghi giờ UTC có múi; SQLite đọc ra lại không kèm múi
    expires_at: datetime | None = Field(default=None, index=True, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and as_utc(self.expires_at) < as_utc(now)


def get_engine_url(database_url: str | None = None) -> str:
    """Lấy database URL từ settings (PANDAMALL_DATABASE_URL)."""
    if database_url:
        return database_url
    from pandamall.core.config import get_settings

    return get_settings().database_url
