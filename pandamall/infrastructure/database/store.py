"""
Client state store - Thay cho localStorage của trình duyệt, giữ nguyên
bố cục khóa: token, user, panda_marketplace, translation_{platform}_{productId}.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from pandamall.domain.value_objects import as_utc, utcnow
from pandamall.infrastructure.database.models import ClientStateEntry

logger = logging.getLogger(__name__)

MARKETPLACE_KEY = "panda_marketplace"
DEFAULT_MARKETPLACE = "aliexpress"
TRANSLATION_PREFIX = "translation_"


class ClientStateStore:

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = utcnow):
        self.engine = engine
        self.clock = clock

    def get(self, key: str) -> str | None:
        with Session(self.engine) as session:
            entry = session.get(ClientStateEntry, key)
            if entry is None:
                return None
            if entry.is_expired(self.clock()):
                # Hết hạn thì xóa ngay khi đọc
                session.delete(entry)
                session.commit()
                logger.debug("State entry expired: %s", key)
                return None
            return entry.value

    def set(self, key: str, value: str, ttl: timedelta | None = None) -> None:
        now = as_utc(self.clock())
        with Session(self.engine) as session:
            entry = session.get(ClientStateEntry, key) or ClientStateEntry(key=key, value=value)
            entry.value = value
            entry.expires_at = now + ttl if ttl is not None else None
            entry.updated_at = now
            session.add(entry)
            session.commit()

    def delete(self, key: str) -> None:
        with Session(self.engine) as session:
            entry = session.get(ClientStateEntry, key)
            if entry is not None:
                session.delete(entry)
                session.commit()

    def entries(self, prefix: str) -> list[ClientStateEntry]:
        with Session(self.engine) as session:
            statement = select(ClientStateEntry).where(col(ClientStateEntry.key).startswith(prefix, autoescape=True))
            return list(session.exec(statement).all())

    def delete_prefix(self, prefix: str) -> int:
        with Session(self.engine) as session:
            statement = select(ClientStateEntry).where(col(ClientStateEntry.key).startswith(prefix, autoescape=True))
            entries = session.exec(statement).all()
            for entry in entries:
                session.delete(entry)
            session.commit()
            return len(entries)

    def get_json(self, key: str) -> Any:
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("State entry %s is not valid JSON; dropping it", key)
            self.delete(key)
            return None

    def set_json(self, key: str, value: Any, ttl: timedelta | None = None) -> None:
        self.set(key, json.dumps(value, ensure_ascii=False, default=str), ttl)

    def get_marketplace(self) -> str:
        return self.get(MARKETPLACE_KEY) or DEFAULT_MARKETPLACE

    def set_marketplace(self, marketplace: str) -> None:
        self.set(MARKETPLACE_KEY, marketplace.lower())


@dataclass(frozen=True, slots=True)
class TranslationCacheStats:
    total: int
    expired: int
    valid: int


class TranslationCache:
    """Cache bản dịch sản phẩm, mặc định sống 7 ngày."""

    def __init__(self, store: ClientStateStore, ttl_days: int = 7):
        self.store = store
        self.ttl = timedelta(days=ttl_days)

    @staticmethod
    def key(platform: str, product_id: str) -> str:
        return f"{TRANSLATION_PREFIX}{platform}_{product_id}"

    def get(self, platform: str, product_id: str) -> dict[str, Any] | None:
        return self.store.get_json(self.key(platform, product_id))

    def save(self, platform: str, product_id: str, data: dict[str, Any]) -> None:
        self.store.set_json(self.key(platform, product_id), data, ttl=self.ttl)
        logger.debug("Translation cached: %s", self.key(platform, product_id))

    def clear(self, platform: str, product_id: str) -> None:
        self.store.delete(self.key(platform, product_id))

    def clear_all(self) -> int:
        count = self.store.delete_prefix(TRANSLATION_PREFIX)
        logger.info("Cleared %d translation cache entries", count)
        return count

    def stats(self) -> TranslationCacheStats:
        now = self.store.clock()
        entries = self.store.entries(TRANSLATION_PREFIX)
        expired = sum(1 for entry in entries if entry.is_expired(now))
        return TranslationCacheStats(total=len(entries), expired=expired, valid=len(entries) - expired)
