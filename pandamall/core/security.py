"""
Security Core - Phiên đăng nhập (bearer token) và làm mới token single-flight.
"""

import json
import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from pandamall.core.exceptions import SessionExpired

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"


class UserRole(str, Enum):
    CUSTOMER = "CUSTOMER"
    STAFF = "STAFF"
    ADMIN = "ADMIN"

    @classmethod
    def parse(cls, value: str | None) -> "UserRole":
        if not value:
            return cls.CUSTOMER
        cleaned = value.upper().removeprefix("ROLE_")
        try:
            return cls(cleaned)
        except ValueError:
            return cls.CUSTOMER


# Nhân viên dùng chung màn hình quản lý đơn với admin
ORDER_MANAGER_ROLES = frozenset({UserRole.ADMIN, UserRole.STAFF})


def mask_token(token: str | None) -> str:
    if not token:
        return "<none>"
    if len(token) <= 10:
        return "***"
    return f"{token[:6]}...{token[-4:]}"


class StateStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


@dataclass
class AuthSession:
    """
    Phiên hiện tại: bearer token mờ đục + thông tin user.
    Nếu có store thì mọi thay đổi được ghi lại theo khóa token / user.
    """
    token: str | None = None
    user: dict[str, Any] | None = None
    store: StateStore | None = field(default=None, repr=False)

    @classmethod
    def load(cls, store: StateStore) -> "AuthSession":
        raw_user = store.get(USER_KEY)
        user = None
        if raw_user:
            try:
                user = json.loads(raw_user)
            except json.JSONDecodeError:
                logger.warning("Stored user is not valid JSON; ignoring it")
        return cls(token=store.get(TOKEN_KEY), user=user, store=store)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def user_id(self) -> int | None:
        if not self.user:
            return None
        value = self.user.get("userId", self.user.get("id"))
        return int(value) if value is not None else None

    @property
    def role(self) -> UserRole:
        return UserRole.parse((self.user or {}).get("role"))

    @property
    def is_order_manager(self) -> bool:
        return self.role in ORDER_MANAGER_ROLES

    def login(self, token: str, user: dict[str, Any] | None = None) -> None:
        self.token = token
        if user is not None:
            self.user = user
        self._persist()

    def update_token(self, token: str) -> None:
        self.token = token
        if self.store is not None:
            self.store.set(TOKEN_KEY, token)

    def clear(self) -> None:
        self.token = None
        self.user = None
        if self.store is not None:
            self.store.delete(TOKEN_KEY)
            self.store.delete(USER_KEY)

    def _persist(self) -> None:
        if self.store is None:
            return
        if self.token:
            self.store.set(TOKEN_KEY, self.token)
        if self.user is not None:
            self.store.set(USER_KEY, json.dumps(self.user, ensure_ascii=False))


class TokenRefresher:
    """
    Làm mới token kiểu single-flight: nhiều request cùng nhận 401 chỉ gây
    ra một lần gọi refresh, các request còn lại chờ chung một Future.

    Request mang token cũ (đã có token mới sau khi nó được gửi đi) nhận lại
    token hiện tại mà không refresh thêm lần nữa.
    """

    def __init__(self, refresh_fn: Callable[[], str], session: AuthSession):
        self._refresh_fn = refresh_fn
        self._session = session
        self._lock = threading.Lock()
        self._in_flight: Future | None = None

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight is not None

    def refresh(self, stale_token: str | None) -> str:
        with self._lock:
            current = self._session.token
            if current and current != stale_token:
                return current
            future = self._in_flight
            leader = future is None
            if leader:
                future = Future()
                self._in_flight = future

        if not leader:
            return future.result()

        logger.info("Access token expired (%s), refreshing", mask_token(stale_token))
        try:
            token = self._refresh_fn()
            if not token:
                raise SessionExpired("Refresh trả về token rỗng")
        except Exception as exc:
            logger.warning("Token refresh failed: %s", exc)
            with self._lock:
                self._session.clear()
                self._in_flight = None
            if isinstance(exc, SessionExpired):
                future.set_exception(exc)
                raise
            error = SessionExpired("Phiên đăng nhập đã hết hạn, vui lòng đăng nhập lại")
            future.set_exception(error)
            raise error from exc

        with self._lock:
            self._session.update_token(token)
            self._in_flight = None
        future.set_result(token)
        logger.info("Token refreshed (%s)", mask_token(token))
        return token
