"""
Unit tests - Kho trạng thái phía client (SQLite): TTL, sàn mặc định,
cache bản dịch, lưu phiên đăng nhập.
"""

from datetime import datetime, timedelta, timezone

import pytest

from pandamall.core.security import AuthSession, UserRole, mask_token
from pandamall.infrastructure.database import (
    MARKETPLACE_KEY,
    ClientStateEntry,
    ClientStateStore,
    TranslationCache,
    init_db,
    make_engine,
)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 12, 15, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock) -> ClientStateStore:
    engine = make_engine("sqlite://")
    init_db(engine)
    return ClientStateStore(engine, clock=clock)


class TestClientStateStore:
    """Test get/set/delete và hết hạn."""

    def test_set_get_delete(self, memory_store):
        memory_store.set("token", "abc")
        assert memory_store.get("token") == "abc"

        memory_store.set("token", "xyz")
        assert memory_store.get("token") == "xyz"

        memory_store.delete("token")
        assert memory_store.get("token") is None

    def test_delete_missing_key(self, memory_store):
        memory_store.delete("khong-ton-tai")

    def test_ttl_expiry_removes_entry(self, store, clock):
        store.set("otp", "123456", ttl=timedelta(minutes=5))
        clock.advance(minutes=4)
        assert store.get("otp") == "123456"

        clock.advance(minutes=2)
        assert store.get("otp") is None
        assert store.entries("otp") == []

    def test_json_roundtrip_and_corrupt_value(self, memory_store):
        memory_store.set_json("user", {"userId": 42, "fullName": "Nguyễn Văn A"})
        assert memory_store.get_json("user") == {"userId": 42, "fullName": "Nguyễn Văn A"}

        memory_store.set("user", "{not json")
        assert memory_store.get_json("user") is None
        assert memory_store.get("user") is None

    def test_prefix_does_not_treat_underscore_as_wildcard(self, memory_store):
        memory_store.set("translation_aliexpress_1", "{}")
        memory_store.set("translationXaliexpress_2", "{}")

        assert [entry.key for entry in memory_store.entries("translation_")] == ["translation_aliexpress_1"]


class TestTimezoneHandling:
    """Test giờ UTC có múi khi ghi và đọc lại từ SQLite."""

    def test_default_clock_writes_and_expires(self, memory_store):
        memory_store.set("otp", "123456", ttl=timedelta(minutes=5))
        assert memory_store.get("otp") == "123456"

        memory_store.set("otp", "654321", ttl=timedelta(seconds=-1))
        assert memory_store.get("otp") is None

    def test_default_updated_at_is_aware(self):
        entry = ClientStateEntry(key="token", value="abc")
        assert entry.updated_at.tzinfo is not None

    def test_naive_clock_is_treated_as_utc(self):
        engine = make_engine("sqlite://")
        init_db(engine)
        clock = FakeClock(datetime(2025, 12, 15, 9, 0))
        naive_store = ClientStateStore(engine, clock=clock)

        naive_store.set("otp", "123456", ttl=timedelta(minutes=5))
        assert naive_store.get("otp") == "123456"
        clock.advance(minutes=6)
        assert naive_store.get("otp") is None

    def test_is_expired_mixes_naive_and_aware(self):
        entry = ClientStateEntry(key="otp", value="1", expires_at=datetime(2025, 12, 15, 9, 5))

        assert not entry.is_expired(datetime(2025, 12, 15, 9, 0, tzinfo=timezone.utc))
        assert entry.is_expired(datetime(2025, 12, 15, 16, 6, tzinfo=timezone(timedelta(hours=7))))


class TestMarketplacePreference:
    """Test sàn đang chọn."""

    def test_default_aliexpress(self, memory_store):
        assert memory_store.get_marketplace() == "aliexpress"

    def test_set_lowercases(self, memory_store):
        memory_store.set_marketplace("ALIBABA1688")
        assert memory_store.get_marketplace() == "alibaba1688"
        assert memory_store.get(MARKETPLACE_KEY) == "alibaba1688"


class TestTranslationCache:
    """Test cache bản dịch 7 ngày."""

    def test_key_layout(self):
        assert TranslationCache.key("aliexpress", "1005005244562338") == "translation_aliexpress_1005005244562338"

    def test_save_and_expire(self, store, clock):
        cache = TranslationCache(store, ttl_days=7)
        cache.save("aliexpress", "1", {"title": "Áo khoác"})
        assert cache.get("aliexpress", "1") == {"title": "Áo khoác"}

        clock.advance(days=8)
        assert cache.get("aliexpress", "1") is None

    def test_stats_and_clear_all(self, store, clock):
        cache = TranslationCache(store, ttl_days=7)
        cache.save("aliexpress", "1", {"title": "A"})
        clock.advance(days=5)
        cache.save("1688", "2", {"title": "B"})
        store.set_marketplace("aliexpress")
        clock.advance(days=3)

        stats = cache.stats()
        assert (stats.total, stats.expired, stats.valid) == (2, 1, 1)

        assert cache.clear_all() == 2
        assert cache.stats().total == 0
        assert store.get_marketplace() == "aliexpress"

    def test_clear_single(self, memory_store):
        cache = TranslationCache(memory_store)
        cache.save("aliexpress", "1", {"title": "A"})
        cache.clear("aliexpress", "1")
        assert cache.get("aliexpress", "1") is None


class TestAuthSessionPersistence:
    """Test phiên đăng nhập lưu theo khóa token / user."""

    def test_login_persists_and_load_restores(self, memory_store):
        session = AuthSession(store=memory_store)
        session.login("jwt-token-value", {"userId": 42, "role": "ROLE_ADMIN"})

        restored = AuthSession.load(memory_store)
        assert restored.token == "jwt-token-value"
        assert restored.user_id == 42
        assert restored.role is UserRole.ADMIN
        assert restored.is_order_manager

    def test_clear_removes_keys(self, memory_store):
        session = AuthSession(store=memory_store)
        session.login("jwt-token-value", {"userId": 42})
        session.clear()

        assert memory_store.get("token") is None
        assert memory_store.get("user") is None
        assert AuthSession.load(memory_store).is_authenticated is False

    def test_update_token_keeps_user(self, memory_store):
        session = AuthSession(store=memory_store)
        session.login("first-token", {"userId": 7, "role": "STAFF"})
        session.update_token("second-token")

        restored = AuthSession.load(memory_store)
        assert restored.token == "second-token"
        assert restored.role is UserRole.STAFF

    def test_corrupt_user_ignored(self, memory_store):
        memory_store.set("token", "t")
        memory_store.set("user", "{oops")
        assert AuthSession.load(memory_store).user is None

    @pytest.mark.parametrize("token,masked", [
        (None, "<none>"),
        ("short", "***"),
        ("eyJhbGciOiJIUzI1NiJ9.payload.sig", "eyJhbG....sig"),
    ])
    def test_mask_token(self, token, masked):
        assert mask_token(token) == masked
