"""
Unit tests - ApiClient: bearer token, envelope, ánh xạ lỗi, làm mới token.
Backend được giả lập bằng httpx.MockTransport.
"""

import json
import threading
from decimal import Decimal

import httpx
import pytest

from pandamall.application.dto.storefront_dto import FeeConfigRequestDTO
from pandamall.core.exceptions import (
    ApiError,
    Conflict,
    Forbidden,
    InsufficientWalletBalance,
    NotFound,
    SessionExpired,
    UpstreamError,
    UpstreamTimeout,
    ValidationError,
)
from pandamall.core.security import AuthSession, TokenRefresher
from pandamall.domain.entities import FeeConfig
from pandamall.domain.value_objects import OrderPaymentStatus
from pandamall.infrastructure.http import (
    ApiClient,
    BankTransferGateway,
    CartGateway,
    ExchangeRateGateway,
    FeeConfigGateway,
    OrderGateway,
    WalletGateway,
    is_public_endpoint,
)


def _client(settings, handler, token: str | None = "old-token") -> ApiClient:
    return ApiClient(
        session=AuthSession(token=token, user={"userId": 42, "role": "CUSTOMER"}),
        settings=settings,
        transport=httpx.MockTransport(handler),
    )


class TestRequestBasics:
    """Test header và envelope."""

    def test_bearer_header_and_envelope(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            seen["path"] = request.url.path
            return httpx.Response(200, json={"success": True, "message": "OK", "data": {"balance": 1000}})

        with _client(settings, handler) as client:
            body = client.get("/wallet")

        assert body == {"balance": 1000}
        assert seen["auth"] == "Bearer old-token"
        assert seen["path"] == "/api/wallet"

    def test_unenveloped_body_returned_as_is(self, settings):
        def handler(request):
            return httpx.Response(200, json={"USD": {"currency": "USD", "rateToVnd": 25000}})

        with _client(settings, handler) as client:
            assert client.get("/exchange-rates") == {"USD": {"currency": "USD", "rateToVnd": 25000}}

    @pytest.mark.parametrize("path", ["/auth/login", "/auth/register", "/auth/refresh"])
    def test_public_endpoints_without_token(self, settings, path):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"data": {}})

        with _client(settings, handler) as client:
            client.post(path, json={})

        assert seen["auth"] is None
        assert is_public_endpoint(path)

    def test_empty_body(self, settings):
        with _client(settings, lambda request: httpx.Response(204)) as client:
            assert client.delete("/cart/clear") is None


class TestErrorMapping:
    """Test ánh xạ mã HTTP sang exception."""

    @pytest.mark.parametrize("status,error_cls", [
        (400, ValidationError),
        (403, Forbidden),
        (404, NotFound),
        (409, Conflict),
        (500, UpstreamError),
        (502, UpstreamError),
        (504, UpstreamTimeout),
        (418, ApiError),
    ])
    def test_status_codes(self, settings, status, error_cls):
        def handler(request):
            return httpx.Response(status, json={"success": False, "error": {"code": "X", "message": "Lỗi"}})

        with _client(settings, handler) as client:
            with pytest.raises(error_cls) as exc_info:
                client.get("/orders/1")

        assert exc_info.value.status_code == status
        assert exc_info.value.message == "Lỗi"

    def test_spring_error_body(self, settings):
        def handler(request):
            return httpx.Response(400, json={"status": 400, "error": "Bad Request", "message": "Số lượng phải >= 1"})

        with _client(settings, handler) as client:
            with pytest.raises(ValidationError, match="Số lượng"):
                client.put("/cart/items/1", json={"quantity": 0})

    def test_insufficient_balance_by_code(self, settings):
        def handler(request):
            return httpx.Response(400, json={
                "success": False,
                "error": {"code": "INSUFFICIENT_BALANCE", "message": "Không đủ tiền",
                          "required": 304500, "available": 100000},
            })

        with _client(settings, handler) as client:
            with pytest.raises(InsufficientWalletBalance) as exc_info:
                client.post("/orders/10/pay-remaining")

        assert exc_info.value.required == Decimal("304500")
        assert exc_info.value.available == Decimal("100000")

    def test_insufficient_balance_by_message(self, settings):
        def handler(request):
            return httpx.Response(400, json={"message": "Số dư không đủ để thanh toán"})

        with _client(settings, handler) as client:
            with pytest.raises(InsufficientWalletBalance):
                client.post("/orders/10/pay-remaining")

    def test_forbidden_logged(self, settings, caplog):
        with _client(settings, lambda request: httpx.Response(403, json={"message": "Access denied"})) as client:
            with caplog.at_level("WARNING"), pytest.raises(Forbidden):
                client.get("/admin/orders")
        assert "403 Forbidden" in caplog.text

    def test_timeout(self, settings):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with _client(settings, handler) as client:
            with pytest.raises(UpstreamTimeout):
                client.get("/wallet")

    def test_connection_error(self, settings):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with _client(settings, handler) as client:
            with pytest.raises(UpstreamError):
                client.get("/wallet")


class TestTokenRefresh:
    """Test 401 -> refresh -> thử lại đúng một lần."""

    def test_refresh_and_retry(self, settings):
        calls = []

        def handler(request):
            path = request.url.path
            calls.append((path, request.headers.get("Authorization")))
            if path.endswith("/auth/refresh"):
                return httpx.Response(200, json={"success": True, "data": {"token": "new-token"}})
            if request.headers.get("Authorization") == "Bearer new-token":
                return httpx.Response(200, json={"data": {"ok": True}})
            return httpx.Response(401, json={"message": "Token expired"})

        with _client(settings, handler) as client:
            assert client.get("/wallet") == {"ok": True}
            assert client.session.token == "new-token"

        assert [path for path, _ in calls] == ["/api/wallet", "/api/auth/refresh", "/api/wallet"]
        assert calls[1][1] is None

    def test_refresh_failure_clears_session(self, settings):
        def handler(request):
            if request.url.path.endswith("/auth/refresh"):
                return httpx.Response(401, json={"message": "Refresh token expired"})
            return httpx.Response(401)

        with _client(settings, handler) as client:
            with pytest.raises(SessionExpired):
                client.get("/wallet")
            assert client.session.token is None
            assert client.session.user is None

    def test_second_401_after_refresh_clears_session(self, settings):
        def handler(request):
            if request.url.path.endswith("/auth/refresh"):
                return httpx.Response(200, json={"accessToken": "new-token"})
            return httpx.Response(401)

        with _client(settings, handler) as client:
            with pytest.raises(SessionExpired):
                client.get("/wallet")
            assert client.session.is_authenticated is False

    def test_401_without_token_is_not_refreshed(self, settings):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(401, json={"message": "Unauthorized"})

        with _client(settings, handler, token=None) as client:
            with pytest.raises(ApiError) as exc_info:
                client.get("/cart")

        assert exc_info.value.status_code == 401
        assert paths == ["/api/cart"]


class TestSingleFlightRefresh:
    """Test nhiều request đồng thời cùng 401 chỉ gọi refresh một lần."""

    def test_concurrent_refresh_calls_backend_once(self):
        session = AuthSession(token="old-token")
        release = threading.Event()
        refresh_calls = []

        def refresh_fn():
            refresh_calls.append(1)
            release.wait(timeout=5)
            return "new-token"

        refresher = TokenRefresher(refresh_fn, session)
        results = []

        def worker():
            results.append(refresher.refresh("old-token"))

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        release.set()
        for thread in threads:
            thread.join(timeout=5)

        assert len(refresh_calls) == 1
        assert results == ["new-token"] * 5
        assert session.token == "new-token"
        assert refresher.in_flight is False

    def test_stale_token_gets_current_token(self):
        session = AuthSession(token="newer-token")
        refresher = TokenRefresher(lambda: pytest.fail("không được refresh lại"), session)
        assert refresher.refresh("old-token") == "newer-token"

    def test_failure_wraps_in_session_expired(self):
        session = AuthSession(token="old-token", user={"userId": 1})

        def refresh_fn():
            raise RuntimeError("network down")

        with pytest.raises(SessionExpired):
            TokenRefresher(refresh_fn, session).refresh("old-token")
        assert session.token is None


class TestGateways:
    """Test gateway bóc dữ liệu backend thành entity."""

    def test_exchange_rates_map_skips_unusable(self, settings, caplog):
        def handler(request):
            return httpx.Response(200, json={
                "USD": {"currency": "USD", "rateToVnd": 25000, "source": "VCB", "updatedAt": "2025-12-15T08:00:00"},
                "CNY": {"currency": "CNY", "rateToVnd": 3500},
                "EUR": {"currency": "EUR", "rateToVnd": 0},
            })

        with _client(settings, handler) as client, caplog.at_level("WARNING"):
            table = ExchangeRateGateway(client).get_rates()

        assert table.rate_for("USD") == Decimal("25000")
        assert table.rate_for("CNY") == Decimal("3500")
        assert table.rate_for("EUR") is None
        assert "EUR" in caplog.text

    def test_cart(self, settings):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": {
                "id": 1,
                "items": [
                    {"id": 5, "productId": "p1", "price": 29.99, "quantity": 2, "marketplace": "ALIEXPRESS"},
                    {"id": 6, "productId": "p2", "price": 50, "quantity": 1, "marketplace": "ALIBABA1688"},
                ],
            }})

        with _client(settings, handler) as client:
            cart = CartGateway(client).get_cart()

        assert len(cart) == 2
        assert cart.get(5).unit_price == Decimal("29.99")

    def test_update_quantity_zero_removes(self, settings):
        methods = []

        def handler(request):
            methods.append((request.method, request.url.path))
            return httpx.Response(200, json={"data": {"items": []}})

        with _client(settings, handler) as client:
            cart = CartGateway(client).update_quantity(5, 0)

        assert methods == [("DELETE", "/api/cart/items/5")]
        assert cart.is_empty()

    def test_process_pending(self, settings):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": {
                "status": "SUCCESS", "unprocessedCount": 1, "processedCount": 2, "data": [],
            }})

        with _client(settings, handler) as client:
            result = BankTransferGateway(client).process_pending()

        assert result.processed_count == 2
        assert result.unprocessed_count == 1

    def test_fee_config_not_found_returns_none(self, settings):
        with _client(settings, lambda request: httpx.Response(404, json={"message": "No active config"})) as client:
            assert FeeConfigGateway(client).get_active() is None

    def test_fee_config_forbidden_for_customer_returns_none(self, settings, caplog):
        def handler(request):
            return httpx.Response(403, json={"success": False, "message": "Access Denied"})

        with _client(settings, handler) as client, caplog.at_level("INFO"):
            assert FeeConfigGateway(client).get_active() is None

        assert "using defaults" in caplog.text

    def test_fee_config_effective_picks_latest_active(self, settings, caplog):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": [
                {"id": 1, "serviceFeePercent": 1.5, "depositPercent": 70, "isActive": True,
                 "updatedAt": "2025-12-10T08:00:00Z"},
                {"id": 2, "serviceFeePercent": 2, "depositPercent": 60, "isActive": True,
                 "updatedAt": "2025-12-14T08:00:00"},
                {"id": 3, "serviceFeePercent": 5, "depositPercent": 50, "isActive": False,
                 "updatedAt": "2025-12-15T08:00:00Z"},
            ]})

        with _client(settings, handler) as client, caplog.at_level("WARNING"):
            config = FeeConfigGateway(client).effective_config()

        assert config.id == 2
        assert config.deposit_percent == Decimal("60")
        assert "2 active fee configs" in caplog.text

    def test_fee_config_effective_without_active_uses_default(self, settings):
        fallback = FeeConfig(service_fee_percent=Decimal("1.5"), deposit_percent=Decimal("70"))

        def handler(request):
            return httpx.Response(200, json={"data": [{"id": 1, "depositPercent": 50, "isActive": False}]})

        with _client(settings, handler) as client:
            assert FeeConfigGateway(client).effective_config(fallback) is fallback

    def test_order_summary_with_null_fields(self, settings):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": {"orders": [{
                "id": 1, "userId": 42, "orderNumber": "ORD-20251215-0001", "status": "PENDING",
                "paymentStatus": None, "totalAmount": 1521993, "productCost": None, "serviceFee": None,
                "depositAmount": None, "remainingAmount": None, "items": None, "statusHistory": None,
            }]}})

        with _client(settings, handler) as client:
            orders = OrderGateway(client).list_orders()

        assert len(orders) == 1
        order = orders[0]
        assert order.total_amount == Decimal("1521993")
        assert order.product_cost == Decimal("0")
        assert order.service_fee == Decimal("0")
        assert order.payment_status is OrderPaymentStatus.PENDING_DEPOSIT
        assert order.items == []
        assert order.status_history == []

    def test_wallet_lock_and_unlock(self, settings):
        calls = []

        def handler(request):
            calls.append((request.method, request.url.path))
            return httpx.Response(200, json={"success": True, "message": "Wallet locked successfully", "data": None})

        with _client(settings, handler) as client:
            gateway = WalletGateway(client)
            gateway.lock(42)
            gateway.unlock(42)

        assert calls == [("POST", "/api/wallet/42/lock"), ("POST", "/api/wallet/42/unlock")]

    def test_fee_config_create_sends_camel_case(self, settings):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": 9, "serviceFeePercent": 2, "depositPercent": 60, "isActive": False})

        with _client(settings, handler) as client:
            config = FeeConfigGateway(client).create(
                FeeConfigRequestDTO(service_fee_percent=Decimal("2"), deposit_percent=Decimal("60"))
            )

        assert seen["body"]["serviceFeePercent"] == "2"
        assert seen["body"]["depositPercent"] == "60"
        assert "isActive" not in seen["body"]
        assert config.id == 9
        assert config.is_active is False

    def test_fee_config_boolean_alias(self, settings):
        def handler(request):
            return httpx.Response(200, json={"data": {
                "id": 3, "serviceFeePercent": 2.0, "depositPercent": 80, "active": True,
            }})

        with _client(settings, handler) as client:
            config = FeeConfigGateway(client).get_active()

        assert config.service_fee_percent == Decimal("2.0")
        assert config.deposit_percent == Decimal("80")
        assert config.is_active is True
