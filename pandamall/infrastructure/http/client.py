"""
HTTP client - Một ApiClient cho mỗi phiên, bọc httpx.Client.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from pandamall.application.dto.storefront_dto import unwrap_envelope
from pandamall.core.config import Settings, get_settings
from pandamall.core.exceptions import (
    ApiError,
    Conflict,
    Forbidden,
    InsufficientWalletBalance,
    NotFound,
    SessionExpired,
    Unauthorized,
    UpstreamError,
    UpstreamTimeout,
    ValidationError,
)
from pandamall.core.security import AuthSession, TokenRefresher, mask_token

logger = logging.getLogger(__name__)

PUBLIC_ENDPOINTS = ("/auth/login", "/auth/register", "/auth/refresh")

INSUFFICIENT_BALANCE_CODES = frozenset({"INSUFFICIENT_BALANCE", "INSUFFICIENT_WALLET_BALANCE"})
INSUFFICIENT_BALANCE_MARKERS = ("insufficient", "không đủ số dư", "số dư không đủ")

STATUS_ERRORS: dict[int, type[ApiError]] = {
    400: ValidationError,
    401: Unauthorized,
    403: Forbidden,
    404: NotFound,
    409: Conflict,
    502: UpstreamError,
    503: UpstreamError,
    504: UpstreamTimeout,
}


def is_public_endpoint(path: str) -> bool:
    return any(path.rstrip("/").endswith(endpoint) for endpoint in PUBLIC_ENDPOINTS)


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_details(body: Any, response: httpx.Response) -> tuple[str, str | None]:
    """
    Backend trả lỗi theo hai dạng:
    {success: false, error: {code, message}} hoặc {status, error: "Bad Request", message}.
    """
    message: str | None = None
    code: str | None = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            code = error.get("code")
            message = error.get("message") or error.get("details")
        code = body.get("code") or code
        message = body.get("message") or message
        if not message and isinstance(error, str):
            message = error
    elif isinstance(body, str) and body.strip():
        message = body.strip()
    return message or response.reason_phrase or f"HTTP {response.status_code}", code


def _extract_amounts(body: Any) -> tuple[Decimal | None, Decimal | None]:
    if not isinstance(body, dict):
        return None, None
    source = body.get("error") if isinstance(body.get("error"), dict) else body
    values = []
    for key in ("required", "available"):
        raw = source.get(key)
        try:
            values.append(Decimal(str(raw)) if raw is not None else None)
        except InvalidOperation:
            values.append(None)
    return values[0], values[1]


def map_error(response: httpx.Response) -> ApiError:
    body = _decode_body(response)
    message, code = _error_details(body, response)
    status = response.status_code

    if (code and code.upper() in INSUFFICIENT_BALANCE_CODES) or (
        not code and any(marker in message.lower() for marker in INSUFFICIENT_BALANCE_MARKERS)
    ):
        required, available = _extract_amounts(body)
        return InsufficientWalletBalance(
            message, status, body, code, required=required, available=available
        )

    error_cls = STATUS_ERRORS.get(status)
    if error_cls is None:
        error_cls = UpstreamError if status >= 500 else ApiError
    return error_cls(message, status, body, code)


class ApiClient:
    """
    Client REST: gắn Bearer token (trừ endpoint xác thực công khai),
    bóc envelope {data}, ánh xạ lỗi HTTP sang exception và tự làm mới
    token khi gặp 401 (tối đa một lần cho mỗi request gốc).
    """

    def __init__(
        self,
        session: AuthSession | None = None,
        settings: Settings | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        settings = settings or get_settings()
        self.session = session or AuthSession()
        self._http = httpx.Client(
            base_url=base_url or settings.api_base_url,
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=transport,
        )
        self.refresher = TokenRefresher(self._refresh_access_token, self.session)

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def _headers(self, path: str, token: str | None) -> dict[str, str]:
        if token and not is_public_endpoint(path):
            return {"Authorization": f"Bearer {token}"}
        return {}

    def _send(
        self,
        method: str,
        path: str,
        token: str | None,
        params: dict[str, Any] | None,
        json: Any,
    ) -> httpx.Response:
        logger.debug("%s %s (token=%s)", method, path, mask_token(token))
        try:
            return self._http.request(
                method, path, params=params, json=json, headers=self._headers(path, token)
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(f"Hết thời gian chờ khi gọi {method} {path}") from exc
        except httpx.TransportError as exc:
            raise UpstreamError(f"Không kết nối được backend: {exc}") from exc

    def _refresh_access_token(self) -> str:
        # refresh_token nằm trong cookie httpOnly, httpx giữ trong cookie jar
        response = self._send("POST", "/auth/refresh", None, None, {})
        if response.status_code != 200:
            raise SessionExpired(
                "Không thể làm mới phiên đăng nhập", response.status_code, _decode_body(response)
            )
        body = unwrap_envelope(_decode_body(response))
        token = (body.get("token") or body.get("accessToken")) if isinstance(body, dict) else None
        if not token:
            raise SessionExpired("Phản hồi refresh không chứa token", response.status_code, body)
        return token

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        token = self.session.token
        response = self._send(method, path, token, params, json)

        if response.status_code == 401 and not is_public_endpoint(path):
            if not token:
                raise map_error(response)
            new_token = self.refresher.refresh(token)
            response = self._send(method, path, new_token, params, json)
            if response.status_code == 401:
                logger.warning("Still unauthorized after refresh on %s %s; clearing session", method, path)
                self.session.clear()
                raise SessionExpired(
                    "Phiên đăng nhập đã hết hạn, vui lòng đăng nhập lại", 401, _decode_body(response)
                )

        if response.is_success:
            return unwrap_envelope(_decode_body(response))

        error = map_error(response)
        if isinstance(error, Forbidden):
            logger.warning(
                "403 Forbidden on %s %s (authenticated=%s): %s",
                method, path, self.session.is_authenticated, error.message,
            )
        else:
            logger.debug("%s %s failed with %s: %s", method, path, response.status_code, error.message)
        raise error

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Any = None, params: dict[str, Any] | None = None) -> Any:
        return self.request("POST", path, params=params, json=json)

    def put(self, path: str, json: Any = None) -> Any:
        return self.request("PUT", path, json=json)

    def delete(self, path: str) -> Any:
        return self.request("DELETE", path)
