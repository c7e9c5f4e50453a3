"""
Error taxonomy - Domain errors và lỗi giao tiếp với backend.
"""

from decimal import Decimal


class PandaMallError(Exception):
    """Base class for every error raised by this package."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class DomainError(PandaMallError, ValueError):
    """Vi phạm quy tắc nghiệp vụ phía client."""


class PricingError(DomainError):
    pass


class EmptyCartOnCheckout(PricingError):
    def __init__(self, message: str = "Giỏ hàng trống, không thể thanh toán"):
        super().__init__(message)


class MissingExchangeRate(PricingError):
    def __init__(self, currencies: list[str]):
        self.currencies = sorted(set(currencies))
        super().__init__(
            f"Chưa có tỷ giá cho: {', '.join(self.currencies)}"
        )


class NegativeOrZeroQuantity(PricingError):
    def __init__(self, quantity: int):
        self.quantity = quantity
        super().__init__(f"Số lượng không hợp lệ: {quantity} (phải >= 1)")


class UnknownCurrencySymbol(DomainError):
    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"Không nhận diện được ký hiệu tiền tệ: {symbol!r}")


class OrderActionNotAllowed(DomainError):
    def __init__(self, action: str, status: str, reason: str | None = None):
        self.action = action
        self.status = status
        message = f"Không thể thực hiện {action} khi đơn hàng ở trạng thái {status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class WalletLocked(DomainError):
    def __init__(self, user_id: int | None = None):
        self.user_id = user_id
        super().__init__("Ví đang bị khóa, không thể giao dịch")


class ApiError(PandaMallError):
    """Non-2xx response (or transport failure) from the backend."""

    status_code: int | None = None

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: object | None = None,
        code: str | None = None,
    ):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload
        self.code = code


class ValidationError(ApiError):
    status_code = 400


class Unauthorized(ApiError):
    status_code = 401


class SessionExpired(Unauthorized):
    """Refresh failed; the local session has been cleared."""


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class Conflict(ApiError):
    status_code = 409


class UpstreamError(ApiError):
    status_code = 502


class UpstreamTimeout(UpstreamError):
    status_code = 504


class InsufficientWalletBalance(ApiError):
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: object | None = None,
        code: str | None = None,
        required: Decimal | None = None,
        available: Decimal | None = None,
    ):
        super().__init__(message, status_code, payload, code)
        self.required = required
        self.available = available
