"""
Domain Layer - Value objects cho giá, tiền tệ và trạng thái đơn hàng.
VND là đơn vị thanh toán cho mọi số dư ví và tổng tiền đơn hàng.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import NewType

from pandamall.core.exceptions import UnknownCurrencySymbol

UserId = NewType("UserId", int)
OrderNumber = NewType("OrderNumber", str)

VND_QUANTUM = Decimal("1")


class Currency(str, Enum):
    USD = "USD"
    CNY = "CNY"
    VND = "VND"
    EUR = "EUR"
    GBP = "GBP"


class Marketplace(str, Enum):
    """Sàn thương mại nguồn của sản phẩm."""
    ALIEXPRESS = "ALIEXPRESS"
    ALIBABA1688 = "ALIBABA1688"

    @classmethod
    def parse(cls, value: str | None) -> "Marketplace | None":
        if not value:
            return None
        return MARKETPLACE_ALIASES.get(value.strip().lower())

    @property
    def currency(self) -> Currency:
        return MARKETPLACE_CURRENCY[self]


MARKETPLACE_ALIASES: dict[str, Marketplace] = {
    "aliexpress": Marketplace.ALIEXPRESS,
    "ali": Marketplace.ALIEXPRESS,
    "ae": Marketplace.ALIEXPRESS,
    "alibaba1688": Marketplace.ALIBABA1688,
    "1688": Marketplace.ALIBABA1688,
    "a1688": Marketplace.ALIBABA1688,
}

MARKETPLACE_CURRENCY: dict[Marketplace, Currency] = {
    Marketplace.ALIEXPRESS: Currency.USD,
    Marketplace.ALIBABA1688: Currency.CNY,
}

CURRENCY_SYMBOLS: dict[str, Currency] = {
    "$": Currency.USD,
    "¥": Currency.CNY,
    "元": Currency.CNY,
    "₫": Currency.VND,
    "đ": Currency.VND,
    "€": Currency.EUR,
    "£": Currency.GBP,
}


def currency_from_symbol(symbol: str) -> Currency:
    """ISO code hoặc ký hiệu -> Currency. Ký hiệu lạ thì báo lỗi, không mặc định USD."""
    cleaned = symbol.strip()
    try:
        return Currency(cleaned.upper())
    except ValueError:
        pass
    try:
        return CURRENCY_SYMBOLS[cleaned]
    except KeyError:
        raise UnknownCurrencySymbol(symbol) from None


def currency_code(value: str) -> str:
    """
    Mã ISO 4217 ba chữ cái đi thẳng qua (kể cả mã ngoài enum như JPY);
    còn lại tra bảng ký hiệu.
    """
    cleaned = value.strip()
    if len(cleaned) == 3 and cleaned.isascii() and cleaned.isalpha():
        return cleaned.upper()
    return currency_from_symbol(cleaned).value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Giờ không kèm múi (SQLite, backend cũ) được coi là UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


_EARLIEST_UTC = datetime.min.replace(tzinfo=timezone.utc)


def moment_sort_key(moment: datetime | None) -> datetime:
    # Backend trả lẫn giờ có và không có múi; thiếu giờ thì xếp đầu
    return _EARLIEST_UTC if moment is None else as_utc(moment)


class OrderStatus(str, Enum):
    """Vòng đời đơn hàng (server là nguồn sự thật)."""
    PENDING = "PENDING"        # Mới tạo, chờ xác nhận
    CONFIRMED = "CONFIRMED"    # Admin xác nhận, cho phép nhập phí
    SHIPPING = "SHIPPING"      # Đang vận chuyển
    DELIVERED = "DELIVERED"    # Đã giao
    CANCELLED = "CANCELLED"    # Đã hủy


class OrderPaymentStatus(str, Enum):
    PENDING_DEPOSIT = "PENDING_DEPOSIT"
    DEPOSITED = "DEPOSITED"                  # Đã đặt cọc
    PENDING_REMAINING = "PENDING_REMAINING"  # Chờ thanh toán phần còn lại
    WALLET_PAID = "WALLET_PAID"
    FULLY_COMPLETED = "FULLY_COMPLETED"


class TransactionType(str, Enum):
    DEPOSIT = "DEPOSIT"                    # Nạp tiền (cộng)
    WITHDRAWAL = "WITHDRAWAL"              # Rút tiền (trừ)
    ORDER_PAYMENT = "ORDER_PAYMENT"        # Thanh toán đơn (trừ)
    ORDER_REFUND = "ORDER_REFUND"          # Hoàn tiền đơn hủy (cộng)
    ADMIN_ADJUSTMENT = "ADMIN_ADJUSTMENT"  # Điều chỉnh thủ công


def round_vnd(amount: Decimal) -> Decimal:
    """Làm tròn về đồng (ROUND_HALF_UP)."""
    return amount.quantize(VND_QUANTUM, rounding=ROUND_HALF_UP)


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # float đi qua str để tránh 29.99 -> 29.989999...
    return Decimal(str(value))


@dataclass(frozen=True, slots=True)
class Money:
    """Value Object - Số tiền theo đơn vị tiền tệ."""
    amount: Decimal
    currency: str = "VND"

    def __add__(self, other: "Money") -> "Money":
        if self.currency != other.currency:
            raise ValueError("Không thể cộng các đơn vị tiền tệ khác nhau")
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: "Money") -> "Money":
        if self.currency != other.currency:
            raise ValueError("Không thể trừ các đơn vị tiền tệ khác nhau")
        return Money(amount=self.amount - other.amount, currency=self.currency)

    @classmethod
    def vnd(cls, amount: Decimal | int | str) -> "Money":
        return cls(amount=to_decimal(amount), currency=Currency.VND.value)


@dataclass(frozen=True, slots=True)
class ExchangeRate:
    """Value Object - Tỷ giá quy đổi 1 đơn vị ngoại tệ sang VND."""
    rate: Decimal
    currency: str
    valuation_date: date | None = None

    def to_vnd(self, amount: Decimal) -> Money:
        return Money(amount=amount * self.rate, currency=Currency.VND.value)


@dataclass(frozen=True)
class ExchangeRateTable(Mapping[str, ExchangeRate]):
    """
    Bảng tỷ giá theo mã tiền tệ. Không có mặc định cho tiền tệ thiếu:
    tra cứu trả None để caller hiển thị trạng thái đang tải.
    """
    rates: Mapping[str, ExchangeRate] = field(default_factory=dict)

    def __getitem__(self, currency: str) -> ExchangeRate:
        return self.rates[currency.upper()]

    def __iter__(self) -> Iterator[str]:
        return iter(self.rates)

    def __len__(self) -> int:
        return len(self.rates)

    def rate_for(self, currency: str) -> Decimal | None:
        if currency.upper() == Currency.VND.value:
            return Decimal("1")
        rate = self.rates.get(currency.upper())
        if rate is None or rate.rate <= 0:
            return None
        return rate.rate

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Decimal | int | float | str]) -> "ExchangeRateTable":
        return cls({
            code.upper(): ExchangeRate(rate=to_decimal(value), currency=code.upper())
            for code, value in raw.items()
        })


@dataclass(frozen=True, slots=True)
class ItemCountFeeBands:
    """
    Bảng phí kiểm đếm theo số lượng (VND/sản phẩm). Bảng chính thức do
    backend quy định; client chỉ dùng để xem trước.
    """
    tiers: tuple[int, ...]
    regular_fees: tuple[Decimal, ...]
    accessory_fees: tuple[Decimal, ...]
    accessory_threshold_cny: Decimal = Decimal("10")

    def __post_init__(self) -> None:
        if not (len(self.tiers) == len(self.regular_fees) == len(self.accessory_fees)):
            raise ValueError("Bảng phí kiểm đếm không khớp số bậc")
        if list(self.tiers) != sorted(self.tiers):
            raise ValueError("Các bậc số lượng phải tăng dần")

    def fee_per_item(self, quantity: int, accessory: bool) -> Decimal:
        fees = self.accessory_fees if accessory else self.regular_fees
        per_item = fees[0]
        for threshold, fee in zip(self.tiers, fees):
            if quantity >= threshold:
                per_item = fee
        return per_item

    @classmethod
    def from_settings(cls, settings) -> "ItemCountFeeBands":
        return cls(
            tiers=tuple(settings.item_count_tiers),
            regular_fees=tuple(settings.item_count_regular_fees),
            accessory_fees=tuple(settings.item_count_accessory_fees),
            accessory_threshold_cny=settings.accessory_price_threshold_cny,
        )


DEFAULT_ITEM_COUNT_FEE_BANDS = ItemCountFeeBands(
    tiers=(1, 6, 21, 101, 501),
    regular_fees=tuple(Decimal(v) for v in ("5000", "3000", "2000", "1500", "1000")),
    accessory_fees=tuple(Decimal(v) for v in ("2500", "2000", "1500", "1000", "800")),
)
