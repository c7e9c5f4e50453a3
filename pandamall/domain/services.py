"""
Domain Services - Quy đổi tiền tệ, tính giá checkout, phí dịch vụ thêm
và kiểm tra sổ giao dịch ví.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from pandamall.core.exceptions import EmptyCartOnCheckout, MissingExchangeRate, OrderActionNotAllowed

from .entities import CartLine, FeeConfig, Order, OrderItem, WalletTransaction
from .value_objects import (
    DEFAULT_ITEM_COUNT_FEE_BANDS,
    Currency,
    ExchangeRateTable,
    ItemCountFeeBands,
    Marketplace,
    OrderStatus,
    currency_code,
    moment_sort_key,
    round_vnd,
    to_decimal,
)

logger = logging.getLogger(__name__)

RateSource = ExchangeRateTable | Mapping[str, Decimal | int | float | str]

HUNDRED = Decimal("100")


class IExchangeRateProvider(ABC):

    @abstractmethod
    def get_rates(self) -> ExchangeRateTable:
        ...


class IFeeConfigProvider(ABC):

    @abstractmethod
    def get_active(self) -> FeeConfig | None:
        ...


def _as_table(rates: RateSource | None) -> ExchangeRateTable:
    if rates is None:
        return ExchangeRateTable()
    if isinstance(rates, ExchangeRateTable):
        return rates
    return ExchangeRateTable.from_mapping(rates)


def to_vnd(amount: Decimal | int | float | str, currency: str, rates: RateSource | None) -> Decimal | None:
    """
    Quy đổi sang VND. Trả None (không phải 0, không raise) khi chưa có tỷ giá,
    để caller hiển thị trạng thái đang tải thay vì tổng tiền sai.
    """
    rate = _as_table(rates).rate_for(currency)
    if rate is None:
        return None
    return to_decimal(amount) * rate


def _field(line: Any, *names: str) -> Any:
    for name in names:
        value = line.get(name) if isinstance(line, Mapping) else getattr(line, name, None)
        if value:
            return value
    return None


def infer_line_currency(line: Any) -> str:
    """
    Tiền tệ của một dòng giỏ hàng / đơn hàng, theo thứ tự:
    1. trường currency từ backend, 2. suy ra từ sàn, 3. USD.
    Dùng chung cho giỏ hàng, chi tiết đơn và danh sách đơn.
    """
    explicit = _field(line, "currency")
    if explicit:
        return currency_code(str(explicit))

    marketplace = _field(line, "marketplace", "platform")
    if marketplace:
        if isinstance(marketplace, Marketplace):
            return marketplace.currency.value
        parsed = Marketplace.parse(str(marketplace))
        if parsed is not None:
            return parsed.currency.value

    return Currency.USD.value


_DISPLAY_FORMATS: dict[str, tuple[str, bool, int]] = {
    # symbol, symbol_before, decimals
    Currency.USD.value: ("$", True, 2),
    Currency.CNY.value: ("元", True, 2),
    Currency.VND.value: ("đ", False, 0),
}


def format_money(amount: Decimal | int | float | str, currency: str) -> str:
    """Định dạng kiểu vi-VN: dấu chấm phân cách nghìn, dấu phẩy thập phân."""
    symbol, before, decimals = _DISPLAY_FORMATS.get(currency.upper(), _DISPLAY_FORMATS["USD"])
    value = to_decimal(amount)
    text = f"{value:,.{decimals}f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{symbol}{text}" if before else f"{text} {symbol}"


class CurrencyService:
    """Service - Quy đổi và định dạng tiền tệ."""

    def __init__(self, rates: RateSource | None = None):
        self.rates = _as_table(rates)

    def to_vnd(self, amount: Decimal, currency: str) -> Decimal | None:
        return to_vnd(amount, currency, self.rates)

    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal | None:
        from_rate = self.rates.rate_for(from_currency)
        to_rate = self.rates.rate_for(to_currency)
        if from_rate is None or to_rate is None:
            return None
        return to_decimal(amount) * from_rate / to_rate

    def line_currency(self, line: Any) -> str:
        return infer_line_currency(line)

    def format(self, amount: Decimal, currency: str) -> str:
        return format_money(amount, currency)


@dataclass(frozen=True, slots=True)
class CheckoutTotals:
    """Kết quả tính giá checkout, mọi giá trị là VND nguyên."""
    total_vnd: Decimal
    service_fee_vnd: Decimal
    total_with_service_fee: Decimal
    deposit_vnd: Decimal
    remaining_vnd: Decimal
    service_fee_percent: Decimal
    deposit_percent: Decimal


@dataclass(frozen=True, slots=True)
class CheckoutPreview:
    """
    Hiển thị trong lúc tỷ giá chưa đủ: tổng theo tiền tệ gốc, totals=None
    và danh sách tiền tệ còn thiếu tỷ giá.
    """
    native_totals: dict[str, Decimal]
    totals: CheckoutTotals | None
    pending_currencies: tuple[str, ...] = ()

    @property
    def is_ready(self) -> bool:
        return self.totals is not None


class PricingService:
    """
    Service - Tính tổng tiền, phí dịch vụ và tiền cọc lúc checkout.
    Phí vận chuyển và dịch vụ thêm chưa biết ở bước này.
    """

    def __init__(self, default_fee_config: FeeConfig | None = None):
        self.default_fee_config = default_fee_config or FeeConfig()

    def compute_checkout_totals(
        self,
        lines: Sequence[CartLine],
        rates: RateSource | None,
        fee_config: FeeConfig | None = None,
    ) -> CheckoutTotals:
        if not lines:
            raise EmptyCartOnCheckout()

        table = _as_table(rates)
        missing: list[str] = []
        total = Decimal("0")
        for line in lines:
            currency = infer_line_currency(line)
            converted = to_vnd(line.line_total, currency, table)
            if converted is None:
                missing.append(currency)
                continue
            total += converted

        if missing:
            raise MissingExchangeRate(missing)

        config = fee_config or self.default_fee_config
        total_vnd = round_vnd(total)
        service_fee = round_vnd(total_vnd * config.service_fee_percent / HUNDRED)
        total_with_fee = total_vnd + service_fee
        deposit = round_vnd(total_with_fee * config.deposit_percent / HUNDRED)

        return CheckoutTotals(
            total_vnd=total_vnd,
            service_fee_vnd=service_fee,
            total_with_service_fee=total_with_fee,
            deposit_vnd=deposit,
            remaining_vnd=total_with_fee - deposit,
            service_fee_percent=config.service_fee_percent,
            deposit_percent=config.deposit_percent,
        )

    def preview_checkout_totals(
        self,
        lines: Sequence[CartLine],
        rates: RateSource | None,
        fee_config: FeeConfig | None = None,
    ) -> CheckoutPreview:
        if not lines:
            raise EmptyCartOnCheckout()

        table = _as_table(rates)
        native: dict[str, Decimal] = {}
        pending: set[str] = set()
        for line in lines:
            currency = infer_line_currency(line)
            native[currency] = native.get(currency, Decimal("0")) + line.line_total
            if table.rate_for(currency) is None:
                pending.add(currency)

        if pending:
            logger.debug("Checkout preview waiting for rates: %s", sorted(pending))
            return CheckoutPreview(native_totals=native, totals=None, pending_currencies=tuple(sorted(pending)))

        return CheckoutPreview(
            native_totals=native,
            totals=self.compute_checkout_totals(lines, table, fee_config),
        )


@dataclass(frozen=True, slots=True)
class FeeUpdate:
    """Yêu cầu admin cập nhật phí (đơn ở trạng thái CONFIRMED)."""
    domestic_shipping_fee_cny: Decimal | None = None
    international_shipping_fee_vnd: Decimal | None = None
    vietnam_domestic_shipping_fee_vnd: Decimal | None = None
    estimated_weight: Decimal | None = None
    include_wooden_packaging: bool = False
    include_bubble_wrap: bool = False
    include_item_count_check: bool = False
    note: str | None = None


class AdditionalServiceFeeService:
    """
    Service - Phí dịch vụ thêm (đóng gỗ, quấn bọt khí, kiểm đếm).
    Chỉ cộng vào phần còn lại, không bao giờ vào tiền cọc.
    """

    WOODEN_FIRST_KG_CNY = Decimal("20")
    WOODEN_ADDITIONAL_KG_CNY = Decimal("1")
    BUBBLE_FIRST_KG_CNY = Decimal("10")
    BUBBLE_ADDITIONAL_KG_CNY = Decimal("1.5")

    def __init__(self, rates: RateSource | None, bands: ItemCountFeeBands | None = None):
        self.rates = _as_table(rates)
        self.bands = bands or DEFAULT_ITEM_COUNT_FEE_BANDS

    def _cny_to_vnd(self, amount_cny: Decimal) -> Decimal:
        converted = to_vnd(amount_cny, Currency.CNY.value, self.rates)
        if converted is None:
            raise MissingExchangeRate([Currency.CNY.value])
        return round_vnd(converted)

    @staticmethod
    def _weight_based_cny(weight: Decimal, first_kg: Decimal, per_additional_kg: Decimal) -> Decimal:
        if weight <= 0:
            return Decimal("0")
        return first_kg + max(Decimal("0"), weight - 1) * per_additional_kg

    def wooden_packaging_fee_cny(self, weight: Decimal) -> Decimal:
        return self._weight_based_cny(
            to_decimal(weight), self.WOODEN_FIRST_KG_CNY, self.WOODEN_ADDITIONAL_KG_CNY
        )

    def bubble_wrap_fee_cny(self, weight: Decimal) -> Decimal:
        return self._weight_based_cny(
            to_decimal(weight), self.BUBBLE_FIRST_KG_CNY, self.BUBBLE_ADDITIONAL_KG_CNY
        )

    def wooden_packaging_fee(self, weight: Decimal) -> Decimal:
        fee_cny = self.wooden_packaging_fee_cny(weight)
        if fee_cny == 0:
            return Decimal("0")
        fee = self._cny_to_vnd(fee_cny)
        logger.debug("Wooden packaging: %skg = %s CNY = %s VND", weight, fee_cny, fee)
        return fee

    def bubble_wrap_fee(self, weight: Decimal) -> Decimal:
        fee_cny = self.bubble_wrap_fee_cny(weight)
        if fee_cny == 0:
            return Decimal("0")
        fee = self._cny_to_vnd(fee_cny)
        logger.debug("Bubble wrap: %skg = %s CNY = %s VND", weight, fee_cny, fee)
        return fee

    def _price_in_cny(self, item: OrderItem) -> Decimal:
        currency = infer_line_currency(item)
        if currency == Currency.CNY.value:
            return item.price
        converted = CurrencyService(self.rates).convert(item.price, currency, Currency.CNY.value)
        if converted is None:
            raise MissingExchangeRate([currency, Currency.CNY.value])
        return converted

    def item_count_check_fee(self, items: Iterable[OrderItem]) -> Decimal:
        """Xem trước phí kiểm đếm; bảng phí chính thức thuộc backend."""
        total_items = 0
        accessory_items = 0
        for item in items:
            total_items += item.quantity
            if self._price_in_cny(item) < self.bands.accessory_threshold_cny:
                accessory_items += item.quantity

        regular_items = total_items - accessory_items
        fee = Decimal("0")
        if regular_items > 0:
            fee += self.bands.fee_per_item(regular_items, accessory=False) * regular_items
        if accessory_items > 0:
            fee += self.bands.fee_per_item(accessory_items, accessory=True) * accessory_items
        logger.debug(
            "Item count check: %d regular, %d accessory items -> %s VND",
            regular_items, accessory_items, fee,
        )
        return fee

    def total_additional_services_fee(
        self,
        items: Iterable[OrderItem],
        weight: Decimal | None,
        include_wooden_packaging: bool = False,
        include_bubble_wrap: bool = False,
        include_item_count_check: bool = False,
    ) -> Decimal:
        weight = to_decimal(weight) if weight is not None else Decimal("0")
        total = Decimal("0")
        if include_item_count_check:
            total += self.item_count_check_fee(items)
        if include_wooden_packaging:
            total += self.wooden_packaging_fee(weight)
        if include_bubble_wrap:
            total += self.bubble_wrap_fee(weight)
        return total

    def preview_fee_update(self, order: Order, update: FeeUpdate) -> Order:
        """Đơn hàng sau khi admin cập nhật phí, tính như backend."""
        if order.status != OrderStatus.CONFIRMED:
            raise OrderActionNotAllowed(
                "SET_FEES", order.status.value,
                "chỉ cập nhật phí khi đơn ở trạng thái CONFIRMED",
            )

        domestic = (
            self._cny_to_vnd(to_decimal(update.domestic_shipping_fee_cny))
            if update.domestic_shipping_fee_cny is not None else None
        )
        additional = self.total_additional_services_fee(
            order.items,
            update.estimated_weight,
            include_wooden_packaging=update.include_wooden_packaging,
            include_bubble_wrap=update.include_bubble_wrap,
            include_item_count_check=update.include_item_count_check,
        )
        return order.apply_fees(
            domestic_shipping_fee=domestic,
            international_shipping_fee=update.international_shipping_fee_vnd,
            vietnam_domestic_shipping_fee=update.vietnam_domestic_shipping_fee_vnd,
            additional_services_fee=additional,
            estimated_weight=update.estimated_weight,
            note=update.note,
        )


@dataclass(frozen=True, slots=True)
class LedgerDiscrepancy:
    transaction_id: int
    expected_balance_after: Decimal
    recorded_balance_after: Decimal

    @property
    def difference(self) -> Decimal:
        return self.recorded_balance_after - self.expected_balance_after


@dataclass
class LedgerReport:
    entries_checked: int = 0
    opening_balance: Decimal = Decimal("0")
    closing_balance: Decimal = Decimal("0")
    discrepancies: list[LedgerDiscrepancy] = field(default_factory=list)
    negative_balances: list[int] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.discrepancies and not self.negative_balances

    @property
    def flagged_ids(self) -> list[int]:
        return [d.transaction_id for d in self.discrepancies]


class LedgerService:
    """
    Service - Đối chiếu sổ giao dịch ví.
    balanceAfter(n) = balanceAfter(n-1) ± amount theo cờ credit.
    """

    @staticmethod
    def _chronological(transactions: Iterable[WalletTransaction]) -> list[WalletTransaction]:
        return sorted(
            transactions,
            key=lambda t: (moment_sort_key(t.created_at), t.transaction_id),
        )

    def verify_ledger(
        self,
        transactions: Iterable[WalletTransaction],
        opening_balance: Decimal | None = None,
    ) -> LedgerReport:
        entries = self._chronological(transactions)
        report = LedgerReport()
        if not entries:
            report.opening_balance = report.closing_balance = opening_balance or Decimal("0")
            return report

        first = entries[0]
        if opening_balance is None:
            if first.balance_before is not None:
                opening_balance = first.balance_before
            else:
                opening_balance = first.balance_after - first.signed_amount
        report.opening_balance = opening_balance

        running = opening_balance
        for entry in entries:
            expected = running + entry.signed_amount
            if entry.balance_after != expected:
                report.discrepancies.append(LedgerDiscrepancy(
                    transaction_id=entry.transaction_id,
                    expected_balance_after=expected,
                    recorded_balance_after=entry.balance_after,
                ))
            if entry.balance_after < 0:
                report.negative_balances.append(entry.transaction_id)
            # Tiếp tục từ số dư đã ghi để một bút toán sai không bị báo lặp
            running = entry.balance_after
            report.entries_checked += 1

        report.closing_balance = running
        if report.discrepancies:
            logger.warning(
                "Ledger mismatch on %d of %d transactions: %s",
                len(report.discrepancies), report.entries_checked, report.flagged_ids,
            )
        return report
