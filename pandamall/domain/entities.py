"""
Domain Entities - Giỏ hàng, cấu hình phí, đơn hàng, ví và sổ giao dịch.
Các entity phản chiếu dữ liệu backend; mọi thay đổi trả về bản sao mới.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal

from pandamall.core.exceptions import NegativeOrZeroQuantity

from .value_objects import (
    Currency,
    Marketplace,
    OrderPaymentStatus,
    OrderStatus,
    TransactionType,
    UserId,
    moment_sort_key,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CartLine:
    """Entity - Một dòng trong giỏ hàng, giá theo tiền tệ gốc của sàn."""
    id: int
    product_id: str
    marketplace: Marketplace | None
    unit_price: Decimal
    quantity: int
    currency: str | None = None
    variant_id: str | None = None
    variant_name: str | None = None
    product_name: str | None = None

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise NegativeOrZeroQuantity(self.quantity)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Cart:
    """
    Entity - Giỏ hàng. Không tồn tại dòng có số lượng 0:
    giảm đơn vị cuối cùng sẽ xóa luôn dòng đó.
    """
    lines: tuple[CartLine, ...] = ()

    def __len__(self) -> int:
        return len(self.lines)

    def is_empty(self) -> bool:
        return not self.lines

    def get(self, line_id: int) -> CartLine | None:
        return next((line for line in self.lines if line.id == line_id), None)

    def select(self, line_ids: Iterable[int] | None) -> tuple[CartLine, ...]:
        if line_ids is None:
            return self.lines
        wanted = set(line_ids)
        return tuple(line for line in self.lines if line.id in wanted)

    def set_quantity(self, line_id: int, quantity: int) -> "Cart":
        if quantity < 0:
            raise NegativeOrZeroQuantity(quantity)
        lines = []
        for line in self.lines:
            if line.id != line_id:
                lines.append(line)
            elif quantity > 0:
                lines.append(replace(line, quantity=quantity))
        return Cart(tuple(lines))

    def decrement(self, line_id: int) -> "Cart":
        line = self.get(line_id)
        if line is None:
            return self
        return self.set_quantity(line_id, line.quantity - 1)

    def remove(self, line_id: int) -> "Cart":
        return Cart(tuple(line for line in self.lines if line.id != line_id))


@dataclass(frozen=True, slots=True)
class FeeConfig:
    """
    Entity - Cấu hình phí hệ thống. Chỉ một bản ghi active tại một thời điểm
    (backend đảm bảo).
    """
    service_fee_percent: Decimal = Decimal("1.5")
    deposit_percent: Decimal = Decimal("70")
    domestic_shipping_rate: Decimal = Decimal("0")        # VND/kg
    international_shipping_rate: Decimal = Decimal("0")   # VND/kg
    vietnam_domestic_shipping_rate: Decimal = Decimal("0")  # VND/kg
    is_active: bool = True
    id: int | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        for name in ("service_fee_percent", "deposit_percent"):
            value = getattr(self, name)
            if value < 0 or value > 100:
                raise ValueError(f"{name} phải nằm trong khoảng 0-100, nhận {value}")

    @classmethod
    def select_active(
        cls,
        configs: Iterable["FeeConfig"],
        default: "FeeConfig | None" = None,
    ) -> "FeeConfig":
        active = [config for config in configs if config.is_active]
        if not active:
            return default or cls()
        if len(active) > 1:
            logger.warning(
                "Backend returned %d active fee configs (ids=%s); using the latest",
                len(active), [config.id for config in active],
            )
            active.sort(key=lambda c: (moment_sort_key(c.updated_at), c.id or 0), reverse=True)
        return active[0]


@dataclass(frozen=True, slots=True)
class OrderItem:
    id: int | None
    product_id: str
    product_name: str
    marketplace: Marketplace | None
    price: Decimal
    quantity: int
    currency: str | None = None
    variant_name: str | None = None


@dataclass(frozen=True, slots=True)
class StatusHistoryEntry:
    status: OrderStatus
    previous_status: OrderStatus | None
    note: str | None
    changed_by: str | None
    created_at: datetime | None


@dataclass
class Order:
    """
    Entity - Đơn hàng.
    depositAmount cố định từ lúc đặt đơn; phí vận chuyển/dịch vụ thêm
    chỉ cộng vào remainingAmount sau khi admin xác nhận.
    """
    id: int
    order_number: str
    user_id: UserId
    status: OrderStatus
    payment_status: OrderPaymentStatus
    product_cost: Decimal
    service_fee: Decimal
    deposit_amount: Decimal
    remaining_amount: Decimal
    total_amount: Decimal
    domestic_shipping_fee: Decimal | None = None
    international_shipping_fee: Decimal | None = None
    vietnam_domestic_shipping_fee: Decimal | None = None
    additional_services_fee: Decimal | None = None
    estimated_weight: Decimal | None = None
    shipping_address: str = ""
    phone: str = ""
    note: str | None = None
    items: list[OrderItem] = field(default_factory=list)
    status_history: list[StatusHistoryEntry] = field(default_factory=list)
    created_at: datetime | None = None

    def is_balanced(self) -> bool:
        """totalAmount == depositAmount + remainingAmount."""
        return self.total_amount == self.deposit_amount + self.remaining_amount

    def apply_fees(
        self,
        domestic_shipping_fee: Decimal | None = None,
        international_shipping_fee: Decimal | None = None,
        vietnam_domestic_shipping_fee: Decimal | None = None,
        additional_services_fee: Decimal | None = None,
        estimated_weight: Decimal | None = None,
        note: str | None = None,
    ) -> "Order":
        """Tính lại tổng và phần còn lại như backend; không đụng tới tiền cọc."""
        domestic = domestic_shipping_fee if domestic_shipping_fee is not None else self.domestic_shipping_fee
        international = (
            international_shipping_fee if international_shipping_fee is not None
            else self.international_shipping_fee
        )
        vn_domestic = (
            vietnam_domestic_shipping_fee if vietnam_domestic_shipping_fee is not None
            else self.vietnam_domestic_shipping_fee
        )
        additional = additional_services_fee if additional_services_fee is not None else Decimal("0")

        total = (
            self.product_cost
            + self.service_fee
            + (domestic or Decimal("0"))
            + (international or Decimal("0"))
            + (vn_domestic or Decimal("0"))
            + additional
        )
        new_note = self.note
        if note:
            new_note = f"{self.note or ''}\n[Admin/Staff Note] {note}"

        return replace(
            self,
            domestic_shipping_fee=domestic,
            international_shipping_fee=international,
            vietnam_domestic_shipping_fee=vn_domestic,
            additional_services_fee=additional,
            estimated_weight=estimated_weight if estimated_weight is not None else self.estimated_weight,
            total_amount=total,
            remaining_amount=total - self.deposit_amount,
            note=new_note,
        )


@dataclass(frozen=True, slots=True)
class Wallet:
    """Entity - Ví người dùng (VND). Số dư không bao giờ âm."""
    wallet_id: int
    user_id: UserId
    balance: Decimal
    is_locked: bool = False
    currency: str = Currency.VND.value

    def __post_init__(self) -> None:
        if self.balance < 0:
            raise ValueError(f"Số dư ví không thể âm: {self.balance}")

    @property
    def deposit_code(self) -> str:
        from .deposit import deposit_code
        return deposit_code(self.user_id)

    def has_sufficient_balance(self, amount: Decimal) -> bool:
        return self.balance >= amount


CREDIT_TYPES = frozenset({TransactionType.DEPOSIT, TransactionType.ORDER_REFUND})


@dataclass(frozen=True, slots=True)
class WalletTransaction:
    """Entity - Một bút toán trong sổ giao dịch ví (chỉ ghi thêm)."""
    transaction_id: int
    wallet_id: int
    transaction_type: TransactionType
    amount: Decimal
    credit: bool
    balance_after: Decimal
    created_at: datetime | None = None
    balance_before: Decimal | None = None
    reference_number: str | None = None
    order_id: int | None = None
    note: str | None = None

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.credit else -self.amount

    @staticmethod
    def infer_credit(transaction_type: TransactionType, amount: Decimal) -> bool:
        if transaction_type == TransactionType.ADMIN_ADJUSTMENT:
            return amount >= 0
        return transaction_type in CREDIT_TYPES
