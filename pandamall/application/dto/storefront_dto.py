"""
API DTOs - Dữ liệu trao đổi với backend (camelCase) và với JSON service.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from pandamall.domain.entities import (
    Cart,
    CartLine,
    FeeConfig,
    Order,
    OrderItem,
    StatusHistoryEntry,
    Wallet,
    WalletTransaction,
)
from pandamall.domain.services import FeeUpdate
from pandamall.domain.value_objects import (
    Marketplace,
    OrderPaymentStatus,
    OrderStatus,
    TransactionType,
    UserId,
)


def unwrap_envelope(body: Any) -> Any:
    """
    Backend có endpoint trả {success, message, data} và có endpoint trả
    thẳng dữ liệu. Lấy data nếu có, ngược lại trả nguyên body.
    """
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def unwrap_page(body: Any) -> list[Any]:
    """Danh sách có thể là list, trang Spring {content: [...]} hoặc {orders: [...]}."""
    body = unwrap_envelope(body)
    if isinstance(body, dict):
        return list(body.get("content") or body.get("orders") or [])
    return list(body or [])


class BackendModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ExchangeRateDTO(BackendModel):
    """DTO - Tỷ giá từ GET /exchange-rates."""
    currency: str
    rate_to_vnd: Decimal | None = None
    source: str | None = None
    updated_at: datetime | None = None


class CartItemDTO(BackendModel):
    """DTO - Dòng giỏ hàng."""
    id: int
    product_id: str
    product_name: str | None = None
    product_image: str | None = None
    price: Decimal
    quantity: int
    marketplace: str | None = None
    currency: str | None = None
    subtotal: Decimal | None = None
    variant_id: str | None = None
    variant_name: str | None = None
    variant_options: str | None = None

    def to_entity(self) -> CartLine:
        return CartLine(
            id=self.id,
            product_id=self.product_id,
            marketplace=Marketplace.parse(self.marketplace),
            unit_price=self.price,
            quantity=self.quantity,
            currency=self.currency,
            variant_id=self.variant_id,
            variant_name=self.variant_name,
            product_name=self.product_name,
        )


class CartDTO(BackendModel):
    """DTO - Giỏ hàng."""
    id: int | None = None
    user_id: int | None = None
    items: list[CartItemDTO] = Field(default_factory=list)
    total_items: int | None = None
    total_amount: Decimal | None = None

    def to_entity(self) -> Cart:
        return Cart(tuple(item.to_entity() for item in self.items))


class AddToCartDTO(BackendModel):
    product_id: str
    product_name: str
    product_image: str | None = None
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(1, ge=1)
    marketplace: str
    variant_id: str | None = None
    variant_name: str | None = None
    variant_options: str | None = None


class FeeConfigDTO(BackendModel):
    """DTO - Cấu hình phí hệ thống."""
    id: int | None = None
    service_fee_percent: Decimal = Decimal("1.5")
    domestic_shipping_rate: Decimal | None = None
    international_shipping_rate: Decimal | None = None
    vietnam_domestic_shipping_rate: Decimal | None = None
    deposit_percent: Decimal = Decimal("70")
    is_active: bool = Field(True, validation_alias=AliasChoices("isActive", "active", "is_active"))
    updated_at: datetime | None = None

    def to_entity(self) -> FeeConfig:
        return FeeConfig(
            service_fee_percent=self.service_fee_percent,
            deposit_percent=self.deposit_percent,
            domestic_shipping_rate=self.domestic_shipping_rate or Decimal("0"),
            international_shipping_rate=self.international_shipping_rate or Decimal("0"),
            vietnam_domestic_shipping_rate=self.vietnam_domestic_shipping_rate or Decimal("0"),
            is_active=self.is_active,
            id=self.id,
            updated_at=self.updated_at,
        )


class FeeConfigRequestDTO(BackendModel):
    """DTO - POST/PUT /admin/fee-config."""
    service_fee_percent: Decimal = Field(..., ge=0, le=100)
    domestic_shipping_rate: Decimal = Field(Decimal("0"), ge=0)
    international_shipping_rate: Decimal = Field(Decimal("0"), ge=0)
    vietnam_domestic_shipping_rate: Decimal = Field(Decimal("0"), ge=0)
    deposit_percent: Decimal = Field(..., ge=0, le=100)
    is_active: bool | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class OrderItemDTO(BackendModel):
    id: int | None = None
    product_id: str
    product_name: str | None = None
    price: Decimal
    quantity: int
    marketplace: str | None = None
    currency: str | None = None
    subtotal: Decimal | None = None
    variant_name: str | None = None

    def to_entity(self) -> OrderItem:
        return OrderItem(
            id=self.id,
            product_id=self.product_id,
            product_name=self.product_name or "",
            marketplace=Marketplace.parse(self.marketplace),
            price=self.price,
            quantity=self.quantity,
            currency=self.currency,
            variant_name=self.variant_name,
        )


class OrderStatusHistoryDTO(BackendModel):
    status: OrderStatus
    previous_status: OrderStatus | None = None
    note: str | None = None
    changed_by: int | str | None = None
    created_at: datetime | None = None

    def to_entity(self) -> StatusHistoryEntry:
        return StatusHistoryEntry(
            status=self.status,
            previous_status=self.previous_status,
            note=self.note,
            changed_by=str(self.changed_by) if self.changed_by is not None else None,
            created_at=self.created_at,
        )


class OrderDTO(BackendModel):
    """DTO - Đơn hàng (server là nguồn sự thật)."""
    id: int
    user_id: int
    order_number: str
    status: OrderStatus
    payment_status: OrderPaymentStatus = OrderPaymentStatus.PENDING_DEPOSIT
    total_amount: Decimal = Decimal("0")
    product_cost: Decimal = Decimal("0")
    service_fee: Decimal = Decimal("0")
    deposit_amount: Decimal = Decimal("0")
    remaining_amount: Decimal = Decimal("0")
    domestic_shipping_fee: Decimal | None = None
    international_shipping_fee: Decimal | None = None
    vietnam_domestic_shipping_fee: Decimal | None = None
    additional_services_fee: Decimal | None = None
    estimated_weight: Decimal | None = None
    shipping_address: str | None = None
    phone: str | None = None
    note: str | None = None
    items: list[OrderItemDTO] = Field(default_factory=list)
    status_history: list[OrderStatusHistoryDTO] = Field(default_factory=list)
    created_at: datetime | None = None

    @field_validator(
        "payment_status", "total_amount", "product_cost", "service_fee",
        "deposit_amount", "remaining_amount", "items", "status_history",
        mode="before",
    )
    @classmethod
    def _null_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        # Danh sách đơn (toSummary) trả null cho tiền, items, statusHistory
        if value is None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return value

    def to_entity(self) -> Order:
        return Order(
            id=self.id,
            order_number=self.order_number,
            user_id=UserId(self.user_id),
            status=self.status,
            payment_status=self.payment_status,
            product_cost=self.product_cost,
            service_fee=self.service_fee,
            deposit_amount=self.deposit_amount,
            remaining_amount=self.remaining_amount,
            total_amount=self.total_amount,
            domestic_shipping_fee=self.domestic_shipping_fee,
            international_shipping_fee=self.international_shipping_fee,
            vietnam_domestic_shipping_fee=self.vietnam_domestic_shipping_fee,
            additional_services_fee=self.additional_services_fee,
            estimated_weight=self.estimated_weight,
            shipping_address=self.shipping_address or "",
            phone=self.phone or "",
            note=self.note,
            items=[item.to_entity() for item in self.items],
            status_history=[entry.to_entity() for entry in self.status_history],
            created_at=self.created_at,
        )


class CheckoutRequestDTO(BackendModel):
    """DTO - POST /orders/checkout. itemIds rỗng nghĩa là toàn bộ giỏ."""
    shipping_address: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    note: str = ""
    item_ids: list[int] | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class UpdateAddressDTO(BackendModel):
    shipping_address: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    note: str | None = None


class UpdateFeesDTO(BackendModel):
    """DTO - PUT /admin/orders/{id}/fees. Phí nội địa TQ nhập theo CNY."""
    domestic_shipping_fee: Decimal | None = Field(None, ge=0, description="Phí nội địa TQ (CNY)")
    international_shipping_fee: Decimal | None = Field(None, ge=0, description="Phí quốc tế (VND)")
    vietnam_domestic_shipping_fee: Decimal | None = Field(None, ge=0, description="Phí nội địa VN (VND)")
    estimated_weight: Decimal | None = Field(None, ge=0, description="Cân nặng ước tính (kg)")
    include_wooden_packaging: bool = False
    include_bubble_wrap: bool = False
    include_item_count_check: bool = False
    note: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_fee_update(self) -> FeeUpdate:
        return FeeUpdate(
            domestic_shipping_fee_cny=self.domestic_shipping_fee,
            international_shipping_fee_vnd=self.international_shipping_fee,
            vietnam_domestic_shipping_fee_vnd=self.vietnam_domestic_shipping_fee,
            estimated_weight=self.estimated_weight,
            include_wooden_packaging=self.include_wooden_packaging,
            include_bubble_wrap=self.include_bubble_wrap,
            include_item_count_check=self.include_item_count_check,
            note=self.note,
        )


class WalletDTO(BackendModel):
    """DTO - Ví người dùng."""
    wallet_id: int
    user_id: int
    balance: Decimal = Decimal("0")
    is_locked: bool = Field(False, validation_alias=AliasChoices("isLocked", "locked", "is_locked"))
    deposit_code: str | None = None
    username: str | None = None

    def to_entity(self) -> Wallet:
        return Wallet(
            wallet_id=self.wallet_id,
            user_id=UserId(self.user_id),
            balance=self.balance,
            is_locked=self.is_locked,
        )


class WalletTransactionDTO(BackendModel):
    """DTO - Bút toán ví."""
    transaction_id: int
    wallet_id: int
    transaction_type: TransactionType
    amount: Decimal
    balance_before: Decimal | None = None
    balance_after: Decimal
    order_id: int | None = None
    reference_number: str | None = None
    note: str | None = None
    created_at: datetime | None = None
    is_credit: bool | None = Field(None, validation_alias=AliasChoices("isCredit", "credit", "is_credit"))

    def to_entity(self) -> WalletTransaction:
        credit = self.is_credit
        if credit is None:
            credit = WalletTransaction.infer_credit(self.transaction_type, self.amount)
        return WalletTransaction(
            transaction_id=self.transaction_id,
            wallet_id=self.wallet_id,
            transaction_type=self.transaction_type,
            amount=abs(self.amount),
            credit=credit,
            balance_after=self.balance_after,
            created_at=self.created_at,
            balance_before=self.balance_before,
            reference_number=self.reference_number,
            order_id=self.order_id,
            note=self.note,
        )


class DepositInitiateDTO(BackendModel):
    transaction_id: int | None = None
    amount: Decimal | None = None
    payment_url: str | None = None
    transaction_code: str | None = None
    message: str | None = None


class ProcessPendingResultDTO(BackendModel):
    """Kết quả GET /bank-transfer/process-pending."""
    status: str | None = None
    unprocessed_count: int = 0
    processed_count: int = 0


# --- JSON service (snake_case, giống các DTO phản hồi của API nội bộ) ---

class CartLineInputDTO(BaseModel):
    """DTO - Dòng giỏ hàng gửi vào /checkout/quote."""
    id: int
    product_id: str = ""
    marketplace: str | None = None
    unit_price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., description="Số lượng (>= 1)")
    currency: str | None = None

    def to_entity(self) -> CartLine:
        return CartLine(
            id=self.id,
            product_id=self.product_id,
            marketplace=Marketplace.parse(self.marketplace),
            unit_price=self.unit_price,
            quantity=self.quantity,
            currency=self.currency,
        )


class QuoteRequestDTO(BaseModel):
    lines: list[CartLineInputDTO]
    rates: dict[str, Decimal] = Field(default_factory=dict, description="Tỷ giá sang VND theo mã tiền tệ")
    service_fee_percent: Decimal | None = Field(None, ge=0, le=100)
    deposit_percent: Decimal | None = Field(None, ge=0, le=100)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "lines": [{"id": 1, "marketplace": "ALIEXPRESS", "unit_price": "29.99", "quantity": 2}],
            "rates": {"USD": 25000},
        }
    })


class CheckoutTotalsDTO(BaseModel):
    total_vnd: Decimal
    service_fee_vnd: Decimal
    total_with_service_fee: Decimal
    deposit_vnd: Decimal
    remaining_vnd: Decimal
    service_fee_percent: Decimal
    deposit_percent: Decimal

    model_config = ConfigDict(from_attributes=True)


class QuoteResponseDTO(BaseModel):
    ready: bool
    native_totals: dict[str, Decimal]
    pending_currencies: list[str] = Field(default_factory=list)
    totals: CheckoutTotalsDTO | None = None


class OrderInputDTO(BaseModel):
    """DTO - Trạng thái đơn hàng tối thiểu để tính phí / thao tác hợp lệ."""
    id: int = 0
    order_number: str = ""
    user_id: int = 0
    status: OrderStatus
    payment_status: OrderPaymentStatus = OrderPaymentStatus.DEPOSITED
    product_cost: Decimal = Decimal("0")
    service_fee: Decimal = Decimal("0")
    deposit_amount: Decimal = Decimal("0")
    remaining_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    domestic_shipping_fee: Decimal | None = None
    international_shipping_fee: Decimal | None = None
    vietnam_domestic_shipping_fee: Decimal | None = None
    items: list[OrderItemDTO] = Field(default_factory=list)

    def to_entity(self) -> Order:
        return Order(
            id=self.id,
            order_number=self.order_number,
            user_id=UserId(self.user_id),
            status=self.status,
            payment_status=self.payment_status,
            product_cost=self.product_cost,
            service_fee=self.service_fee,
            deposit_amount=self.deposit_amount,
            remaining_amount=self.remaining_amount,
            total_amount=self.total_amount,
            domestic_shipping_fee=self.domestic_shipping_fee,
            international_shipping_fee=self.international_shipping_fee,
            vietnam_domestic_shipping_fee=self.vietnam_domestic_shipping_fee,
            items=[item.to_entity() for item in self.items],
        )


class FeePreviewRequestDTO(BaseModel):
    order: OrderInputDTO
    fees: UpdateFeesDTO
    rates: dict[str, Decimal] = Field(default_factory=dict)


class FeePreviewResponseDTO(BaseModel):
    domestic_shipping_fee: Decimal | None
    international_shipping_fee: Decimal | None
    vietnam_domestic_shipping_fee: Decimal | None
    additional_services_fee: Decimal | None
    total_amount: Decimal
    deposit_amount: Decimal
    remaining_amount: Decimal
    note: str | None = None

    model_config = ConfigDict(from_attributes=True)


class WalletInputDTO(BaseModel):
    wallet_id: int = 0
    user_id: int = 0
    balance: Decimal = Field(Decimal("0"), ge=0)
    is_locked: bool = False

    def to_entity(self) -> Wallet:
        return Wallet(
            wallet_id=self.wallet_id,
            user_id=UserId(self.user_id),
            balance=self.balance,
            is_locked=self.is_locked,
        )


class AllowedActionsRequestDTO(BaseModel):
    order: OrderInputDTO
    wallet: WalletInputDTO | None = None
    as_admin: bool | None = None


class AllowedActionsResponseDTO(BaseModel):
    status: OrderStatus
    payment_status: OrderPaymentStatus
    actions: list[str]


class DepositInstructionsDTO(BaseModel):
    user_id: int
    deposit_code: str
    memo: str
    bank_bin: str
    bank_name: str
    account_no: str
    account_name: str
    qr_url: str
    amount: Decimal | None = None
    settlement_minutes: tuple[int, int]

    model_config = ConfigDict(from_attributes=True)


class LedgerEntryInputDTO(BaseModel):
    transaction_id: int
    wallet_id: int = 0
    transaction_type: TransactionType
    amount: Decimal
    balance_after: Decimal
    balance_before: Decimal | None = None
    credit: bool | None = None
    created_at: datetime | None = None

    def to_entity(self) -> WalletTransaction:
        credit = self.credit
        if credit is None:
            credit = WalletTransaction.infer_credit(self.transaction_type, self.amount)
        return WalletTransaction(
            transaction_id=self.transaction_id,
            wallet_id=self.wallet_id,
            transaction_type=self.transaction_type,
            amount=abs(self.amount),
            credit=credit,
            balance_after=self.balance_after,
            created_at=self.created_at,
            balance_before=self.balance_before,
        )


class LedgerVerifyRequestDTO(BaseModel):
    transactions: list[LedgerEntryInputDTO]
    opening_balance: Decimal | None = None


class LedgerDiscrepancyDTO(BaseModel):
    transaction_id: int
    expected_balance_after: Decimal
    recorded_balance_after: Decimal

    model_config = ConfigDict(from_attributes=True)


class LedgerReportDTO(BaseModel):
    consistent: bool
    entries_checked: int
    opening_balance: Decimal
    closing_balance: Decimal
    discrepancies: list[LedgerDiscrepancyDTO]
    negative_balances: list[int]


class MemoParseRequestDTO(BaseModel):
    text: str = Field(..., max_length=1000)


class MemoParseResponseDTO(BaseModel):
    amount: Decimal | None
    reference: str | None
    user_id: int | None
    deposit_code: str | None
    matchable: bool
