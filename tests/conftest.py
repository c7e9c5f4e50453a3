"""
Pytest configuration and fixtures.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from pandamall.core.config import Settings
from pandamall.domain.entities import CartLine, Order, OrderItem, Wallet
from pandamall.domain.value_objects import (
    ExchangeRateTable,
    Marketplace,
    OrderPaymentStatus,
    OrderStatus,
    UserId,
)
from pandamall.infrastructure.database import ClientStateStore, init_db, make_engine


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        api_base_url="http://backend.test/api",
        bank_bin="970422",
        bank_account_no="0123456789",
        bank_account_name="PANDAMALL",
        database_url="sqlite://",
    )


@pytest.fixture
def usd_rates() -> ExchangeRateTable:
    return ExchangeRateTable.from_mapping({"USD": 25000})


@pytest.fixture
def rates() -> ExchangeRateTable:
    return ExchangeRateTable.from_mapping({"USD": 25000, "CNY": 3500})


@pytest.fixture
def aliexpress_line() -> CartLine:
    return CartLine(
        id=1,
        product_id="1005005244562338",
        marketplace=Marketplace.ALIEXPRESS,
        unit_price=Decimal("29.99"),
        quantity=2,
    )


@pytest.fixture
def alibaba_line() -> CartLine:
    return CartLine(
        id=2,
        product_id="610947572360",
        marketplace=Marketplace.ALIBABA1688,
        unit_price=Decimal("50"),
        quantity=1,
    )


@pytest.fixture
def confirmed_order() -> Order:
    """Đơn 1.000.000đ tiền hàng, phí 1.5%, đã cọc 70%."""
    return Order(
        id=10,
        order_number="ORD-20251215-0010",
        user_id=UserId(42),
        status=OrderStatus.CONFIRMED,
        payment_status=OrderPaymentStatus.DEPOSITED,
        product_cost=Decimal("1000000"),
        service_fee=Decimal("15000"),
        deposit_amount=Decimal("710500"),
        remaining_amount=Decimal("304500"),
        total_amount=Decimal("1015000"),
        shipping_address="12 Lý Thường Kiệt, Hà Nội",
        phone="0912345678",
        items=[
            OrderItem(
                id=100,
                product_id="610947572360",
                product_name="Giá sách gỗ",
                marketplace=Marketplace.ALIBABA1688,
                price=Decimal("50"),
                quantity=3,
            ),
        ],
        created_at=datetime(2025, 12, 15, 9, 30),
    )


@pytest.fixture
def wallet() -> Wallet:
    return Wallet(wallet_id=7, user_id=UserId(42), balance=Decimal("500000"))


@pytest.fixture
def locked_wallet() -> Wallet:
    return Wallet(wallet_id=7, user_id=UserId(42), balance=Decimal("5000000"), is_locked=True)


@pytest.fixture
def memory_store() -> ClientStateStore:
    engine = make_engine("sqlite://")
    init_db(engine)
    return ClientStateStore(engine)
