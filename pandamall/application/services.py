"""
Application Services - Use cases ghép gateway backend với quy tắc domain.
Mọi thao tác bị bảng trạng thái chặn sẽ raise trước khi gọi HTTP.
"""

import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from pandamall.application.dto.storefront_dto import CheckoutRequestDTO, UpdateAddressDTO, UpdateFeesDTO
from pandamall.core.config import Settings, get_settings
from pandamall.core.exceptions import EmptyCartOnCheckout, WalletLocked
from pandamall.domain.deposit import DepositInstructions
from pandamall.domain.entities import FeeConfig, Order, Wallet
from pandamall.domain.policies import OrderAction, allowed_actions, ensure_action_allowed
from pandamall.domain.services import (
    AdditionalServiceFeeService,
    CheckoutPreview,
    IExchangeRateProvider,
    IFeeConfigProvider,
    LedgerReport,
    LedgerService,
    PricingService,
)
from pandamall.domain.value_objects import ItemCountFeeBands, OrderStatus
from pandamall.infrastructure.http.gateways import (
    AddressGateway,
    AdminOrderGateway,
    BankTransferGateway,
    CartGateway,
    OrderGateway,
    WalletGateway,
)

logger = logging.getLogger(__name__)


def default_fee_config(settings: Settings) -> FeeConfig:
    return FeeConfig(
        service_fee_percent=settings.default_service_fee_percent,
        deposit_percent=settings.default_deposit_percent,
    )


class CheckoutService:
    """Use case - Báo giá và đặt đơn từ giỏ hàng."""

    def __init__(
        self,
        carts: CartGateway,
        orders: OrderGateway,
        rates: IExchangeRateProvider,
        fee_configs: IFeeConfigProvider,
        addresses: AddressGateway | None = None,
        settings: Settings | None = None,
    ):
        self.carts = carts
        self.orders = orders
        self.rates = rates
        self.fee_configs = fee_configs
        self.addresses = addresses
        self.settings = settings or get_settings()
        self.pricing = PricingService(default_fee_config(self.settings))

    def quote(self, item_ids: Iterable[int] | None = None) -> CheckoutPreview:
        lines = self.carts.get_cart().select(item_ids)
        if not lines:
            raise EmptyCartOnCheckout()
        fee_config = self.fee_configs.get_active()
        return self.pricing.preview_checkout_totals(lines, self.rates.get_rates(), fee_config)

    def place_order(
        self,
        shipping_address: str,
        phone: str,
        note: str = "",
        item_ids: list[int] | None = None,
    ) -> Order:
        if item_ids is not None and not item_ids:
            raise EmptyCartOnCheckout("Chưa chọn sản phẩm nào để thanh toán")
        request = CheckoutRequestDTO(
            shipping_address=shipping_address,
            phone=phone,
            note=note or "",
            item_ids=item_ids or None,
        )
        order = self.orders.checkout(request)
        logger.info(
            "Order %s placed: total=%s deposit=%s remaining=%s",
            order.order_number, order.total_amount, order.deposit_amount, order.remaining_amount,
        )
        return order

    def default_address(self) -> dict[str, Any] | None:
        if self.addresses is None:
            return None
        return self.addresses.get_default()


class OrderService:
    """Use case - Thao tác của người dùng trên đơn hàng."""

    def __init__(self, orders: OrderGateway, wallets: WalletGateway | None = None):
        self.orders = orders
        self.wallets = wallets

    def allowed_actions(self, order_id: int) -> frozenset[OrderAction]:
        order = self.orders.get_order(order_id)
        wallet = self.wallets.get_wallet() if self.wallets is not None else None
        return allowed_actions(order, wallet, as_admin=False)

    def cancel(self, order_id: int) -> Order:
        order = self.orders.get_order(order_id)
        ensure_action_allowed(OrderAction.CANCEL, order)
        cancelled = self.orders.cancel(order_id)
        logger.info("Order %s cancelled", cancelled.order_number)
        return cancelled

    def update_address(self, order_id: int, shipping_address: str, phone: str, note: str | None = None) -> Order:
        order = self.orders.get_order(order_id)
        ensure_action_allowed(OrderAction.EDIT_ADDRESS, order, as_admin=False)
        request = UpdateAddressDTO(shipping_address=shipping_address, phone=phone, note=note)
        return self.orders.update_address(order_id, request)

    def pay_remaining(self, order_id: int) -> Order:
        order = self.orders.get_order(order_id)
        wallet: Wallet | None = self.wallets.get_wallet() if self.wallets is not None else None
        if wallet is not None and wallet.is_locked:
            raise WalletLocked(wallet.user_id)
        ensure_action_allowed(OrderAction.PAY_REMAINING, order, wallet)
        paid = self.orders.pay_remaining(order_id)
        logger.info("Remaining %s paid for order %s", order.remaining_amount, paid.order_number)
        return paid


class AdminOrderService:
    """Use case - Admin / nhân viên cập nhật phí và trạng thái đơn."""

    def __init__(
        self,
        orders: AdminOrderGateway,
        rates: IExchangeRateProvider,
        settings: Settings | None = None,
    ):
        self.orders = orders
        self.rates = rates
        self.settings = settings or get_settings()
        self.bands = ItemCountFeeBands.from_settings(self.settings)

    def preview_fees(self, order_id: int, request: UpdateFeesDTO) -> Order:
        order = self.orders.get_order(order_id)
        fees = AdditionalServiceFeeService(self.rates.get_rates(), self.bands)
        return fees.preview_fee_update(order, request.to_fee_update())

    def update_fees(self, order_id: int, request: UpdateFeesDTO) -> Order:
        order = self.orders.get_order(order_id)
        ensure_action_allowed(OrderAction.SET_FEES, order, as_admin=True)
        updated = self.orders.update_fees(order_id, request)
        if not updated.is_balanced():
            logger.warning(
                "Order %s totals do not add up after fee update: %s != %s + %s",
                updated.order_number, updated.total_amount, updated.deposit_amount, updated.remaining_amount,
            )
        return updated

    def update_status(self, order_id: int, status: OrderStatus, note: str | None = None) -> Order:
        order = self.orders.get_order(order_id)
        ensure_action_allowed(OrderAction.CHANGE_STATUS, order, as_admin=True)
        return self.orders.update_status(order_id, status, note)

    def update_address(self, order_id: int, shipping_address: str, phone: str, note: str | None = None) -> Order:
        order = self.orders.get_order(order_id)
        ensure_action_allowed(OrderAction.EDIT_ADDRESS, order, as_admin=True)
        request = UpdateAddressDTO(shipping_address=shipping_address, phone=phone, note=note)
        return self.orders.update_address(order_id, request)


class WalletDepositService:
    """Use case - Hướng dẫn nạp tiền và kiểm tra tiền đã về."""

    def __init__(
        self,
        wallets: WalletGateway,
        bank_transfers: BankTransferGateway,
        settings: Settings | None = None,
    ):
        self.wallets = wallets
        self.bank_transfers = bank_transfers
        self.settings = settings or get_settings()
        self.ledger = LedgerService()

    def deposit_instructions(self, user_id: int, amount: Decimal | None = None) -> DepositInstructions:
        return build_deposit_instructions(self.settings, user_id, amount)

    def check_for_deposit(self) -> Wallet:
        """
        Nhờ backend xử lý các SMS chưa đối soát rồi đọc lại ví.
        Gọi lại nhiều lần không sao: backend bỏ qua SMS đã xử lý.
        """
        result = self.bank_transfers.process_pending()
        logger.info(
            "Deposit check: %d processed, %d were pending",
            result.processed_count, result.unprocessed_count,
        )
        return self.wallets.get_wallet()

    def verify_ledger(self, page_size: int = 100) -> LedgerReport:
        transactions = self.wallets.list_transactions(page=0, size=page_size)
        return self.ledger.verify_ledger(transactions)


def build_deposit_instructions(
    settings: Settings,
    user_id: int,
    amount: Decimal | None = None,
) -> DepositInstructions:
    return DepositInstructions.create(
        user_id=user_id,
        bank_bin=settings.bank_bin,
        account_no=settings.bank_account_no,
        account_name=settings.bank_account_name,
        amount=amount,
        template=settings.vietqr_template,
        base_url=settings.vietqr_base_url,
        settlement_minutes=tuple(settings.deposit_settlement_minutes),
    )
