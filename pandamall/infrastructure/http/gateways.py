"""
Gateways - Mỗi nhóm endpoint backend một lớp, trả về entity của domain.
"""

import logging
from datetime import date
from typing import Any

from pandamall.application.dto.storefront_dto import (
    AddToCartDTO,
    CartDTO,
    CheckoutRequestDTO,
    ExchangeRateDTO,
    FeeConfigDTO,
    FeeConfigRequestDTO,
    OrderDTO,
    ProcessPendingResultDTO,
    UpdateAddressDTO,
    UpdateFeesDTO,
    WalletDTO,
    WalletTransactionDTO,
    unwrap_page,
)
from pandamall.core.exceptions import ApiError, Forbidden, NotFound
from pandamall.domain.entities import Cart, FeeConfig, Order, Wallet, WalletTransaction
from pandamall.domain.services import IExchangeRateProvider, IFeeConfigProvider
from pandamall.domain.value_objects import ExchangeRate, ExchangeRateTable, OrderStatus, TransactionType

from .client import ApiClient

logger = logging.getLogger(__name__)


class _Gateway:
    def __init__(self, client: ApiClient):
        self.client = client


class CartGateway(_Gateway):

    def get_cart(self) -> Cart:
        return CartDTO.model_validate(self.client.get("/cart")).to_entity()

    def add_item(self, item: AddToCartDTO) -> Cart:
        body = self.client.post("/cart/items", json=item.model_dump(mode="json", by_alias=True, exclude_none=True))
        return CartDTO.model_validate(body).to_entity()

    def update_quantity(self, item_id: int, quantity: int) -> Cart:
        # Backend không giữ dòng có số lượng 0
        if quantity <= 0:
            return self.remove_item(item_id)
        body = self.client.put(f"/cart/items/{item_id}", json={"quantity": quantity})
        return CartDTO.model_validate(body).to_entity()

    def remove_item(self, item_id: int) -> Cart:
        return CartDTO.model_validate(self.client.delete(f"/cart/items/{item_id}")).to_entity()

    def clear(self) -> Cart:
        body = self.client.delete("/cart/clear")
        return CartDTO.model_validate(body).to_entity() if body else Cart()


class OrderGateway(_Gateway):

    def checkout(self, request: CheckoutRequestDTO) -> Order:
        return OrderDTO.model_validate(self.client.post("/orders/checkout", json=request.to_payload())).to_entity()

    def list_orders(self, page: int = 0, size: int = 10) -> list[Order]:
        body = self.client.get("/orders", params={"page": page, "size": size})
        return [OrderDTO.model_validate(raw).to_entity() for raw in unwrap_page(body)]

    def get_order(self, order_id: int) -> Order:
        return OrderDTO.model_validate(self.client.get(f"/orders/{order_id}")).to_entity()

    def get_by_number(self, order_number: str) -> Order:
        return OrderDTO.model_validate(self.client.get(f"/orders/number/{order_number}")).to_entity()

    def cancel(self, order_id: int) -> Order:
        return OrderDTO.model_validate(self.client.delete(f"/orders/{order_id}")).to_entity()

    def pay_remaining(self, order_id: int) -> Order:
        return OrderDTO.model_validate(self.client.post(f"/orders/{order_id}/pay-remaining")).to_entity()

    def update_address(self, order_id: int, request: UpdateAddressDTO) -> Order:
        body = self.client.put(
            f"/orders/{order_id}/address",
            json=request.model_dump(by_alias=True, exclude_none=True),
        )
        return OrderDTO.model_validate(body).to_entity()

    def update_status(self, order_id: int, status: OrderStatus) -> Order:
        body = self.client.put(f"/orders/{order_id}/status", json={"status": status.value})
        return OrderDTO.model_validate(body).to_entity()


class AdminOrderGateway(_Gateway):

    def list_orders(
        self,
        page: int = 0,
        size: int = 10,
        status: OrderStatus | None = None,
        user_id: int | None = None,
    ) -> list[Order]:
        params: dict[str, Any] = {"page": page, "size": size}
        if status is not None:
            params["status"] = status.value
        if user_id is not None:
            params["userId"] = user_id
        body = self.client.get("/admin/orders", params=params)
        return [OrderDTO.model_validate(raw).to_entity() for raw in unwrap_page(body)]

    def get_order(self, order_id: int) -> Order:
        return OrderDTO.model_validate(self.client.get(f"/admin/orders/{order_id}")).to_entity()

    def update_status(self, order_id: int, status: OrderStatus, note: str | None = None) -> Order:
        payload: dict[str, Any] = {"status": status.value}
        if note:
            payload["note"] = note
        return OrderDTO.model_validate(self.client.put(f"/admin/orders/{order_id}/status", json=payload)).to_entity()

    def update_fees(self, order_id: int, request: UpdateFeesDTO) -> Order:
        body = self.client.put(f"/admin/orders/{order_id}/fees", json=request.to_payload())
        return OrderDTO.model_validate(body).to_entity()

    def update_address(self, order_id: int, request: UpdateAddressDTO) -> Order:
        body = self.client.put(
            f"/admin/orders/{order_id}/address",
            json=request.model_dump(by_alias=True, exclude_none=True),
        )
        return OrderDTO.model_validate(body).to_entity()


class WalletGateway(_Gateway):

    def get_wallet(self) -> Wallet:
        return WalletDTO.model_validate(self.client.get("/wallet")).to_entity()

    def list_transactions(
        self,
        page: int = 0,
        size: int = 20,
        transaction_type: TransactionType | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[WalletTransaction]:
        params: dict[str, Any] = {"page": page, "size": size}
        if transaction_type is not None:
            params["transactionType"] = transaction_type.value
        if start_date is not None:
            params["startDate"] = start_date.isoformat()
        if end_date is not None:
            params["endDate"] = end_date.isoformat()
        body = self.client.get("/wallet/transactions", params=params)
        return [WalletTransactionDTO.model_validate(raw).to_entity() for raw in unwrap_page(body)]

    def get_transaction(self, transaction_id: int) -> WalletTransaction:
        body = self.client.get(f"/wallet/transactions/{transaction_id}")
        return WalletTransactionDTO.model_validate(body).to_entity()

    # Chỉ ADMIN; backend trả data = null
    def lock(self, user_id: int) -> None:
        self.client.post(f"/wallet/{user_id}/lock")
        logger.info("Wallet of user %s locked", user_id)

    def unlock(self, user_id: int) -> None:
        self.client.post(f"/wallet/{user_id}/unlock")
        logger.info("Wallet of user %s unlocked", user_id)


class BankTransferGateway(_Gateway):

    def process_pending(self) -> ProcessPendingResultDTO:
        body = self.client.get("/bank-transfer/process-pending")
        return ProcessPendingResultDTO.model_validate(body if isinstance(body, dict) else {})


class AddressGateway(_Gateway):

    def get_default(self) -> dict[str, Any] | None:
        """Chỉ để điền sẵn form; lỗi không làm hỏng luồng checkout."""
        try:
            return self.client.get("/addresses/default")
        except ApiError as exc:
            logger.info("Default address unavailable: %s", exc.message)
            return None


class FeeConfigGateway(_Gateway, IFeeConfigProvider):

    def get_active(self) -> FeeConfig | None:
        """
        Endpoint chỉ dành cho ADMIN; khách hàng nhận 403.
        None nghĩa là dùng phí mặc định trong Settings.
        """
        try:
            body = self.client.get("/admin/fee-config/active")
        except (NotFound, Forbidden) as exc:
            logger.info("Active fee config unavailable, using defaults: %s", exc.message)
            return None
        return FeeConfigDTO.model_validate(body).to_entity()

    def list_configs(self) -> list[FeeConfig]:
        return [FeeConfigDTO.model_validate(raw).to_entity() for raw in unwrap_page(self.client.get("/admin/fee-config"))]

    def effective_config(self, default: FeeConfig | None = None) -> FeeConfig:
        """Cấu hình đang có hiệu lực, tính từ toàn bộ danh sách (có thể nhiều cái active)."""
        return FeeConfig.select_active(self.list_configs(), default)

    def get_config(self, config_id: int) -> FeeConfig:
        return FeeConfigDTO.model_validate(self.client.get(f"/admin/fee-config/{config_id}")).to_entity()

    def create(self, request: FeeConfigRequestDTO) -> FeeConfig:
        body = self.client.post("/admin/fee-config", json=request.to_payload())
        return FeeConfigDTO.model_validate(body).to_entity()

    def update(self, config_id: int, request: FeeConfigRequestDTO) -> FeeConfig:
        body = self.client.put(f"/admin/fee-config/{config_id}", json=request.to_payload())
        return FeeConfigDTO.model_validate(body).to_entity()

    def activate(self, config_id: int) -> FeeConfig:
        """Backend chỉ giữ một cấu hình active; kích hoạt cái này sẽ tắt các cái khác."""
        config = FeeConfigDTO.model_validate(self.client.post(f"/admin/fee-config/{config_id}/activate")).to_entity()
        logger.info(
            "Fee config %s activated (service=%s%%, deposit=%s%%)",
            config_id, config.service_fee_percent, config.deposit_percent,
        )
        return config

    def delete(self, config_id: int) -> None:
        self.client.delete(f"/admin/fee-config/{config_id}")


class ExchangeRateGateway(_Gateway, IExchangeRateProvider):

    def get_rates(self) -> ExchangeRateTable:
        body = self.client.get("/exchange-rates")
        raw_rates = body.values() if isinstance(body, dict) else (body or [])

        rates: dict[str, ExchangeRate] = {}
        for raw in raw_rates:
            dto = ExchangeRateDTO.model_validate(raw)
            if dto.rate_to_vnd is None or dto.rate_to_vnd <= 0:
                logger.warning("Ignoring unusable rate for %s: %s", dto.currency, dto.rate_to_vnd)
                continue
            code = dto.currency.upper()
            rates[code] = ExchangeRate(
                rate=dto.rate_to_vnd,
                currency=code,
                valuation_date=dto.updated_at.date() if dto.updated_at else None,
            )
        return ExchangeRateTable(rates)
