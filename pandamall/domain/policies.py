"""
Domain - Bảng hợp lệ thao tác theo trạng thái đơn hàng / thanh toán.

Server mới là nơi quyết định; bảng này chỉ để client không hiển thị
những nút mà backend chắc chắn sẽ từ chối.
"""

from decimal import Decimal
from enum import Enum

from pandamall.core.exceptions import OrderActionNotAllowed

from .entities import Order, Wallet
from .value_objects import OrderPaymentStatus, OrderStatus


class OrderAction(str, Enum):
    CANCEL = "CANCEL"                # Người dùng hủy đơn
    EDIT_ADDRESS = "EDIT_ADDRESS"    # Sửa địa chỉ / SĐT
    SET_FEES = "SET_FEES"            # Admin nhập phí vận chuyển, dịch vụ
    CHANGE_STATUS = "CHANGE_STATUS"  # Admin đổi trạng thái
    PAY_REMAINING = "PAY_REMAINING"  # Thanh toán phần còn lại từ ví
    DEPOSIT = "DEPOSIT"              # Nạp tiền vào ví


STATUS_ACTIONS: dict[OrderStatus, frozenset[OrderAction]] = {
    OrderStatus.PENDING: frozenset({
        OrderAction.CANCEL,
        OrderAction.EDIT_ADDRESS,
        OrderAction.CHANGE_STATUS,
    }),
    OrderStatus.CONFIRMED: frozenset({
        OrderAction.EDIT_ADDRESS,
        OrderAction.SET_FEES,
        OrderAction.CHANGE_STATUS,
    }),
    OrderStatus.SHIPPING: frozenset({OrderAction.CHANGE_STATUS}),
    OrderStatus.DELIVERED: frozenset({OrderAction.CHANGE_STATUS}),
    OrderStatus.CANCELLED: frozenset(),
}

# Người dùng chỉ sửa địa chỉ khi PENDING; admin sửa được cả khi CONFIRMED
USER_EDITABLE_ADDRESS = frozenset({OrderStatus.PENDING})
ADMIN_EDITABLE_ADDRESS = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})

PAYABLE_REMAINING_STATUSES = frozenset({
    OrderPaymentStatus.DEPOSITED,
    OrderPaymentStatus.PENDING_REMAINING,
})

TERMINAL_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.DELIVERED})


def is_action_allowed(
    action: OrderAction | str,
    status: OrderStatus | str,
    as_admin: bool | None = None,
) -> bool:
    """
    Tra bảng trạng thái. as_admin=None dùng bảng chung; True/False áp dụng
    quy tắc sửa địa chỉ riêng của admin / người dùng.
    """
    action = OrderAction(action)
    status = OrderStatus(status)
    if action == OrderAction.EDIT_ADDRESS and as_admin is not None:
        editable = ADMIN_EDITABLE_ADDRESS if as_admin else USER_EDITABLE_ADDRESS
        return status in editable
    return action in STATUS_ACTIONS[status]


def can_pay_remaining(
    payment_status: OrderPaymentStatus | str,
    remaining_amount: Decimal | None,
    wallet: Wallet | None = None,
) -> bool:
    if OrderPaymentStatus(payment_status) not in PAYABLE_REMAINING_STATUSES:
        return False
    if remaining_amount is None or remaining_amount <= 0:
        return False
    if wallet is not None and wallet.is_locked:
        return False
    return True


def can_initiate_deposit(wallet: Wallet | None) -> bool:
    return wallet is not None and not wallet.is_locked


def allowed_actions(
    order: Order,
    wallet: Wallet | None = None,
    as_admin: bool | None = None,
) -> frozenset[OrderAction]:
    actions = {
        action for action in STATUS_ACTIONS[order.status]
        if is_action_allowed(action, order.status, as_admin)
    }
    if can_pay_remaining(order.payment_status, order.remaining_amount, wallet):
        actions.add(OrderAction.PAY_REMAINING)
    if wallet is not None and can_initiate_deposit(wallet):
        actions.add(OrderAction.DEPOSIT)
    return frozenset(actions)


def ensure_action_allowed(
    action: OrderAction,
    order: Order,
    wallet: Wallet | None = None,
    as_admin: bool | None = None,
) -> None:
    if action == OrderAction.PAY_REMAINING:
        if wallet is not None and wallet.is_locked:
            raise OrderActionNotAllowed(action.value, order.status.value, "ví đang bị khóa")
        if not can_pay_remaining(order.payment_status, order.remaining_amount, wallet):
            raise OrderActionNotAllowed(
                action.value, order.payment_status.value,
                f"còn lại {order.remaining_amount}",
            )
        return
    if not is_action_allowed(action, order.status, as_admin):
        raise OrderActionNotAllowed(action.value, order.status.value)
