"""Domain layer - Pure Python business logic."""

from pandamall.domain.deposit import (
    DepositInstructions,
    TransferMemo,
    build_vietqr_url,
    deposit_code,
    parse_transfer_memo,
    transfer_memo,
    validate_bank_config,
)
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
from pandamall.domain.policies import (
    OrderAction,
    allowed_actions,
    can_initiate_deposit,
    can_pay_remaining,
    ensure_action_allowed,
    is_action_allowed,
)
from pandamall.domain.services import (
    AdditionalServiceFeeService,
    CheckoutPreview,
    CheckoutTotals,
    CurrencyService,
    FeeUpdate,
    LedgerReport,
    LedgerService,
    PricingService,
    format_money,
    infer_line_currency,
    to_vnd,
)
from pandamall.domain.value_objects import (
    Currency,
    ExchangeRate,
    ExchangeRateTable,
    ItemCountFeeBands,
    Marketplace,
    Money,
    OrderPaymentStatus,
    OrderStatus,
    TransactionType,
    currency_code,
    currency_from_symbol,
)
