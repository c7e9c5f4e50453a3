"""Application layer - Use cases and DTOs."""

from pandamall.application.dto.storefront_dto import (
    CartDTO,
    CheckoutRequestDTO,
    FeeConfigDTO,
    FeeConfigRequestDTO,
    OrderDTO,
    UpdateAddressDTO,
    UpdateFeesDTO,
    WalletDTO,
    WalletTransactionDTO,
    unwrap_envelope,
)
