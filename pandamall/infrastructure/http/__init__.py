"""
HTTP infrastructure - REST client và gateways tới backend.
"""

from pandamall.infrastructure.http.client import ApiClient, is_public_endpoint, map_error
from pandamall.infrastructure.http.gateways import (
    AddressGateway,
    AdminOrderGateway,
    BankTransferGateway,
    CartGateway,
    ExchangeRateGateway,
    FeeConfigGateway,
    OrderGateway,
    WalletGateway,
)
