"""
API Routers - Báo giá checkout (tiền hàng, phí dịch vụ, tiền cọc).
"""

from fastapi import APIRouter, Depends

from pandamall.application.dto.storefront_dto import CheckoutTotalsDTO, QuoteRequestDTO, QuoteResponseDTO
from pandamall.application.services import default_fee_config
from pandamall.core.config import Settings, get_settings
from pandamall.domain.entities import FeeConfig
from pandamall.domain.services import PricingService

router = APIRouter(prefix="/api/v1", tags=["Checkout"])


@router.post("/checkout/quote", response_model=QuoteResponseDTO)
def quote_checkout(dto: QuoteRequestDTO, settings: Settings = Depends(get_settings)):
    """
    Tính tổng tiền VND, phí dịch vụ, tiền cọc và phần còn lại.

    - Quy đổi từng dòng sang VND rồi mới cộng
    - Thiếu tỷ giá: trả tổng theo tiền tệ gốc, không có tiền cọc
    - Phí vận chuyển và dịch vụ thêm chưa tính ở bước này
    """
    defaults = default_fee_config(settings)
    fee_config = FeeConfig(
        service_fee_percent=dto.service_fee_percent if dto.service_fee_percent is not None else defaults.service_fee_percent,
        deposit_percent=dto.deposit_percent if dto.deposit_percent is not None else defaults.deposit_percent,
    )
    lines = [line.to_entity() for line in dto.lines]
    preview = PricingService(defaults).preview_checkout_totals(lines, dto.rates, fee_config)

    return QuoteResponseDTO(
        ready=preview.is_ready,
        native_totals=preview.native_totals,
        pending_currencies=list(preview.pending_currencies),
        totals=CheckoutTotalsDTO.model_validate(preview.totals) if preview.totals else None,
    )
