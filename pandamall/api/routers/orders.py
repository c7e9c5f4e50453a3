"""
API Routers - Xem trước phí đơn hàng và các thao tác hợp lệ.
"""

from fastapi import APIRouter, Depends

from pandamall.application.dto.storefront_dto import (
    AllowedActionsRequestDTO,
    AllowedActionsResponseDTO,
    FeePreviewRequestDTO,
    FeePreviewResponseDTO,
)
from pandamall.core.config import Settings, get_settings
from pandamall.domain.policies import allowed_actions
from pandamall.domain.services import AdditionalServiceFeeService
from pandamall.domain.value_objects import ItemCountFeeBands

router = APIRouter(prefix="/api/v1/orders", tags=["Đơn hàng"])


@router.post("/fee-preview", response_model=FeePreviewResponseDTO)
def preview_fees(dto: FeePreviewRequestDTO, settings: Settings = Depends(get_settings)):
    """
    Tính lại tổng và phần còn lại như khi admin cập nhật phí.
    Tiền cọc giữ nguyên; chỉ áp dụng cho đơn CONFIRMED.
    """
    service = AdditionalServiceFeeService(dto.rates, ItemCountFeeBands.from_settings(settings))
    order = service.preview_fee_update(dto.order.to_entity(), dto.fees.to_fee_update())
    return FeePreviewResponseDTO.model_validate(order)


@router.post("/allowed-actions", response_model=AllowedActionsResponseDTO)
def list_allowed_actions(dto: AllowedActionsRequestDTO):
    order = dto.order.to_entity()
    wallet = dto.wallet.to_entity() if dto.wallet else None
    actions = allowed_actions(order, wallet, as_admin=dto.as_admin)
    return AllowedActionsResponseDTO(
        status=order.status,
        payment_status=order.payment_status,
        actions=sorted(action.value for action in actions),
    )
