"""
API Routers - Nạp tiền ví: hướng dẫn chuyển khoản, đối soát sổ giao dịch.
"""

from decimal import Decimal

from fastapi import APIRouter, Depends, Path, Query

from pandamall.application.dto.storefront_dto import (
    DepositInstructionsDTO,
    LedgerDiscrepancyDTO,
    LedgerReportDTO,
    LedgerVerifyRequestDTO,
    MemoParseRequestDTO,
    MemoParseResponseDTO,
)
from pandamall.application.services import build_deposit_instructions
from pandamall.core.config import Settings, get_settings
from pandamall.domain.deposit import parse_transfer_memo
from pandamall.domain.services import LedgerService

router = APIRouter(prefix="/api/v1/wallet", tags=["Ví"])


@router.get("/deposit-instructions/{user_id}", response_model=DepositInstructionsDTO)
def get_deposit_instructions(
    user_id: int = Path(..., ge=0, description="Id người dùng, dùng làm mã nạp USER{userId}"),
    amount: Decimal | None = Query(None, ge=0, description="Số tiền nạp (VND), bỏ trống để người dùng tự nhập"),
    settings: Settings = Depends(get_settings),
):
    """
    Mã nạp tiền USER{userId}, nội dung chuyển khoản và ảnh QR VietQR.
    Tiền thường vào ví sau 1-2 phút.
    """
    instructions = build_deposit_instructions(settings, user_id, amount)
    return DepositInstructionsDTO.model_validate(instructions)


@router.post("/ledger/verify", response_model=LedgerReportDTO)
def verify_ledger(dto: LedgerVerifyRequestDTO):
    report = LedgerService().verify_ledger(
        [entry.to_entity() for entry in dto.transactions],
        opening_balance=dto.opening_balance,
    )
    return LedgerReportDTO(
        consistent=report.is_consistent,
        entries_checked=report.entries_checked,
        opening_balance=report.opening_balance,
        closing_balance=report.closing_balance,
        discrepancies=[LedgerDiscrepancyDTO.model_validate(d) for d in report.discrepancies],
        negative_balances=report.negative_balances,
    )


@router.post("/memo/parse", response_model=MemoParseResponseDTO)
def parse_memo(dto: MemoParseRequestDTO):
    """Xem trước: nội dung chuyển khoản / SMS có mã USER{id} dùng được không."""
    memo = parse_transfer_memo(dto.text)
    return MemoParseResponseDTO(
        amount=memo.amount,
        reference=memo.reference,
        user_id=memo.user_id,
        deposit_code=memo.deposit_code,
        matchable=memo.is_matchable,
    )
