"""
Domain - Mã nạp tiền và hướng dẫn chuyển khoản (VietQR).

Mã nạp tiền luôn là USER{userId}: userId bất biến và duy nhất, còn
username có thể đổi và email có ký tự đặc biệt không dùng được trong
nội dung chuyển khoản.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from urllib.parse import urlencode

DEPOSIT_CODE_PREFIX = "USER"
MEMO_PREFIX = "NAP TIEN"
VIETQR_BASE_URL = "https://img.vietqr.io/image"


class QRTemplate:
    COMPACT = "compact"      # Có logo
    COMPACT2 = "compact2"    # Không logo
    QR_ONLY = "qr_only"
    PRINT = "print"


BANK_BINS: dict[str, str] = {
    "VIETCOMBANK": "970436",
    "TECHCOMBANK": "970407",
    "BIDV": "970418",
    "AGRIBANK": "970405",
    "MBBANK": "970422",
    "VIETINBANK": "970415",
    "SACOMBANK": "970403",
    "ACB": "970416",
    "VPBANK": "970432",
    "TPBANK": "970423",
    "HDBANK": "970437",
    "SHB": "970443",
    "OCB": "970448",
    "MSB": "970426",
    "SEABANK": "970440",
}

BANK_DISPLAY_NAMES: dict[str, str] = {
    "970436": "Vietcombank",
    "970407": "Techcombank",
    "970418": "BIDV",
    "970405": "Agribank",
    "970422": "MB Bank",
    "970415": "VietinBank",
    "970403": "Sacombank",
    "970416": "ACB",
    "970432": "VPBank",
    "970423": "TPBank",
    "970437": "HDBank",
    "970443": "SHB",
    "970448": "OCB",
    "970426": "MSB",
    "970440": "SeABank",
}


def deposit_code(user_id: int) -> str:
    if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id < 0:
        raise ValueError(f"userId không hợp lệ: {user_id!r}")
    return f"{DEPOSIT_CODE_PREFIX}{user_id}"


def transfer_memo(user_id: int) -> str:
    return f"{MEMO_PREFIX} {deposit_code(user_id)}"


def bank_name(bin_code: str) -> str:
    return BANK_DISPLAY_NAMES.get(bin_code, "Unknown Bank")


def validate_bank_config(bank_bin: str | None, account_no: str | None) -> bool:
    if not bank_bin or not account_no:
        return False
    return bool(re.fullmatch(r"\d{6}", bank_bin)) and bool(re.fullmatch(r"\d+", account_no))


def build_vietqr_url(
    bank_bin: str,
    account_no: str,
    account_name: str | None,
    description: str | None,
    amount: Decimal | int | None = None,
    template: str = QRTemplate.COMPACT2,
    base_url: str = VIETQR_BASE_URL,
) -> str:
    """
    URL ảnh QR của VietQR. Không truyền amount (hoặc amount <= 0) thì bỏ hẳn
    tham số để người chuyển tự nhập số tiền.
    """
    url = f"{base_url.rstrip('/')}/{bank_bin}-{account_no}-{template}.png"

    params: list[tuple[str, str]] = []
    if amount is not None and amount > 0:
        params.append(("amount", str(int(amount))))
    if description:
        params.append(("addInfo", description))
    if account_name:
        params.append(("accountName", account_name))

    if params:
        url = f"{url}?{urlencode(params)}"
    return url


@dataclass(frozen=True, slots=True)
class DepositInstructions:
    """Value Object - Thông tin hiển thị cho màn hình nạp tiền."""
    user_id: int
    deposit_code: str
    memo: str
    bank_bin: str
    bank_name: str
    account_no: str
    account_name: str
    qr_url: str
    amount: Decimal | None
    settlement_minutes: tuple[int, int] = (1, 2)

    @classmethod
    def create(
        cls,
        user_id: int,
        bank_bin: str,
        account_no: str,
        account_name: str,
        amount: Decimal | None = None,
        template: str = QRTemplate.COMPACT2,
        base_url: str = VIETQR_BASE_URL,
        settlement_minutes: tuple[int, int] = (1, 2),
    ) -> "DepositInstructions":
        if not validate_bank_config(bank_bin, account_no):
            raise ValueError(f"Cấu hình tài khoản ngân hàng không hợp lệ: {bank_bin}/{account_no}")
        memo = transfer_memo(user_id)
        return cls(
            user_id=user_id,
            deposit_code=deposit_code(user_id),
            memo=memo,
            bank_bin=bank_bin,
            bank_name=bank_name(bank_bin),
            account_no=account_no,
            account_name=account_name,
            qr_url=build_vietqr_url(
                bank_bin, account_no, account_name, memo,
                amount=amount, template=template, base_url=base_url,
            ),
            amount=amount if amount is not None and amount > 0 else None,
            settlement_minutes=settlement_minutes,
        )


# Nội dung SMS biến động số dư, ví dụ:
#   "TK 09xxx279 GD: +200,000VND 05/11/25 07:21 SD: 335,163VND ND: ... USER123"
#   "+500000d GD:123456 ND:NAPTIEN USER123"
_AMOUNT_SIGNED = re.compile(r"\+([0-9][0-9,]*)\s*(?:VND|D|Đ)?")
_AMOUNT_SIGNED_K = re.compile(r"\+([0-9]+)K\b")
_AMOUNT_GROUPED = re.compile(r"([0-9]{1,3}(?:,[0-9]{3})+)\s*(?:VND|D|Đ)")
_AMOUNT_K = re.compile(r"\b([0-9]+)K\b")
_REF_MBVCB = re.compile(r"MBVCB\.[0-9]+\.[0-9]+")
_REF_MA_GD = re.compile(r"MA\s+GD[:\s]*([0-9A-Z]+)")
_REF_AFTER_ND = re.compile(r"ND:.*GD[:\s]*([0-9A-Z]{5,})")
_REF_GD = re.compile(r"GD[:\s]+([0-9A-Z]{5,})(?![0-9,+])")
_USER_ID = re.compile(r"USER\s*([0-9]+)")


@dataclass(frozen=True, slots=True)
class TransferMemo:
    amount: Decimal | None
    reference: str | None
    user_id: int | None

    @property
    def deposit_code(self) -> str | None:
        return deposit_code(self.user_id) if self.user_id is not None else None

    @property
    def is_matchable(self) -> bool:
        return self.user_id is not None and self.amount is not None and self.amount > 0


def _parse_amount(message: str) -> Decimal | None:
    # "+500K" phải được xét trước "+500" để không mất hệ số nghìn
    match = _AMOUNT_SIGNED_K.search(message)
    if match:
        return Decimal(match.group(1)) * 1000
    for pattern in (_AMOUNT_SIGNED, _AMOUNT_GROUPED):
        match = pattern.search(message)
        if match:
            try:
                return Decimal(match.group(1).replace(",", ""))
            except InvalidOperation:
                continue
    match = _AMOUNT_K.search(message)
    if match:
        return Decimal(match.group(1)) * 1000
    return None


def _parse_reference(message: str) -> str | None:
    match = _REF_MBVCB.search(message)
    if match:
        return match.group(0).replace(".", "_")
    for pattern in (_REF_MA_GD, _REF_AFTER_ND):
        match = pattern.search(message)
        if match:
            return f"GD{match.group(1)}"
    match = _REF_GD.search(message)
    if match and f"GD: +{match.group(1)}" not in message and f"GD:+{match.group(1)}" not in message:
        return f"GD{match.group(1)}"
    return None


def parse_transfer_memo(text: str | None) -> TransferMemo:
    """
    Xem trước kết quả đối soát: số tiền, mã giao dịch và USER{id} trong nội
    dung chuyển khoản / SMS. Backend mới là nơi đối soát thật.
    """
    if not text or not text.strip():
        return TransferMemo(amount=None, reference=None, user_id=None)

    message = text.upper().strip()
    user_match = _USER_ID.search(message)
    return TransferMemo(
        amount=_parse_amount(message),
        reference=_parse_reference(message),
        user_id=int(user_match.group(1)) if user_match else None,
    )
