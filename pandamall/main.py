"""
Main FastAPI application - PandaMall: báo giá, đặt cọc và nạp tiền ví.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pandamall.api.routers import checkout, orders, wallet
from pandamall.core.config import configure_logging, get_settings
from pandamall.core.exceptions import (
    ApiError,
    DomainError,
    OrderActionNotAllowed,
    PricingError,
    WalletLocked,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan - startup and shutdown events."""
    configure_logging()
    logger.info("PandaMall service starting (backend=%s)", get_settings().api_base_url)
    yield


app = FastAPI(
    title="PandaMall API",
    description="""
## PandaMall - Mua hộ AliExpress / 1688

### Tính năng chính:
- **Báo giá checkout**: Quy đổi USD/CNY sang VND, phí dịch vụ 1.5%, đặt cọc 70%
- **Phí đơn hàng**: Vận chuyển, đóng gỗ, quấn bọt khí, kiểm đếm
- **Thao tác hợp lệ**: Theo trạng thái đơn hàng và trạng thái thanh toán
- **Nạp tiền ví**: Mã USER{userId}, ảnh QR VietQR, đối soát sổ giao dịch

### Nguyên tắc:
- Tiền cọc cố định từ lúc đặt đơn
- Phí phát sinh chỉ cộng vào phần còn lại
- Backend là nguồn sự thật cho trạng thái đơn và số dư ví
    """,
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(checkout.router)
app.include_router(orders.router)
app.include_router(wallet.router)


@app.get("/")
def root():
    return {
        "name": "PandaMall API",
        "version": "0.1.0",
        "marketplaces": ["aliexpress", "1688"],
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.exception_handler(OrderActionNotAllowed)
async def action_not_allowed_handler(request: Request, exc: OrderActionNotAllowed):
    return JSONResponse(
        status_code=409,
        content={"detail": exc.message, "action": exc.action, "status": exc.status}
    )


@app.exception_handler(WalletLocked)
async def wallet_locked_handler(request: Request, exc: WalletLocked):
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(PricingError)
async def pricing_error_handler(request: Request, exc: PricingError):
    content = {"detail": exc.message}
    currencies = getattr(exc, "currencies", None)
    if currencies:
        content["missing_currencies"] = currencies
    return JSONResponse(status_code=422, content=content)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code or 502, content={"detail": exc.message})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc)}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
