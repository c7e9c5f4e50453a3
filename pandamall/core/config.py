"""
Configuration - Settings loaded from environment / .env (prefix PANDAMALL_).
"""

import logging
from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # --- Backend REST API ---
    api_base_url: str = "http://localhost:8080/api"
    http_timeout_seconds: float = 100.0

    # --- Mặc định khi chưa tải được cấu hình phí đang active ---
    default_service_fee_percent: Decimal = Decimal("1.5")
    default_deposit_percent: Decimal = Decimal("70")
    default_marketplace: str = "aliexpress"

    # --- Nạp tiền qua chuyển khoản (VietQR) ---
    bank_bin: str = "970422"
    bank_account_no: str = "0000000000"
    bank_account_name: str = "PANDAMALL"
    vietqr_template: str = "compact2"
    vietqr_base_url: str = "https://img.vietqr.io/image"
    deposit_settlement_minutes: tuple[int, int] = (1, 2)

    # --- Lưu trạng thái client ---
    database_url: str = "sqlite:///./data/pandamall_client.db"
    translation_cache_ttl_days: int = 7

    # --- Phí kiểm đếm (VND/sản phẩm), bảng do backend quy định ---
    item_count_tiers: list[int] = Field(default_factory=lambda: [1, 6, 21, 101, 501])
    item_count_regular_fees: list[Decimal] = Field(
        default_factory=lambda: [Decimal(v) for v in ("5000", "3000", "2000", "1500", "1000")]
    )
    item_count_accessory_fees: list[Decimal] = Field(
        default_factory=lambda: [Decimal(v) for v in ("2500", "2000", "1500", "1000", "800")]
    )
    accessory_price_threshold_cny: Decimal = Decimal("10")

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="PANDAMALL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    logger.debug("Settings loaded: api=%s, db=%s", settings.api_base_url, settings.database_url)
    return settings


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
