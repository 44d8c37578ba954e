import logging
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Safe defaults for local dev + CI tests
    database_url: str = "sqlite:///./data/linguacards.db"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_timeout: int = 5

    telegram_bot_token: str = ""
    init_data_max_age_seconds: int = 86400
    # accept a fixed dev user when the client sends no initData at all
    dev_auth: bool = False
    admin_telegram_ids: str = ""

    free_daily_cards_limit: int = 40
    known_accuracy_threshold: float = 80.0
    app_timezone: str = "UTC"

    cors_origins: str = "*"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def admin_ids(self) -> set[int]:
        return {int(x) for x in self.admin_telegram_ids.split(",") if x.strip()}


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=settings.log_level.upper(),
)
