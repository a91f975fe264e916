from typing import Optional

from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    POSTGRES_HOST: str
    POSTGRES_PORT: str
    # повний URL (напр. sqlite+aiosqlite для тестів) замість POSTGRES_*
    SQLALCHEMY_URL: Optional[str] = None

    SERVICE_TOKEN: str
    CRON_SECRET_TOKEN: Optional[str] = None

    DEBUG_MODE: bool = False
    LOG_DIR: str = "logs"

    REDIS_HOST: str
    REDIS_PORT: str
    REDIS_DB: int
    CACHE_TTL_SECONDS: int

    # зовнішні провайдери (DataForSEO-сумісний API)
    PROVIDER_BASE_URL: str = "https://api.dataforseo.com/v3"
    PROVIDER_LOGIN: str = ""
    PROVIDER_PASSWORD: str = ""
    PROVIDER_TIMEOUT_SECONDS: float = 120.0

    # сервіс нотифікацій: якщо не задано, нотифікації вимкнені
    NOTIFICATIONS_URL: Optional[str] = None

    # ScheduledRunner
    UNIT_DELAY_SECONDS: float = 0.2
    SCHEDULE_DELAY_SECONDS: float = 0.5
    CREDIT_WARNING_THROTTLE_HOURS: int = 24
    DEBIT_MAX_ATTEMPTS: int = 3

    @property
    def DATABASE_URL(self) -> str:
        if self.SQLALCHEMY_URL:
            return self.SQLALCHEMY_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    class Config:
        env_file = ".env"


config = AppConfig()
