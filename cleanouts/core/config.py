from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "CleanOuts Pro API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "production"  # "development" exposes error details
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "cleanouts"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None
    AUTO_CREATE_DATABASE: bool = False
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    SQL_ECHO: bool = False

    # Identity provider tokens (HS256 shared secret)
    AUTH_JWT_SECRET: str = "changeme"
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_JWT_AUDIENCE: Optional[str] = "authenticated"
    ADMIN_EMAILS: List[str] = []

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_CURRENCY: str = "usd"
    STRIPE_MIN_CHARGE_CENTS: int = 50
    STRIPE_STATEMENT_DESCRIPTOR_SUFFIX: str = "CLEANOUTS PRO"

    # Business hours (wall clock in BUSINESS_TIMEZONE)
    BUSINESS_TIMEZONE: str = "America/New_York"
    BUSINESS_OPEN_HOUR: int = 8
    BUSINESS_CLOSE_HOUR: int = 18
    LAST_SLOT_HOUR: int = 16
    SLOT_INTERVAL_MINUTES: int = 60

    # Booking rules
    MIN_DURATION_HOURS: int = 1
    MAX_DURATION_HOURS: int = 12
    DEFAULT_DURATION_HOURS: int = 2
    MAX_ADVANCE_BOOKING_DAYS: int = 90
    MAX_BULK_DATES: int = 30

    # Availability cache
    AVAILABILITY_CACHE_TTL_SECONDS: int = 300
    AVAILABILITY_CACHE_SWEEP_SECONDS: int = 60

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    def assemble_db_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

settings = Settings()
settings.DATABASE_URL = settings.assemble_db_url()
