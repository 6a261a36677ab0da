from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "MotoRent API"
    LOG_LEVEL: str = "INFO"
    # Comma-separated origins for CORS (e.g. https://motorent.ph,https://admin.motorent.ph). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    # Tokens are issued by the auth provider; we only verify them.
    SECRET_KEY: str

    DATABASE_URL: str
    DB_STATEMENT_TIMEOUT_MS: int = 5000

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    # Live push channel (Redis pub/sub). The notifications table is the durable copy.
    NOTIFY_PUSH_ENABLED: bool = True
    NOTIFY_PUSH_TIMEOUT_S: float = 2.0
    NOTIFY_CHANNEL_PREFIX: str = "notifications"

    # Pricing
    CURRENCY: str = "PHP"
    SECURITY_DEPOSIT_PERCENT: int = 20
    BOOKING_TIMEZONE: str = "Asia/Manila"

    RECONCILE_BATCH_SIZE: int = 100
    # retries of one failed dependent write before it is parked as "stuck"
    PROPAGATION_MAX_ATTEMPTS: int = 10


settings = Settings()
