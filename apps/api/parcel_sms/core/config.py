"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    VERSION: str = "0.1.0"

    # Database
    DATABASE_URL: str

    # Civil timezone all pickup times are shown in
    BUSINESS_TIMEZONE: str = "Europe/Stockholm"

    # Public parcel page base URL (used in SMS links)
    PUBLIC_BASE_URL: str = "http://localhost:3000"

    # Internal scheduled endpoints (cron jobs)
    INTERNAL_SECRET: str = ""

    # Sentry (optional)
    SENTRY_DSN: str = ""

    # SMS provider (HelloSMS)
    SMS_TEST_MODE: bool | None = None  # Defaults to True outside production
    SMS_API_URL: str = "https://api.hellosms.se/api/v1/sms/send"
    SMS_USERNAME: str = ""
    SMS_PASSWORD: str = ""
    SMS_SENDER_NAME: str = "Matcentralen"
    SMS_SEND_TIMEOUT_SECONDS: float = 10.0
    # Delivery status callback URL token (at least 32 characters; empty disables)
    SMS_CALLBACK_SECRET: str = ""

    # Worker
    WORKER_POLL_INTERVAL_SECONDS: int = 30
    WORKER_BATCH_SIZE: int = 50
    REMINDER_SWEEP_INTERVAL_SECONDS: int = 600

    # Rate limiting (requests per minute, 0 disables)
    RATE_LIMIT_RESEND: int = 10

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"

    @property
    def sms_test_mode(self) -> bool:
        """Resolve SMS test mode, defaulting to on for non-production."""
        if self.SMS_TEST_MODE is None:
            return not self.is_production
        return self.SMS_TEST_MODE

    @property
    def sms_credentials_configured(self) -> bool:
        return bool(self.SMS_USERNAME and self.SMS_PASSWORD)


settings = Settings()
