import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    PROJECT_NAME: str = "Academy Billing API"
    API_V1_STR: str = "/api/v1"

    # Database
    DATABASE_URL: str = "postgresql+psycopg://postgres@localhost:5432/academy_billing"

    # Security
    SECRET_KEY: str = os.getenv("SECRET_KEY", "SECRET_KEY_CHANGE_ME_IN_PRODUCTION")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Shared secret for scheduler-triggered batch jobs
    CRON_API_KEY: str = os.getenv("CRON_API_KEY", "CRON_API_KEY_CHANGE_ME")

    # Billing policy
    DEFAULT_CURRENCY: str = "USD"
    PAYMENT_EDIT_WINDOW_DAYS: int = 7
    REMINDER_WINDOW_DAYS: int = 7
    FEE_DUE_DAY: int = 5
    SALARY_DUE_DAY: int = 25

    # Notification outbox
    NOTIFICATION_SINK: str = "log"  # log, email
    NOTIFICATION_MAX_ATTEMPTS: int = 5
    NOTIFICATION_BATCH_SIZE: int = 100

    # SMTP Settings (Use environment variables)
    SMTP_TLS: bool = True
    SMTP_PORT: Optional[int] = os.getenv("SMTP_PORT")
    SMTP_HOST: Optional[str] = os.getenv("SMTP_HOST")
    SMTP_USER: Optional[str] = os.getenv("SMTP_USER")
    SMTP_PASSWORD: Optional[str] = os.getenv("SMTP_PASSWORD")
    EMAILS_FROM_EMAIL: Optional[str] = os.getenv("EMAILS_FROM_EMAIL")
    EMAILS_FROM_NAME: Optional[str] = os.getenv("EMAILS_FROM_NAME")

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"


settings = Settings()
