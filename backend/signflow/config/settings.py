"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables (prefix SIGNFLOW_)"""

    model_config = SettingsConfigDict(
        env_prefix="SIGNFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "signflow_dev"

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Environment
    environment: str = "development"
    debug: bool = True

    # Expiration
    default_expiration_days: int = 30
    min_expiration_days: int = 1
    max_expiration_days: int = 365
    expiration_warning_days: str = "7,3,1"

    # Limits
    min_signers_per_request: int = 1
    max_signers_per_request: int = 50
    max_bulk_operation_size: int = 100
    bulk_max_workers: int = 8
    max_title_length: int = 255
    max_description_length: int = 2000

    # Pagination
    default_page_size: int = 20
    max_page_size: int = 100

    # Rate limiting (per actor, per window)
    rate_limit_window_seconds: int = 3600
    rate_limit_requests_per_hour: int = 100
    rate_limit_bulk_operations_per_hour: int = 5
    rate_limit_reminders_per_hour: int = 20

    # Reminders
    min_reminder_interval_hours: int = 24
    max_reminders_per_request: int = 5

    # Security
    totp_window: int = 1

    # Scheduler
    scheduler_enabled: bool = True
    expiration_check_interval_minutes: int = 60
    expiration_batch_size: int = 100

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def expiration_warning_days_list(self) -> List[int]:
        """Parse warning day offsets, largest first; unparseable entries are dropped"""
        days = []
        for part in self.expiration_warning_days.split(","):
            part = part.strip()
            if part.isdigit() and int(part) > 0:
                days.append(int(part))
        return sorted(set(days), reverse=True)

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment.lower() == "production"

    def validate_configuration(self) -> List[str]:
        """
        Check cross-field consistency of the settings.

        Returns:
            Every violation found (empty list when the configuration is valid)
        """
        errors: List[str] = []

        if self.min_expiration_days < 1:
            errors.append("min_expiration_days must be at least 1")
        if self.max_expiration_days < self.min_expiration_days:
            errors.append("max_expiration_days must be greater than min_expiration_days")
        if not self.min_expiration_days <= self.default_expiration_days <= self.max_expiration_days:
            errors.append("default_expiration_days must be between min and max expiration days")

        raw_days = [p.strip() for p in self.expiration_warning_days.split(",") if p.strip()]
        if any(not p.isdigit() or int(p) < 1 for p in raw_days):
            errors.append("expiration_warning_days must be a comma-separated list of positive integers")

        if self.min_signers_per_request < 1:
            errors.append("min_signers_per_request must be at least 1")
        if self.max_signers_per_request < self.min_signers_per_request:
            errors.append("max_signers_per_request must be greater than min_signers_per_request")
        if self.max_bulk_operation_size < 1:
            errors.append("max_bulk_operation_size must be at least 1")
        if self.bulk_max_workers < 1:
            errors.append("bulk_max_workers must be at least 1")

        if self.max_page_size < 1:
            errors.append("max_page_size must be at least 1")
        if not 1 <= self.default_page_size <= self.max_page_size:
            errors.append("default_page_size must be between 1 and max_page_size")

        if self.rate_limit_window_seconds < 1:
            errors.append("rate_limit_window_seconds must be at least 1")
        for name in (
            "rate_limit_requests_per_hour",
            "rate_limit_bulk_operations_per_hour",
            "rate_limit_reminders_per_hour",
        ):
            if getattr(self, name) < 1:
                errors.append(f"{name} must be at least 1")

        if self.max_reminders_per_request < 1:
            errors.append("max_reminders_per_request must be at least 1")
        if self.min_reminder_interval_hours < 0:
            errors.append("min_reminder_interval_hours must be non-negative")
        if self.totp_window < 0:
            errors.append("totp_window must be non-negative")
        if self.expiration_check_interval_minutes < 1:
            errors.append("expiration_check_interval_minutes must be at least 1")
        if self.expiration_batch_size < 1:
            errors.append("expiration_batch_size must be at least 1")

        return errors


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
