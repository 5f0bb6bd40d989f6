"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import Dict, List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "rmg_portal"

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"
    log_file_max_mb: int = 10
    log_backup_count: int = 5

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Ticket numbering (TKT0001, TKT0002, ...)
    ticket_number_prefix: str = "TKT"
    ticket_number_width: int = 4
    ticket_counter_id: str = "ticketNumber"

    # Auto-close of resolved tickets
    auto_close_after_days: int = 7
    auto_close_interval_minutes: int = 60
    scheduler_enabled: bool = True

    # Timesheets
    timesheet_write_retries: int = 3

    # Leave allocation per year, by leave type
    default_leave_allocations: Dict[str, float] = Field(
        default_factory=lambda: {"casual": 12, "sick": 8, "earned": 15, "unpaid": 365}
    )

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
