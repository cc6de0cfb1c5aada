"""
Centralized configuration for the sales assistant.

All settings are loaded from environment variables via .env file.
"""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings."""

    # Brand
    brand_name: str = Field(default="Batlokoa", env="BRAND_NAME")
    company_name: str = Field(default="Batlokoa Innovative Projects", env="COMPANY_NAME")
    company_phone: str = Field(default="+27 11 693 1234", env="COMPANY_PHONE")
    company_email: str = Field(default="sales@batlokoa.co.za", env="COMPANY_EMAIL")
    company_website: str = Field(default="https://batlokoa.co.za", env="COMPANY_WEBSITE")
    trading_hours: str = Field(default="Mon-Fri 08:00-17:00", env="TRADING_HOURS")

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./assistant.db", env="DATABASE_URL")
    database_pool_size: int = Field(default=5, env="DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(default=10, env="DATABASE_MAX_OVERFLOW")
    seed_demo_catalog: bool = Field(default=False, env="SEED_DEMO_CATALOG")

    # Knowledge
    knowledge_directory: str = Field(
        default=str(PROJECT_ROOT / "knowledge"), env="KNOWLEDGE_DIRECTORY"
    )

    # Sessions
    session_inactivity_days: int = Field(default=7, env="SESSION_INACTIVITY_DAYS")
    session_history_limit: int = Field(default=10, env="SESSION_HISTORY_LIMIT")
    session_cache_size: int = Field(default=10000, env="SESSION_CACHE_SIZE")
    housekeeping_interval_seconds: int = Field(default=300, env="HOUSEKEEPING_INTERVAL_SECONDS")

    # Classification
    confidence_threshold: float = Field(default=0.6, env="CONFIDENCE_THRESHOLD")
    ambiguity_margin: float = Field(default=0.1, env="AMBIGUITY_MARGIN")

    # Lead scoring / notifications
    hot_lead_cooldown_minutes: int = Field(default=30, env="HOT_LEAD_COOLDOWN_MINUTES")
    notification_queue_size: int = Field(default=1000, env="NOTIFICATION_QUEUE_SIZE")
    lead_webhook_url: Optional[str] = Field(default=None, env="LEAD_WEBHOOK_URL")
    lead_webhook_api_key: Optional[str] = Field(default=None, env="LEAD_WEBHOOK_API_KEY")
    sales_email: str = Field(default="sales@batlokoa.co.za", env="SALES_EMAIL")

    # API
    api_host: str = Field(default="0.0.0.0", env="API_HOST")
    api_port: int = Field(default=8000, env="API_PORT")
    api_title: str = Field(default="Batlokoa Sales Assistant API", env="API_TITLE")
    api_version: str = Field(default="1.0.0", env="API_VERSION")
    cors_origins: str = Field(default="*", env="CORS_ORIGINS")

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    debug: bool = Field(default=False, env="DEBUG")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def template_variables(self) -> dict:
        """Values available to every response template."""
        return {
            "company_name": self.company_name,
            "phone": self.company_phone,
            "email": self.company_email,
            "website": self.company_website,
            "hours": self.trading_hours,
        }


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
