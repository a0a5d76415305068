"""
Application Configuration
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    # Matching defaults (used when a batch does not supply its own rules)
    default_name_threshold: float = 0.5
    default_phone_threshold: float = 0.7
    default_min_words_match: int = 2

    # Temporal margins per source (days between reference_date and hire_date)
    lead_margin_days: int = 3
    field_agent_registration_margin_days: int = 3
    ledger_transaction_margin_days: int = 30  # drivers must be hired on or before the transaction

    # Driver window used when a batch carries no reference dates at all
    fallback_window_days: int = 90

    # Batch processing
    match_persist_batch_size: int = 500  # rows committed per flush
    progress_log_every: int = 50  # records between progress log lines

    # Background jobs
    job_workers: int = 2
    job_retention: int = 100  # finished jobs kept for status polling

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
