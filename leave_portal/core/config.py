import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()

class Config(BaseModel):
    app_name: str = "Leave Portal"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"
    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./leave_portal.db")
    db_timeout_seconds: float = float(os.getenv("DB_TIMEOUT_SECONDS", "10"))
    seed_leave_types: bool = os.getenv("SEED_LEAVE_TYPES", "true").lower() == "true"

    # Balance critical section
    lock_timeout_seconds: float = float(os.getenv("LOCK_TIMEOUT_SECONDS", "5"))
    balance_retry_attempts: int = int(os.getenv("BALANCE_RETRY_ATTEMPTS", "3"))

    # Rate limiting (slowapi syntax)
    submit_rate_limit: str = os.getenv("SUBMIT_RATE_LIMIT", "30/minute")

    # CORS: comma-separated origins loaded from env.
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://localhost:3001,"
                "http://127.0.0.1:3000,http://127.0.0.1:3001",
            ).split(",")
            if o.strip()
        ]
    )

settings = Config()

# --- Startup Validation ---
_logger = logging.getLogger(__name__)
if settings.balance_retry_attempts < 1:
    raise RuntimeError("FATAL: BALANCE_RETRY_ATTEMPTS must be at least 1.")
if settings.environment != "development" and settings.database_url.startswith("sqlite:///./"):
    _logger.warning("⚠ Using the local SQLite database outside development.")
