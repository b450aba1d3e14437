"""Runtime settings, read from the environment with local defaults."""
import os


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return int(raw)


# Use PostgreSQL in production (from DATABASE_URL env var), SQLite locally
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./access_review.db")

# Fix for Render/Heroku: they use postgres:// but SQLAlchemy needs postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# Postgres pool; request handlers and the escalation sweeper draw from it
DB_POOL_SIZE = _int_env("DB_POOL_SIZE", 5)
DB_MAX_OVERFLOW = _int_env("DB_MAX_OVERFLOW", 10)

LOG_LEVEL =os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "text").lower()  # "text" or "json"

# Optimistic-lock retries for CampaignStore.update_campaign
STORE_MAX_RETRIES = _int_env("STORE_MAX_RETRIES", 3)

# 0 = return every skipped item from the bulk decision endpoint
BULK_SKIPPED_ITEMS_LIMIT = _int_env("BULK_SKIPPED_ITEMS_LIMIT", 0)

ESCALATION_SWEEP_INTERVAL_SECONDS = _int_env("ESCALATION_SWEEP_INTERVAL_SECONDS", 3600)
