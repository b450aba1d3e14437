"""Database engine and session management for the campaign store."""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from access_review.config import DATABASE_URL, DB_MAX_OVERFLOW, DB_POOL_SIZE


def is_in_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:")


def build_engine(url: str):
    """Engine for the given URL, shaped for request threads plus the sweeper thread."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if is_in_memory_sqlite(url):
            # One shared connection, or the sweeper thread would see an empty database
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    # PostgreSQL (production). Campaign writes are short single commits.
    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=DB_POOL_SIZE,
        max_overflow=DB_MAX_OVERFLOW,
    )


engine = build_engine(DATABASE_URL)

# autoflush stays off: a campaign change is assembled in memory and written once
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for FastAPI endpoints to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
