from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from podflow.core.config import settings


def engine_options() -> dict:
    """Pool settings shared by the public and tenant binds."""
    return {
        "pool_pre_ping": True,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "connect_args": {"connect_timeout": settings.DB_CONNECT_TIMEOUT},
    }


# Tenant sessions reuse this engine (and its pool) through execution options
engine = create_engine(settings.DATABASE_URL, **engine_options())

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Yield a session on the public schema (users, organizations)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
