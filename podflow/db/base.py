from sqlalchemy.orm import declarative_base

# Create declarative base
Base = declarative_base()

# Placeholder schema for per-organization tables; remapped per session
TENANT_SCHEMA = "tenant"


def public_tables():
    from podflow.models import Organization, User

    return [Organization.__table__, User.__table__]


def tenant_tables():
    import podflow.models  # noqa: F401

    return [t for t in Base.metadata.sorted_tables if t.schema == TENANT_SCHEMA]


def init_db():
    """Create shared (public schema) tables. Tenant schemas are provisioned separately."""
    # Import engine here to avoid circular import
    from podflow.db.session import engine
    from sqlalchemy import text
    import time
    import logging

    logger = logging.getLogger(__name__)

    # Retry logic to wait for database to be ready
    max_retries = 30
    retry_delay = 2

    for attempt in range(max_retries):
        try:
            with engine.begin() as conn:
                conn.execute(text("SELECT 1"))
            Base.metadata.create_all(bind=engine, tables=public_tables())
            logger.info("Public tables created/updated successfully")
            return
        except Exception as e:
            if attempt < max_retries - 1:
                logger.warning(f"Database not ready, retrying in {retry_delay}s... (attempt {attempt + 1}/{max_retries})")
                time.sleep(retry_delay)
            else:
                logger.error(f"Failed to connect to database after {max_retries} attempts: {e}")
                raise
