"""
Schema-per-tenant helpers.

Every organization owns a PostgreSQL schema named ``org_<slug>``. Tenant models are
declared in the placeholder schema ``tenant``; a tenant session rewrites that
placeholder through SQLAlchemy's ``schema_translate_map`` so one set of mappings
serves every organization.
"""
import logging
import re

from sqlalchemy import text
from sqlalchemy.orm import Session

from podflow.core.config import settings
from podflow.db.base import TENANT_SCHEMA, Base, tenant_tables
from podflow.db.session import SessionLocal, engine

logger = logging.getLogger(__name__)

_SAFE_SCHEMA = re.compile(r"^[a-z0-9_]+$")


def schema_name_for(slug: str) -> str:
    """Map an organization slug to its schema name (``Acme-Media`` -> ``org_acme_media``)."""
    if not slug or not slug.strip():
        raise ValueError("Organization slug is required")
    sanitized = slug.strip().lower().replace("-", "_")
    if not _SAFE_SCHEMA.match(sanitized):
        raise ValueError(f"Organization slug contains unsupported characters: {slug!r}")
    return f"{settings.TENANT_SCHEMA_PREFIX}{sanitized}"


def tenant_bind(schema: str):
    return engine.execution_options(schema_translate_map={TENANT_SCHEMA: schema})


def tenant_session(schema: str) -> Session:
    """Open a session whose tenant tables resolve to ``schema``. Caller closes it."""
    return SessionLocal(bind=tenant_bind(schema))


def provision_tenant_schema(slug: str) -> str:
    """Create the organization schema and its tables if missing. Returns the schema name."""
    schema = schema_name_for(slug)
    with engine.begin() as conn:
        conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{schema}"'))
    Base.metadata.create_all(bind=tenant_bind(schema), tables=tenant_tables())
    logger.info(f"Provisioned tenant schema {schema}")
    return schema
