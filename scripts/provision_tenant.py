"""
Create the schema and budget tables for an organization.
Usage: python scripts/provision_tenant.py <org_slug> [<org_slug> ...]
"""
import sys

from podflow.core.logging import configure_logging
from podflow.db.tenant import provision_tenant_schema


def main(slugs):
    configure_logging()
    failed = False
    for slug in slugs:
        try:
            schema = provision_tenant_schema(slug)
        except ValueError as e:
            print(f"✗ {slug}: {e}")
            failed = True
            continue
        print(f"✓ {slug} -> {schema}")
    return 1 if failed else 0


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python scripts/provision_tenant.py <org_slug> [<org_slug> ...]")
        print("Example: python scripts/provision_tenant.py acme-media")
        sys.exit(1)
    sys.exit(main(sys.argv[1:]))
