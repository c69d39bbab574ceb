import logging
import sys

from podflow.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for the API process."""
    root = logging.getLogger()
    resolved = (level or settings.LOG_LEVEL).upper()
    root.setLevel(resolved)

    # uvicorn --reload imports the app twice; don't stack handlers
    if any(getattr(h, "_podflow", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._podflow = True
    root.addHandler(handler)

    # SQL echo is noisy at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
