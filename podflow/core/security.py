import logging
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt

from podflow.core.config import settings

logger = logging.getLogger(__name__)


def decode_access_token(token: str) -> Optional[dict]:
    """Decode and verify a session JWT. Returns None when it cannot be trusted."""
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_signature": True, "verify_exp": True, "verify_sub": False},
        )
    except ExpiredSignatureError:
        logger.info("Rejected expired session token")
        return None
    except JWTError as e:
        logger.warning(f"Rejected session token: {e}")
        return None
