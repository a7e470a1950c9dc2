from typing import Optional

from fastapi import Header, HTTPException

from logging_config import get_logger

logger = get_logger(__name__)


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Authentication stub: trusts the ``X-User-Id`` header set by the fronting auth proxy."""
    if not x_user_id or not x_user_id.strip():
        logger.warning("Rejected request without X-User-Id header")
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()
