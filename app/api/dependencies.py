"""
FastAPI Dependencies - Service-to-service authentication.

Ledger mutations (deduct, grant, reset) are guarded by a shared secret
sent in the X-API-Key header. When no key is configured the guard is open.
"""

import hmac

from fastapi import Header, HTTPException, status
from structlog import get_logger

from app.config import settings

logger = get_logger(__name__)


async def require_api_key(
    x_api_key: str | None = Header(None, description="Service API key"),
) -> None:
    """
    FastAPI dependency to validate the X-API-Key header.

    Usage:
        @router.post("/v1/tokens/{user_id}/deduct")
        async def deduct_tokens(
            request: TokenAmountRequest,
            _: None = Depends(require_api_key),
        ):
            pass

    Raises:
        HTTPException 401 if the key is missing or does not match
    """
    expected = settings.api_key
    if not expected:
        return

    if x_api_key is None:
        logger.warning("api_key_missing")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-API-Key header required",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not hmac.compare_digest(x_api_key.encode(), expected.encode()):
        logger.warning("api_key_invalid", key_prefix=x_api_key[:4])
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )
