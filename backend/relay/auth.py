"""
Shared-secret authentication for webhook and operator endpoints.

The secret may arrive in either:
  X-Webhook-Secret        the raw secret
  Authorization           "Bearer <secret>"

Comparison is constant-time. A mismatch raises 401, rendered by the app's
exception handler as {"error": "Unauthorized: Invalid webhook secret"}.
"""

import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException

from relay.context import RelayContext, get_context

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = "Unauthorized: Invalid webhook secret"


def provided_secret(x_webhook_secret: Optional[str], authorization: Optional[str]) -> Optional[str]:
    if x_webhook_secret:
        return x_webhook_secret
    if authorization:
        if authorization.startswith("Bearer "):
            return authorization[len("Bearer "):]
        return authorization
    return None


async def verify_webhook_secret(
    x_webhook_secret: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
    ctx: RelayContext = Depends(get_context),
) -> None:
    """
    Raises:
        HTTPException: 401 if the secret is missing or does not match
    """
    expected = ctx.settings.webhook_secret
    provided = provided_secret(x_webhook_secret, authorization)
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning("Rejected request with missing or invalid webhook secret")
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_MESSAGE)
