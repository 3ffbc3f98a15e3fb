"""
Gmail re-authorization endpoints.

GET /oauth/auth       redirect to the Google consent screen
GET /oauth/callback   Google redirects back here with ?code= or ?error=
GET /oauth/test       check Gmail access with the stored refresh token

The callback always answers with an HTML page: success, wrong account,
error, or no code.
"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from relay.context import RelayContext, require_gmail
from relay.models.delivery import utcnow
from relay.services import pages
from relay.services.errors import ProviderError
from relay.services.reauth import ReauthFlow, ReauthState

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/auth")
async def start_authorization(ctx: RelayContext = Depends(require_gmail)) -> RedirectResponse:
    # state is echoed back by Google; the single allow-listed account is the
    # real gate, so it is not tracked server-side
    state = f"{int(utcnow().timestamp() * 1000)}-{secrets.token_urlsafe(8)}"
    auth_url = ctx.google.build_auth_url(state)
    logger.info("Redirecting to Google consent screen for Gmail authorization")
    return RedirectResponse(auth_url, status_code=307)


@router.get("/callback", response_class=HTMLResponse)
async def authorization_callback(
    code: Optional[str] = None,
    error: Optional[str] = None,
    ctx: RelayContext = Depends(require_gmail),
) -> HTMLResponse:
    if error:
        logger.warning(f"Authorization was cancelled or denied: {error}")
        return HTMLResponse(pages.error_page("Authorization was cancelled or denied"))

    if not code:
        return HTMLResponse(pages.no_code_page())

    flow = ReauthFlow(
        ctx.google,
        ctx.store,
        ctx.guard,
        ctx.notifier,
        allowed_account=ctx.settings.allowed_account,
        notify_timezone=ctx.settings.notify_timezone,
    )
    result = await flow.run(code)

    if result.state is ReauthState.ACCEPTED:
        return HTMLResponse(pages.success_page(result.email))
    if result.state is ReauthState.REJECTED_WRONG_ACCOUNT:
        return HTMLResponse(pages.wrong_account_page(result.email or "unknown", ctx.settings.allowed_account))
    return HTMLResponse(pages.error_page(result.message or "Failed to complete authorization"))


@router.get("/test")
async def test_gmail_access(ctx: RelayContext = Depends(require_gmail)):
    refresh_token = ctx.store.load_refresh_token()
    if not refresh_token:
        raise HTTPException(
            status_code=400,
            detail="No refresh token found in tokens.json. Please complete OAuth2 setup first via /oauth/auth",
        )

    try:
        tokens = await ctx.google.refresh_access_token(refresh_token)
        profile = await ctx.google.get_profile(tokens.get("access_token", ""))
        logger.info(f"Gmail API access successful for: {profile.get('emailAddress')}")
        access_ok = True
    except ProviderError as exc:
        logger.error(f"Gmail API access failed: {exc}")
        access_ok = False
    except Exception as exc:
        logger.exception("Gmail access test failed")
        return JSONResponse(status_code=500, content={"error": "Test failed", "details": str(exc)})

    return {
        "success": access_ok,
        "message": "Gmail API access working!" if access_ok else "Gmail API access failed",
        "timestamp": utcnow().isoformat(),
    }
