"""
GET /token/status: diagnostic snapshot of the Gmail credential.
"""

from fastapi import APIRouter, Depends

from relay.config import missing_google_settings
from relay.context import RelayContext, get_context
from relay.services.token_checker import not_configured_report

router = APIRouter()


@router.get("/status")
async def token_status(ctx: RelayContext = Depends(get_context)) -> dict:
    if ctx.checker is None:
        return not_configured_report(missing_google_settings())

    report = await ctx.checker.report()
    report["pending_emails"] = len(ctx.queue)
    return report
