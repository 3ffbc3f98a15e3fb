"""
Operator endpoints for the fallback queue. All require the webhook secret.

GET    /fallback/queue    list queued deliveries
POST   /fallback/retry    drain the queue now
DELETE /fallback/queue    drop every queued delivery
"""

import logging

from fastapi import APIRouter, Depends

from relay.auth import verify_webhook_secret
from relay.context import RelayContext, get_context, require_gmail
from relay.models.support import DrainResult, FallbackEntryView, FallbackQueueView

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_webhook_secret)])


@router.get("/queue", response_model=FallbackQueueView)
async def list_queue(ctx: RelayContext = Depends(get_context)) -> FallbackQueueView:
    entries = [FallbackEntryView(**entry.to_dict()) for entry in ctx.queue.entries()]
    return FallbackQueueView(count=len(entries), entries=entries)


@router.post("/retry", response_model=DrainResult)
async def retry_queue(ctx: RelayContext = Depends(require_gmail)) -> DrainResult:
    summary = await ctx.queue.drain(ctx.engine)
    return DrainResult(
        success=summary.success,
        failed=summary.failed,
        skipped=summary.skipped,
        pending=len(ctx.queue),
    )


@router.post("/report")
async def report_queue(ctx: RelayContext = Depends(get_context)) -> dict:
    """Post the queue listing to the operator chat."""
    sent = await ctx.queue.send_queue_report()
    return {"sent": sent, "count": len(ctx.queue)}


@router.delete("/queue")
async def clear_queue(ctx: RelayContext = Depends(get_context)) -> dict:
    cleared = ctx.queue.clear()
    logger.info(f"Fallback queue cleared by operator ({cleared} entries)")
    return {"cleared": cleared}
