"""
Support webhook endpoints.

POST /webhook/support            forward a support request to the operator
                                 chat, then send the confirmation email in
                                 the background
POST /webhook/support/response   send an operator-authored reply email

Both require the webhook secret. /webhook/support is rate limited per IP.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from relay.auth import verify_webhook_secret
from relay.context import RelayContext, get_context
from relay.models.delivery import Failed
from relay.models.support import (
    ResponseDelivery,
    SupportAccepted,
    SupportRequest,
    SupportResponseRequest,
)
from relay.rate_limit import support_rate_limit
from relay.services.notifier import TelegramError
from relay.services.support import forward_error

logger = logging.getLogger(__name__)

router = APIRouter()

SUPPORT_FIELDS = ["name", "email", "text"]
RESPONSE_FIELDS = ["name", "email", "response"]


def _missing(fields: list[str]) -> HTTPException:
    return HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(fields)}")


async def _read_body(request: Request, model: type[BaseModel], required: list[str]):
    """
    Parse the JSON body into `model`. Called from the handler so the secret
    check has already run; anything unparseable is a 400 naming `required`.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise _missing(required)
    if not isinstance(payload, dict):
        raise _missing(required)
    try:
        return model.model_validate(payload)
    except ValidationError:
        raise _missing(required)


@router.post("/support", response_model=SupportAccepted)
async def support_request(
    request: Request,
    background_tasks: BackgroundTasks,
    _limit: None = Depends(support_rate_limit),
    _auth: None = Depends(verify_webhook_secret),
    ctx: RelayContext = Depends(get_context),
) -> SupportAccepted:
    body = await _read_body(request, SupportRequest, SUPPORT_FIELDS)
    if body.missing_fields():
        raise _missing(SUPPORT_FIELDS)

    try:
        await ctx.support.forward(body.name, body.email, body.text)
    except TelegramError as exc:
        status_code, message = forward_error(exc)
        logger.error(f"Failed to forward support request: {exc}")
        raise HTTPException(status_code=status_code, detail=message)

    background_tasks.add_task(ctx.support.confirm, body.email, body.name, body.text, body.language)
    return SupportAccepted()


@router.post("/support/response", response_model=ResponseDelivery)
async def support_response(
    request: Request,
    _auth: None = Depends(verify_webhook_secret),
    ctx: RelayContext = Depends(get_context),
):
    body = await _read_body(request, SupportResponseRequest, RESPONSE_FIELDS)
    missing = body.missing_fields()
    if missing:
        raise _missing(missing)

    outcome = await ctx.support.reply(body.email, body.name, body.original_message, body.response)
    if outcome is None:
        raise HTTPException(status_code=503, detail="Gmail is not configured")

    if isinstance(outcome, Failed):
        result = ResponseDelivery(success=False, queued=True, error=outcome.reason)
        return JSONResponse(status_code=202, content=result.model_dump())

    return ResponseDelivery(success=True, message_id=outcome.message_id)
