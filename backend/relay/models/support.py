"""
Pydantic models for the support webhook and operator endpoints.

Validation of required fields is done in the router, not here: the webhook
contract answers a missing field with 400 and a fixed error body, which the
default 422 from pydantic would not match. All fields are therefore optional
at the model level.
"""

from typing import Optional
from pydantic import BaseModel


class SupportRequest(BaseModel):
    """Body of POST /webhook/support."""
    model_config = {"extra": "ignore"}

    name: Optional[str] = None
    email: Optional[str] = None
    text: Optional[str] = None
    language: Optional[str] = None

    def missing_fields(self) -> list[str]:
        return [
            field_name
            for field_name in ("name", "email", "text")
            if not (getattr(self, field_name) or "").strip()
        ]


class SupportResponseRequest(BaseModel):
    """Body of POST /webhook/support/response: an operator-authored reply."""
    model_config = {"extra": "ignore"}

    name: Optional[str] = None
    email: Optional[str] = None
    original_message: Optional[str] = None
    response: Optional[str] = None

    def missing_fields(self) -> list[str]:
        return [
            field_name
            for field_name in ("name", "email", "response")
            if not (getattr(self, field_name) or "").strip()
        ]


class SupportAccepted(BaseModel):
    success: bool = True
    message: str = "Support request sent successfully"


class ResponseDelivery(BaseModel):
    success: bool
    queued: bool = False
    message_id: Optional[str] = None
    error: Optional[str] = None


class FallbackEntryView(BaseModel):
    recipient: str
    display_name: str
    body_text: str
    kind: str
    language: str
    enqueued_at: str
    last_error: Optional[str] = None


class FallbackQueueView(BaseModel):
    count: int
    entries: list[FallbackEntryView] = []


class DrainResult(BaseModel):
    success: int
    failed: int
    skipped: bool = False
    pending: int
