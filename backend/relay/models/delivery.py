"""
Value types for the credential and delivery core.

Models:
  CredentialRecord  the persisted refresh token and its lifecycle metadata
  OutgoingEmail     one message ready for the Delivery Engine
  Sent / Failed     the two shapes of a delivery Outcome
  EmailKind         which content builder produced (and will re-produce) a message
  FallbackEntry     a delivery parked in the Fallback Queue
  DrainSummary      result of one Fallback Queue drain pass
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

from relay.services.errors import ErrorClass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CredentialRecord:
    refresh_token: str
    updated_at: datetime
    updated_by: str = "System"

    def to_json(self) -> dict:
        return {
            "refreshToken": self.refresh_token,
            "updatedAt": self.updated_at.isoformat(),
            "updatedBy": self.updated_by,
        }

    @classmethod
    def from_json(cls, data: dict) -> "CredentialRecord":
        """
        Parse the on-disk shape. Raises ValueError when the refresh token is
        missing or the timestamp is unreadable.
        """
        refresh_token = data.get("refreshToken")
        if not refresh_token:
            raise ValueError("credential record has no refreshToken")
        raw_updated = data.get("updatedAt")
        updated_at = datetime.fromisoformat(raw_updated.replace("Z", "+00:00")) if raw_updated else utcnow()
        return cls(
            refresh_token=str(refresh_token),
            updated_at=updated_at,
            updated_by=str(data.get("updatedBy") or "System"),
        )


@dataclass(frozen=True)
class OutgoingEmail:
    to: str
    subject: str
    text_body: Optional[str] = None
    html_body: Optional[str] = None


@dataclass(frozen=True)
class Sent:
    message_id: Optional[str] = None
    thread_id: Optional[str] = None
    attempts: int = 1

    ok = True
    auth_related = False
    retryable = False


@dataclass(frozen=True)
class Failed:
    reason: str
    retryable: bool = False
    auth_related: bool = False
    code: Optional[str] = None
    error_class: ErrorClass = ErrorClass.UNKNOWN
    attempts: int = 0

    ok = False

    def __post_init__(self) -> None:
        # Auth failures are escalated, never retried in place.
        if self.auth_related and self.retryable:
            raise ValueError("an auth-related failure cannot be retryable")


Outcome = Union[Sent, Failed]


class EmailKind(str, enum.Enum):
    CONFIRMATION = "confirmation"
    RESPONSE = "response"


@dataclass(eq=False)
class FallbackEntry:
    """
    A delivery waiting for a retry.

    eq=False keeps identity comparison, so removing an entry after a
    successful resend can never remove a look-alike added later.
    """

    recipient: str
    display_name: str
    body_text: str
    kind: EmailKind = EmailKind.CONFIRMATION
    language: str = "en"
    enqueued_at: datetime = field(default_factory=utcnow)
    last_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "recipient": self.recipient,
            "display_name": self.display_name,
            "body_text": self.body_text,
            "kind": self.kind.value,
            "language": self.language,
            "enqueued_at": self.enqueued_at.isoformat(),
            "last_error": self.last_error,
        }


@dataclass(frozen=True)
class DrainSummary:
    success: int = 0
    failed: int = 0
    skipped: bool = False
