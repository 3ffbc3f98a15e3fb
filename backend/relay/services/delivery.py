"""
Delivery Engine: sends one email through Gmail and reports an Outcome.

send(item) never raises for a failed delivery; only a max_attempts below 1
is rejected with ValueError. Attempts are strictly sequential:

  1. Token Guard says the credential is not live -> Failed, no network
     attempt at all. auth_related unless the guard saw a transient failure.
  2. For attempt 1..max_attempts: access token + users.messages.send.
       success                  -> Sent, guard.mark_delivered()
       auth-class failure       -> guard.invalidate(), Failed(auth_related) at once
       transient, attempts left -> sleep 2^(attempt-1) s and try again
       anything else            -> Failed with the captured message and code
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from relay.models.delivery import Failed, OutgoingEmail, Outcome, Sent
from relay.services import email_content
from relay.services.errors import ErrorClass, ProviderError, classify_error
from relay.services.google_client import GoogleClient
from relay.services.message_builder import MessageBuilder
from relay.services.token_guard import TokenGuard

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3

AUTH_REQUIRED_REASON = "Gmail authentication failed - re-authorization required"
UNAVAILABLE_REASON = "Gmail temporarily unavailable - token check failed"


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after a failed attempt (1-based): 1, 2, 4, ..."""
    return float(2 ** (attempt - 1))


class DeliveryEngine:
    def __init__(
        self,
        guard: TokenGuard,
        google: GoogleClient,
        builder: MessageBuilder,
        max_attempts: int = MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.guard = guard
        self.google = google
        self.builder = builder
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def send(self, item: OutgoingEmail, max_attempts: Optional[int] = None) -> Outcome:
        if max_attempts is None:
            max_attempts = self.max_attempts
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        try:
            raw = self.builder.build_raw(item)
        except ValueError as exc:
            logger.error(f"Cannot build email to {item.to}: {exc}")
            return Failed(reason=str(exc), error_class=ErrorClass.VALIDATION)

        if not await self.guard.ensure_live():
            if self.guard.last_failure_class is ErrorClass.TRANSIENT:
                return Failed(
                    reason=UNAVAILABLE_REASON,
                    code="GMAIL_UNAVAILABLE",
                    error_class=ErrorClass.TRANSIENT,
                )
            return Failed(
                reason=AUTH_REQUIRED_REASON,
                auth_related=True,
                code="AUTH_REQUIRED",
                error_class=ErrorClass.AUTH,
            )

        for attempt in range(1, max_attempts + 1):
            try:
                access_token = await self.guard.access_token()
                response = await self.google.send_raw(access_token, raw)
            except Exception as exc:
                error_class = classify_error(exc)
                code = exc.code if isinstance(exc, ProviderError) else None
                logger.error(f"Gmail API attempt {attempt} failed: {exc}")

                if error_class is ErrorClass.AUTH:
                    self.guard.invalidate(str(exc))
                    return Failed(
                        reason="Authentication failed - re-authorization required",
                        auth_related=True,
                        code=code,
                        error_class=error_class,
                        attempts=attempt,
                    )

                if error_class is ErrorClass.TRANSIENT and attempt < max_attempts:
                    delay = backoff_delay(attempt)
                    logger.info(f"Retrying Gmail API call in {delay:.0f}s...")
                    await self._sleep(delay)
                    continue

                return Failed(
                    reason=str(exc),
                    code=code,
                    error_class=error_class,
                    attempts=attempt,
                )

            self.guard.mark_delivered()
            logger.info(f"Email sent successfully via Gmail API on attempt {attempt}: {response.get('id')}")
            return Sent(
                message_id=response.get("id"),
                thread_id=response.get("threadId"),
                attempts=attempt,
            )

        return Failed(reason="Max retries exceeded", attempts=max_attempts)

    async def send_confirmation(
        self,
        email: str,
        name: str,
        message: str,
        language: Optional[str] = "en",
    ) -> Outcome:
        return await self.send(email_content.confirmation_email(email, name, message, language))

    async def send_response(
        self,
        email: str,
        name: str,
        original_message: Optional[str],
        response: str,
    ) -> Outcome:
        return await self.send(email_content.response_email(email, name, original_message, response))
