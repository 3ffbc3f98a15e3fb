"""
Support intake: what happens to one support request.

  1. forward()       the request goes to the operator chat, with retry. A
                     failure here fails the webhook call.
  2. confirm()       the confirmation email goes out through the Delivery
                     Engine. Run as a background task after the webhook has
                     answered; a Failed outcome lands in the Fallback Queue.

reply() is the operator-authored response email, sent inline so the caller
learns whether it went out or was queued.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from relay.models.delivery import EmailKind, Failed, Outcome
from relay.services.delivery import DeliveryEngine
from relay.services.email_content import normalize_language
from relay.services.fallback_queue import FallbackQueue
from relay.services.notifier import TelegramBot, TelegramError, escape_markdown, send_message_with_retry

logger = logging.getLogger(__name__)

GMAIL_COMPOSE_URL = "https://mail.google.com/mail/?view=cm&fs=1&to="


def request_date(tz_name: str, now: Optional[datetime] = None) -> str:
    """'10/19/2026, 02:05 PM' in the operator's timezone."""
    try:
        tz = ZoneInfo(tz_name)
    except ZoneInfoNotFoundError:
        tz = timezone.utc
    return (now or datetime.now(timezone.utc)).astimezone(tz).strftime("%m/%d/%Y, %I:%M %p")


def format_support_message(name: str, email: str, text: str, date: str) -> str:
    return (
        "🆘 *New Support Request*\n\n"
        f"👤 *Name:* {escape_markdown(name)}\n"
        f"📧 *Email:* {escape_markdown(email)}\n"
        f"💬 *Message:*\n{escape_markdown(text)}\n\n"
        f"📅 *Date:* {date}"
    )


def reply_markup(email: str) -> dict:
    return {
        "inline_keyboard": [[
            {"text": "📧 Reply via Gmail", "url": GMAIL_COMPOSE_URL + quote(email, safe="")},
        ]]
    }


def forward_error(exc: Exception) -> tuple[int, str]:
    """HTTP status and client message for a failed chat forward."""
    code = exc.error_code if isinstance(exc, TelegramError) else None
    if code == 400:
        return 503, "Service temporarily unavailable. Please try again later."
    if code == 429:
        return 503, "Service is busy. Please try again in a few minutes."
    return 500, "Failed to send support request. Please try again later."


class SupportService:
    def __init__(
        self,
        bot: TelegramBot,
        chat_id: str,
        engine: Optional[DeliveryEngine],
        queue: FallbackQueue,
        notify_timezone: str = "Europe/Kyiv",
    ):
        self.bot = bot
        self.chat_id = chat_id
        self.engine = engine
        self.queue = queue
        self.notify_timezone = notify_timezone

    async def forward(self, name: str, email: str, text: str) -> dict:
        """Post the request to the operator chat. Raises TelegramError."""
        message = format_support_message(name, email, text, request_date(self.notify_timezone))
        return await send_message_with_retry(
            self.bot,
            self.chat_id,
            message,
            parse_mode="Markdown",
            reply_markup=reply_markup(email),
        )

    async def confirm(self, email: str, name: str, text: str, language: Optional[str] = None) -> Optional[Outcome]:
        """Send the confirmation email; queue it on failure. None when Gmail is not configured."""
        if self.engine is None:
            logger.info("Gmail not configured, confirmation email skipped")
            return None

        language = normalize_language(language)
        outcome = await self.engine.send_confirmation(email, name, text, language)
        if isinstance(outcome, Failed):
            logger.warning(f"Confirmation email to {email} failed: {outcome.reason}")
            self.queue.enqueue(outcome, email, name, text, EmailKind.CONFIRMATION, language)
        else:
            logger.info(f"Confirmation email sent to {email}")
        return outcome

    async def reply(
        self,
        email: str,
        name: str,
        original_message: Optional[str],
        response: str,
    ) -> Optional[Outcome]:
        """Send an operator's response email; queue it on failure. None when Gmail is not configured."""
        if self.engine is None:
            return None

        outcome = await self.engine.send_response(email, name, original_message, response)
        if isinstance(outcome, Failed):
            logger.warning(f"Response email to {email} failed: {outcome.reason}")
            self.queue.enqueue(outcome, email, name, response, EmailKind.RESPONSE)
        return outcome
