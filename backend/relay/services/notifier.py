"""
Operator notifications through the Telegram Bot API.

Two layers:

  TelegramBot        raw sendMessage client. Raises TelegramError on failure.
                     Used directly by the support webhook, where a failed
                     forward must fail the request.

  OperatorNotifier   best-effort wrapper for side-channel alerts (auth
                     failures, queued deliveries, drain summaries, token
                     updates). notify() never raises; notify_later() schedules
                     the send as a background task so the caller's response
                     path is not held up. Task references are kept until the
                     task finishes, otherwise the event loop may drop them.
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"

# Telegram error codes worth another attempt when forwarding a support request
RETRYABLE_TELEGRAM_CODES = frozenset({429, 502, 503})

_MARKDOWN_SPECIALS = re.compile(r"([*_`\[\]()~>#+=|{}!\-])")
_MARKDOWN_V2_SPECIALS = re.compile(r"([_*\[\]()~`>#+=|{}.!\-])")


def local_time(tz_name: str = "Europe/Kyiv", now: Optional[datetime] = None) -> str:
    """Timestamp for operator messages, e.g. '10/19/2026, 2:05:09 PM'."""
    try:
        tz = ZoneInfo(tz_name)
    except ZoneInfoNotFoundError:
        logger.warning(f"Unknown timezone {tz_name!r}, using UTC")
        tz = timezone.utc
    moment = (now or datetime.now(timezone.utc)).astimezone(tz)
    hour = moment.hour % 12 or 12
    return f"{moment.month}/{moment.day}/{moment.year}, {hour}:{moment:%M:%S} {moment:%p}"


def escape_markdown(text: str) -> str:
    return _MARKDOWN_SPECIALS.sub(r"\\\1", text or "")


def escape_markdown_v2(text: str) -> str:
    return _MARKDOWN_V2_SPECIALS.sub(r"\\\1", text or "")


class TelegramError(Exception):
    """A failed Bot API call. error_code mirrors Telegram's (or the HTTP status)."""

    def __init__(self, message: str, error_code: Optional[int] = None, network: bool = False):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.network = network

    @property
    def retryable(self) -> bool:
        return self.network or self.error_code in RETRYABLE_TELEGRAM_CODES


class TelegramBot:
    def __init__(self, token: str, http: Optional[httpx.AsyncClient] = None):
        self._token = token
        self._http = http or httpx.AsyncClient(timeout=30.0)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def send_message(
        self,
        chat_id: str,
        text: str,
        parse_mode: Optional[str] = None,
        reply_markup: Optional[dict] = None,
    ) -> dict:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if reply_markup:
            payload["reply_markup"] = reply_markup

        try:
            response = await self._http.post(
                f"{TELEGRAM_API}/bot{self._token}/sendMessage", json=payload
            )
        except httpx.TransportError as exc:
            raise TelegramError(f"Telegram unreachable: {exc}", network=True) from exc

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code != 200 or not body.get("ok", False):
            raise TelegramError(
                body.get("description") or f"Telegram sendMessage failed: {response.status_code}",
                error_code=body.get("error_code") or response.status_code,
            )
        return body.get("result") or {}


async def send_message_with_retry(
    bot: TelegramBot,
    chat_id: str,
    text: str,
    *,
    parse_mode: Optional[str] = None,
    reply_markup: Optional[dict] = None,
    max_attempts: int = 3,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> dict:
    """
    sendMessage with exponential backoff (1s, 2s, ...) on 429/502/503 and
    network errors. The last error is re-raised.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            result = await bot.send_message(chat_id, text, parse_mode=parse_mode, reply_markup=reply_markup)
            logger.info(f"Message sent successfully on attempt {attempt}")
            return result
        except TelegramError as exc:
            logger.error(f"Attempt {attempt} failed: {exc.message}")
            if attempt == max_attempts or not exc.retryable:
                raise
            delay = 2 ** (attempt - 1)
            logger.info(f"Retrying in {delay}s...")
            await sleep(delay)
    raise TelegramError("max attempts exhausted")


class OperatorNotifier:
    """Best-effort operator channel with its own error containment boundary."""

    def __init__(self, bot: TelegramBot, chat_id: str):
        self._bot = bot
        self._chat_id = chat_id
        self._pending: set[asyncio.Task] = set()

    async def notify(
        self,
        text: str,
        parse_mode: Optional[str] = "MarkdownV2",
        reply_markup: Optional[dict] = None,
    ) -> bool:
        """Send one message. Returns False instead of raising on any failure."""
        try:
            await self._bot.send_message(self._chat_id, text, parse_mode=parse_mode, reply_markup=reply_markup)
            return True
        except Exception as exc:
            logger.error(f"Failed to send Telegram notification: {exc}")
            return False

    def notify_later(
        self,
        text: str,
        parse_mode: Optional[str] = "MarkdownV2",
        reply_markup: Optional[dict] = None,
    ) -> Optional[asyncio.Task]:
        """Fire-and-forget variant of notify(). Needs a running event loop."""
        try:
            task = asyncio.get_running_loop().create_task(
                self.notify(text, parse_mode=parse_mode, reply_markup=reply_markup)
            )
        except RuntimeError:
            logger.error("No running event loop; operator notification dropped")
            return None
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def wait_idle(self) -> None:
        """Wait for every scheduled notification to finish (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class NullNotifier(OperatorNotifier):
    """Drops every message. For tests and for running without an operator chat."""

    def __init__(self) -> None:
        self._pending = set()
        self.sent: list[str] = []

    async def notify(self, text: str, parse_mode: Optional[str] = "MarkdownV2", reply_markup: Optional[dict] = None) -> bool:
        self.sent.append(text)
        return True
