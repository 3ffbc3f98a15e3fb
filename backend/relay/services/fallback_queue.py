"""
Fallback Queue: deliveries that failed terminally, kept in memory for retry.

The queue is lost on restart. Entries are removed only after a verified
resend, and removal is by identity, so an entry appended while a drain is
running is never touched by that drain.

Drains are serialized: a drain started while another is still running
returns DrainSummary(skipped=True) immediately.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from relay.models.delivery import DrainSummary, EmailKind, FallbackEntry, Failed, Outcome
from relay.services.email_content import ORIGINAL_MESSAGE_PLACEHOLDER
from relay.services.notifier import OperatorNotifier, escape_markdown_v2, local_time
from relay.services.token_guard import TokenGuard

if TYPE_CHECKING:
    from relay.services.delivery import DeliveryEngine

logger = logging.getLogger(__name__)

DRAIN_DELAY_SECONDS = 1.0
PREVIEW_CHARS = 200
REPORT_LIMIT = 10

_KIND_LABELS = {
    EmailKind.CONFIRMATION: ("✉️", "Confirmation Email"),
    EmailKind.RESPONSE: ("📧", "Response Email"),
}


class FallbackQueue:
    def __init__(
        self,
        notifier: OperatorNotifier,
        guard: Optional[TokenGuard] = None,
        delay: float = DRAIN_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        notify_timezone: str = "Europe/Kyiv",
    ):
        self.notifier = notifier
        self.guard = guard
        self.delay = delay
        self._sleep = sleep
        self.notify_timezone = notify_timezone
        self._entries: list[FallbackEntry] = []
        self._draining = False

        if guard is not None:
            guard.queue_size = self.__len__

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def draining(self) -> bool:
        return self._draining

    def entries(self) -> list[FallbackEntry]:
        return list(self._entries)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries = []
        logger.info(f"Failed emails queue cleared ({count} entries)")
        return count

    # -------------
    # Enqueue
    # -------------
    def enqueue(
        self,
        outcome: Outcome,
        recipient: str,
        display_name: str,
        body: str,
        kind: EmailKind = EmailKind.CONFIRMATION,
        language: str = "en",
    ) -> FallbackEntry:
        entry = FallbackEntry(
            recipient=recipient,
            display_name=display_name,
            body_text=body,
            kind=kind,
            language=language,
            last_error=outcome.reason if isinstance(outcome, Failed) else None,
        )
        self._entries.append(entry)
        logger.warning(f"{kind.value} email to {recipient} queued for retry ({len(self._entries)} pending)")

        self.notifier.notify_later(self._failure_message(entry))

        if outcome.auth_related and self.guard is not None:
            self.guard.escalate(entry.last_error or "auth-related delivery failure")
        return entry

    def _failure_message(self, entry: FallbackEntry) -> str:
        emoji, label = _KIND_LABELS[entry.kind]
        preview = escape_markdown_v2(entry.body_text[:PREVIEW_CHARS])
        if len(entry.body_text) > PREVIEW_CHARS:
            preview += "\\.\\.\\."
        return (
            "🚨 *Email Delivery Failed*\n\n"
            f"{emoji} *{label} could not be sent*\n\n"
            f"👤 *User:* {escape_markdown_v2(entry.display_name)}\n"
            f"📧 *Email:* {escape_markdown_v2(entry.recipient)}\n"
            f"❌ *Error:* {escape_markdown_v2(entry.last_error or 'Unknown error')}\n\n"
            f"💬 *Message Preview:*\n{preview}\n\n"
            "⚠️ *Queued for automatic retry\\. Reply manually if urgent\\!*"
        )

    # -------------
    # Drain
    # -------------
    async def drain(self, engine: "DeliveryEngine") -> DrainSummary:
        if self._draining:
            logger.info("Drain already in progress, skipping")
            return DrainSummary(skipped=True)

        if not self._entries:
            logger.info("No failed emails to retry")
            return DrainSummary()

        self._draining = True
        try:
            snapshot = list(self._entries)
            logger.info(f"Retrying {len(snapshot)} failed emails...")
            success = failed = 0

            for index, entry in enumerate(snapshot):
                if index:
                    await self._sleep(self.delay)
                try:
                    outcome = await self._resend(engine, entry)
                except Exception as exc:
                    failed += 1
                    entry.last_error = str(exc)
                    logger.error(f"Error retrying email to {entry.recipient}: {exc}")
                    continue

                if outcome.ok:
                    self._remove(entry)
                    success += 1
                    logger.info(f"Successfully retried email to {entry.recipient}")
                else:
                    failed += 1
                    entry.last_error = outcome.reason
                    logger.warning(f"Retry failed for email to {entry.recipient}: {outcome.reason}")

            summary = DrainSummary(success=success, failed=failed)
            await self.notifier.notify(self._summary_message(summary))
            return summary
        finally:
            self._draining = False

    async def _resend(self, engine: "DeliveryEngine", entry: FallbackEntry) -> Outcome:
        if entry.kind is EmailKind.RESPONSE:
            return await engine.send_response(
                entry.recipient,
                entry.display_name,
                ORIGINAL_MESSAGE_PLACEHOLDER,
                entry.body_text,
            )
        return await engine.send_confirmation(
            entry.recipient,
            entry.display_name,
            entry.body_text,
            entry.language,
        )

    def _remove(self, entry: FallbackEntry) -> None:
        self._entries = [e for e in self._entries if e is not entry]

    def _summary_message(self, summary: DrainSummary) -> str:
        return (
            "🔄 *Email Retry Complete*\n\n"
            f"✅ *Successful:* {summary.success}\n"
            f"❌ *Failed:* {summary.failed}\n"
            f"📝 *Pending:* {len(self._entries)}"
        )

    # -------------
    # Reporting
    # -------------
    async def send_queue_report(self) -> bool:
        """Post the first entries of the queue to the operator chat. False when empty."""
        if not self._entries:
            return False

        lines = [f"📋 *Failed Emails Queue \\({len(self._entries)}\\)*\n"]
        for number, entry in enumerate(self._entries[:REPORT_LIMIT], start=1):
            emoji, _ = _KIND_LABELS[entry.kind]
            when = escape_markdown_v2(local_time(self.notify_timezone, entry.enqueued_at))
            lines.append(
                f"{number}\\. {emoji} {escape_markdown_v2(entry.display_name)}\n"
                f"   📧 {escape_markdown_v2(entry.recipient)}\n"
                f"   🕒 {when}\n"
            )
        if len(self._entries) > REPORT_LIMIT:
            lines.append(f"\\.\\.\\. and {len(self._entries) - REPORT_LIMIT} more emails")

        return await self.notifier.notify("\n".join(lines))
