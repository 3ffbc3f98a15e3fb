"""
Tests for the Delivery Engine: retry bounds, backoff, auth short-circuit.

The sleep function is injected and records the requested waits, so backoff
is observed without real delays.
"""

import base64
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from relay.models.delivery import Failed, OutgoingEmail, Sent
from relay.services.delivery import DeliveryEngine, backoff_delay
from relay.services.errors import ErrorClass, ProviderError
from relay.services.fallback_queue import FallbackQueue
from relay.services.message_builder import MessageBuilder
from relay.services.token_guard import TokenGuard


class RecordingSleep:
    def __init__(self):
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)


def _guard(live=True):
    guard = MagicMock()
    guard.ensure_live = AsyncMock(return_value=live)
    guard.access_token = AsyncMock(return_value="ya29.test")
    return guard


def _engine(guard, google, sleep=None):
    builder = MessageBuilder("support@example.com", "Block Royale Support")
    return DeliveryEngine(guard, google, builder, sleep=sleep or RecordingSleep())


def _item():
    return OutgoingEmail(to="a@x.com", subject="Hello", text_body="Hi there")


SERVICE_UNAVAILABLE = ProviderError("Gmail send failed: 503 Backend Error", status=503)


class TestRetryPolicy:
    def test_backoff_sequence(self):
        assert [backoff_delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("attempts", [0, -1])
    async def test_attempt_count_below_one_is_rejected(self, attempts):
        google = MagicMock()
        google.send_raw = AsyncMock()

        with pytest.raises(ValueError):
            await _engine(_guard(), google).send(_item(), max_attempts=attempts)

        google.send_raw.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_explicit_single_attempt(self):
        google = MagicMock()
        google.send_raw = AsyncMock(side_effect=SERVICE_UNAVAILABLE)
        sleep = RecordingSleep()

        outcome = await _engine(_guard(), google, sleep).send(_item(), max_attempts=1)

        assert outcome.attempts == 1
        assert sleep.waits == []

    @pytest.mark.asyncio
    async def test_two_503s_then_success(self):
        """Sent on attempt 3 after two backoff waits."""
        google = MagicMock()
        google.send_raw = AsyncMock(side_effect=[
            SERVICE_UNAVAILABLE,
            SERVICE_UNAVAILABLE,
            {"id": "msg-1", "threadId": "thr-1"},
        ])
        guard = _guard()
        sleep = RecordingSleep()

        outcome = await _engine(guard, google, sleep).send(_item())

        assert isinstance(outcome, Sent)
        assert outcome.attempts == 3
        assert outcome.message_id == "msg-1"
        assert sleep.waits == [1.0, 2.0]
        guard.mark_delivered.assert_called_once()

    @pytest.mark.asyncio
    async def test_permanent_transient_failure_is_bounded(self):
        """Three attempts, waits of 1s then 2s, total at least 3s."""
        google = MagicMock()
        google.send_raw = AsyncMock(side_effect=SERVICE_UNAVAILABLE)
        sleep = RecordingSleep()

        outcome = await _engine(_guard(), google, sleep).send(_item())

        assert isinstance(outcome, Failed)
        assert google.send_raw.await_count == 3
        assert sleep.waits == [1.0, 2.0]
        assert sum(sleep.waits) >= 3
        assert outcome.error_class is ErrorClass.TRANSIENT
        assert outcome.auth_related is False

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self):
        google = MagicMock()
        google.send_raw = AsyncMock(side_effect=[
            ProviderError("network error: reset", code="ECONNRESET"),
            {"id": "msg-2", "threadId": "thr-2"},
        ])

        outcome = await _engine(_guard(), google).send(_item())

        assert outcome.ok
        assert outcome.attempts == 2

    @pytest.mark.asyncio
    async def test_raw_transport_error_is_retried(self):
        google = MagicMock()
        google.send_raw = AsyncMock(side_effect=[httpx.ReadTimeout("slow"), {"id": "m", "threadId": "t"}])

        outcome = await _engine(_guard(), google).send(_item())

        assert outcome.ok

    @pytest.mark.asyncio
    async def test_validation_failure_is_not_retried(self):
        google = MagicMock()
        google.send_raw = AsyncMock(side_effect=ProviderError("Gmail send failed: 400 Invalid To header", status=400))
        sleep = RecordingSleep()

        outcome = await _engine(_guard(), google, sleep).send(_item())

        assert isinstance(outcome, Failed)
        assert google.send_raw.await_count == 1
        assert sleep.waits == []
        assert outcome.error_class is ErrorClass.VALIDATION
        assert outcome.retryable is False


class TestAuthShortCircuit:
    @pytest.mark.asyncio
    async def test_auth_error_on_first_attempt_stops_immediately(self):
        google = MagicMock()
        google.send_raw = AsyncMock(side_effect=ProviderError("Gmail send failed: 401 Invalid Credentials", status=401))
        guard = _guard()
        sleep = RecordingSleep()

        outcome = await _engine(guard, google, sleep).send(_item())

        assert google.send_raw.await_count == 1
        assert sleep.waits == []
        assert outcome.auth_related is True
        assert outcome.retryable is False
        guard.invalidate.assert_called_once()
        guard.mark_delivered.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_live_means_no_network_attempt(self):
        google = MagicMock()
        google.send_raw = AsyncMock()

        guard = _guard(live=False)
        guard.last_failure_class = ErrorClass.AUTH

        outcome = await _engine(guard, google).send(_item())

        assert isinstance(outcome, Failed)
        assert outcome.auth_related is True
        assert outcome.code == "AUTH_REQUIRED"
        google.send_raw.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transient_liveness_failure_is_not_auth_related(self):
        google = MagicMock()
        google.send_raw = AsyncMock()
        guard = _guard(live=False)
        guard.last_failure_class = ErrorClass.TRANSIENT

        outcome = await _engine(guard, google).send(_item())

        assert outcome.auth_related is False
        assert outcome.code == "GMAIL_UNAVAILABLE"
        assert outcome.error_class is ErrorClass.TRANSIENT
        google.send_raw.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_token_endpoint_outage_queues_without_reauth_alert(self):
        """A 503 from the token endpoint is an outage, not a revoked credential."""
        google = MagicMock()
        google.refresh_access_token = AsyncMock(side_effect=ProviderError("Token refresh failed: 503", status=503))
        google.send_raw = AsyncMock()
        notifier = MagicMock()
        guard = TokenGuard(google, "1//refresh", notifier, auth_url="https://relay.example.com/oauth/auth")
        queue = FallbackQueue(notifier, guard)

        outcome = await _engine(guard, google).send(_item())
        queue.enqueue(outcome, "a@x.com", "A", "help")

        alerts = [call.args[0] for call in notifier.notify_later.call_args_list]
        assert len(alerts) == 1
        assert "Email Delivery Failed" in alerts[0]
        assert guard.pending_notification is False

    @pytest.mark.asyncio
    async def test_access_token_failure_is_classified(self):
        google = MagicMock()
        google.send_raw = AsyncMock()
        guard = _guard()
        guard.access_token.side_effect = ProviderError("Token refresh failed", status=400, code="invalid_grant")

        outcome = await _engine(guard, google).send(_item())

        assert outcome.auth_related is True
        google.send_raw.assert_not_awaited()

    def test_auth_related_failure_cannot_be_retryable(self):
        with pytest.raises(ValueError):
            Failed(reason="x", auth_related=True, retryable=True)


class TestContentBuilders:
    @pytest.mark.asyncio
    async def test_send_confirmation_goes_through_send(self):
        google = MagicMock()
        google.send_raw = AsyncMock(return_value={"id": "m", "threadId": "t"})

        outcome = await _engine(_guard(), google).send_confirmation("a@x.com", "A", "help", "en")

        assert outcome.ok
        raw = google.send_raw.await_args[0][1]
        decoded = base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)).decode()
        assert "To: a@x.com" in decoded
        assert "Subject: Block Royale - Thank you for your message!" in decoded

    @pytest.mark.asyncio
    async def test_send_response_uses_response_subject(self):
        google = MagicMock()
        google.send_raw = AsyncMock(return_value={"id": "m", "threadId": "t"})

        await _engine(_guard(), google).send_response("a@x.com", "A", "help", "Try restarting")

        raw = google.send_raw.await_args[0][1]
        decoded = base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)).decode()
        assert "Subject: Re: Your BlockBlast Support Request" in decoded

    @pytest.mark.asyncio
    async def test_unbuildable_message_fails_without_network(self):
        google = MagicMock()
        google.send_raw = AsyncMock()

        outcome = await _engine(_guard(), google).send(OutgoingEmail(to="", subject="x", text_body="y"))

        assert outcome.error_class is ErrorClass.VALIDATION
        google.send_raw.assert_not_awaited()
