"""
Token Guard: owns the Gmail credential's liveness.

State:
  live                  last probe (or last send) succeeded
  last_checked_at       time of the last real liveness probe, None before the first
  pending_notification  an escalation was sent for the current failure episode
  last_failure_class    ErrorClass of the last failed probe, None after a success

ensure_live() is cheap inside the grace window: while live and probed less
than five minutes ago it answers True with no network call. Outside the window
it refreshes an access token from the refresh token and calls Gmail
users.getProfile.

Auth-class failures flip live to False and escalate once per episode: a
re-authorization alert goes to the operator chat and the registered hooks are
called. pending_notification suppresses further alerts until live goes back
to True.

Nothing on the public surface raises except access_token(), which the
Delivery Engine calls inside its own error handling.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from relay.models.delivery import utcnow
from relay.services.errors import CredentialMissing, classify_error, ErrorClass
from relay.services.google_client import GoogleClient
from relay.services.notifier import OperatorNotifier, escape_markdown_v2, local_time

logger = logging.getLogger(__name__)

LIVENESS_GRACE = timedelta(minutes=5)

# Refresh the cached access token when less than this is left on it
ACCESS_TOKEN_MARGIN = timedelta(seconds=60)


class TokenGuard:
    def __init__(
        self,
        google: GoogleClient,
        refresh_token: Optional[str],
        notifier: OperatorNotifier,
        auth_url: str,
        notify_timezone: str = "Europe/Kyiv",
        grace: timedelta = LIVENESS_GRACE,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.google = google
        self.notifier = notifier
        self.auth_url = auth_url
        self.notify_timezone = notify_timezone
        self.grace = grace
        self._clock = clock

        self._refresh_token = refresh_token
        self._access_token: Optional[str] = None
        self._access_expires_at: Optional[datetime] = None
        self._reauth_hooks: list[Callable[[], None]] = []

        self.live = False
        self.last_checked_at: Optional[datetime] = None
        self.pending_notification = False
        # ErrorClass of the last failed probe or refresh, None after a success
        self.last_failure_class: Optional[ErrorClass] = None

        # Set by the fallback queue so escalation messages can report the backlog
        self.queue_size: Callable[[], int] = lambda: 0

    @property
    def has_credentials(self) -> bool:
        return bool(self._refresh_token)

    # -------------
    # Access tokens
    # -------------
    async def access_token(self) -> str:
        """
        A usable access token, refreshed when missing or about to expire.

        Raises:
            CredentialMissing: no refresh token is loaded
            ProviderError: the token endpoint rejected the refresh
        """
        if not self._refresh_token:
            raise CredentialMissing()

        now = self._clock()
        if (
            self._access_token
            and self._access_expires_at
            and self._access_expires_at - now > ACCESS_TOKEN_MARGIN
        ):
            return self._access_token

        return await self._refresh_access_token()

    async def _refresh_access_token(self) -> str:
        if not self._refresh_token:
            raise CredentialMissing()

        tokens = await self.google.refresh_access_token(self._refresh_token)
        access_token = tokens.get("access_token")
        if not access_token:
            raise CredentialMissing("No access token received")

        self._access_token = access_token
        self._access_expires_at = self._clock() + timedelta(seconds=int(tokens.get("expires_in", 3600)))
        return access_token

    def _drop_access_token(self) -> None:
        self._access_token = None
        self._access_expires_at = None

    # -------------
    # Liveness
    # -------------
    async def ensure_live(self, force: bool = False) -> bool:
        now = self._clock()
        if (
            not force
            and self.live
            and self.last_checked_at is not None
            and now - self.last_checked_at < self.grace
        ):
            return True

        try:
            access_token = await self.access_token()
            await self.google.get_profile(access_token)
        except Exception as exc:
            logger.error(f"Token validation failed: {exc}")
            self.last_failure_class = classify_error(exc)
            if self.last_failure_class is ErrorClass.AUTH:
                self.live = False
                self._drop_access_token()
                self.escalate(str(exc))
            return False

        self.live = True
        self.last_checked_at = self._clock()
        self.pending_notification = False
        self.last_failure_class = None
        return True

    async def refresh(self) -> bool:
        """Force a new access token, then re-validate with a real probe."""
        logger.info("Attempting to refresh access token...")
        try:
            await self._refresh_access_token()
        except Exception as exc:
            logger.error(f"Token refresh failed: {exc}")
            self.last_failure_class = classify_error(exc)
            if self.last_failure_class is ErrorClass.AUTH:
                self.live = False
                self._drop_access_token()
                self.escalate(str(exc))
            return False

        is_valid = await self.ensure_live(force=True)
        if is_valid:
            logger.info("Token refresh successful")
        return is_valid

    def invalidate(self, reason: str) -> None:
        """Called on an auth-class send failure."""
        self.live = False
        self.last_failure_class = ErrorClass.AUTH
        self._drop_access_token()
        self.escalate(reason)

    def mark_delivered(self) -> None:
        """A send succeeded: the credential is live. last_checked_at is left alone."""
        self.live = True
        self.pending_notification = False
        self.last_failure_class = None

    def use_refresh_token(self, refresh_token: str) -> None:
        """Swap in a newly authorized refresh token. The next ensure_live() probes."""
        self._refresh_token = refresh_token
        self._drop_access_token()
        self.live = False
        self.last_checked_at = None
        self.last_failure_class = None

    # -------------
    # Escalation
    # -------------
    def add_reauth_hook(self, hook: Callable[[], None]) -> None:
        self._reauth_hooks.append(hook)

    def escalate(self, reason: str) -> bool:
        """
        Alert the operator that re-authorization is needed, at most once per
        failure episode. Returns True when an alert was actually sent.
        """
        if self.pending_notification:
            logger.info("Re-authorization already requested, notification suppressed")
            return False

        self.pending_notification = True
        logger.error(f"Gmail authentication failed - refresh token invalid: {reason}")

        self.notifier.notify_later(self._escalation_message())

        for hook in list(self._reauth_hooks):
            try:
                hook()
            except Exception:
                logger.exception("Re-authorization hook failed")
        return True

    def _escalation_message(self) -> str:
        try:
            queued = self.queue_size()
        except Exception:
            logger.exception("Could not read fallback queue size")
            queued = 0

        return (
            "🚨 *Gmail Authentication Failed*\n\n"
            "Gmail refresh token has expired or been revoked\\. "
            "Email sending is currently disabled\\.\n\n"
            "*Action Required:*\n"
            f"• Visit: {escape_markdown_v2(self.auth_url)}\n"
            "• Complete re\\-authorization\n"
            "• Token will be automatically saved to tokens\\.json\n\n"
            f"*Pending emails:* {queued}\n"
            "*Status:* Authentication failure detected\n"
            f"*Time:* {escape_markdown_v2(local_time(self.notify_timezone))}"
        )

    # -------------
    # Diagnostics
    # -------------
    def status(self) -> dict:
        return {
            "valid": self.live,
            "last_check": self.last_checked_at.isoformat() if self.last_checked_at else None,
            "needs_reauth": not self.has_credentials or self.pending_notification,
            "has_credentials": self.has_credentials,
        }
