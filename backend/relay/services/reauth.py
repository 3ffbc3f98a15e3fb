"""
Re-authorization flow: turns an OAuth authorization code into a persisted
refresh token.

One ReauthFlow instance handles one callback and walks these states:

    AWAITING_CODE -> EXCHANGING_CODE -> VALIDATING_IDENTITY -> ACCEPTED
                                                             -> REJECTED_WRONG_ACCOUNT
    (any step)    -> FAILED

Only ACCEPTED writes to the credential store. A token issued for any account
other than the allow-listed mailbox is dropped without being persisted.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from relay.services.credential_store import CredentialStore
from relay.services.google_client import GoogleClient
from relay.services.notifier import OperatorNotifier, escape_markdown, local_time
from relay.services.token_guard import TokenGuard

logger = logging.getLogger(__name__)

NO_REFRESH_TOKEN_MESSAGE = (
    "No refresh token received. Make sure to revoke existing access and re-authorize."
)


class ReauthState(str, enum.Enum):
    AWAITING_CODE = "awaiting_code"
    EXCHANGING_CODE = "exchanging_code"
    VALIDATING_IDENTITY = "validating_identity"
    ACCEPTED = "accepted"
    REJECTED_WRONG_ACCOUNT = "rejected_wrong_account"
    FAILED = "failed"


TERMINAL_STATES = frozenset({
    ReauthState.ACCEPTED,
    ReauthState.REJECTED_WRONG_ACCOUNT,
    ReauthState.FAILED,
})


@dataclass(frozen=True)
class ReauthResult:
    state: ReauthState
    email: Optional[str] = None
    message: Optional[str] = None


def same_account(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.strip().lower() == b.strip().lower()


class ReauthFlow:
    def __init__(
        self,
        google: GoogleClient,
        store: CredentialStore,
        guard: Optional[TokenGuard],
        notifier: OperatorNotifier,
        allowed_account: str,
        notify_timezone: str = "Europe/Kyiv",
    ):
        self.google = google
        self.store = store
        self.guard = guard
        self.notifier = notifier
        self.allowed_account = allowed_account
        self.notify_timezone = notify_timezone
        self.state = ReauthState.AWAITING_CODE

    def _move(self, state: ReauthState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"re-authorization already finished ({self.state.value})")
        logger.debug(f"Re-authorization {self.state.value} -> {state.value}")
        self.state = state

    async def run(self, code: str) -> ReauthResult:
        if self.state is not ReauthState.AWAITING_CODE:
            raise RuntimeError("a ReauthFlow handles exactly one callback")

        email: Optional[str] = None
        try:
            self._move(ReauthState.EXCHANGING_CODE)
            tokens = await self.google.exchange_code(code)
            refresh_token = tokens.get("refresh_token")
            if not refresh_token:
                raise ValueError(NO_REFRESH_TOKEN_MESSAGE)

            self._move(ReauthState.VALIDATING_IDENTITY)
            userinfo = await self.google.get_userinfo(tokens.get("access_token", ""))
            email = userinfo.get("email")

            if not same_account(email, self.allowed_account):
                logger.warning(f"Wrong account tried to authorize: {email}")
                self._move(ReauthState.REJECTED_WRONG_ACCOUNT)
                return ReauthResult(self.state, email=email)

            self.store.save(refresh_token, updated_by=f"OAuth2 callback - {email}")
        except Exception as exc:
            logger.error(f"OAuth2 callback error: {exc}")
            self._move(ReauthState.FAILED)
            return ReauthResult(
                self.state,
                email=email,
                message=f"Failed to complete authorization: {exc}",
            )

        self._move(ReauthState.ACCEPTED)
        if self.guard is not None:
            self.guard.use_refresh_token(refresh_token)
        await self.notifier.notify(self._token_updated_message(email), parse_mode="Markdown")
        logger.info(f"Authorization successful for {email}, refresh token saved")
        return ReauthResult(self.state, email=email)

    def _token_updated_message(self, email: str) -> str:
        return (
            "✅ *Gmail Token Updated*\n\n"
            "🔑 Refresh token has been successfully updated\n"
            f"📧 Email: {escape_markdown(email)}\n"
            f"⏰ Time: {local_time(self.notify_timezone)}\n"
            f"💾 Saved to: {escape_markdown(self.store.path.name)}\n\n"
            "The Gmail service will automatically use the new token."
        )
