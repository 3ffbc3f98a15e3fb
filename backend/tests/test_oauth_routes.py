"""
HTTP tests for /oauth/auth, /oauth/callback, /oauth/test and /token/status.

Google is replaced by mocks; the credential store writes under tmp_path.
"""

from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from relay.config import GoogleSettings, Settings
from relay.context import RelayContext
from relay.main import app
from relay.services.credential_store import CredentialStore
from relay.services.errors import ProviderError
from relay.services.fallback_queue import FallbackQueue
from relay.services.google_client import GoogleClient

ALLOWED = "support@example.com"


def _settings(tmp_path, google=True):
    return Settings(
        bot_token="123:abc",
        chat_id="999",
        webhook_secret="test-webhook-secret",
        google=GoogleSettings(
            client_id="client-id",
            client_secret="client-secret",
            redirect_url="http://localhost:3000/oauth/callback",
            sender_email=ALLOWED,
        ) if google else None,
        tokens_file=tmp_path / "tokens.json",
    )


def _google(email=ALLOWED):
    google = MagicMock()
    google.exchange_code = AsyncMock(return_value={"access_token": "ya29.fresh", "refresh_token": "1//new"})
    google.get_userinfo = AsyncMock(return_value={"email": email})
    google.refresh_access_token = AsyncMock(return_value={"access_token": "ya29.fresh", "expires_in": 3599})
    google.get_profile = AsyncMock(return_value={"emailAddress": ALLOWED})
    return google


def _context(tmp_path, google=None, configured=True):
    settings = _settings(tmp_path, google=configured)
    notifier = MagicMock()
    notifier.notify = AsyncMock(return_value=True)
    return RelayContext(
        settings=settings,
        bot=MagicMock(),
        notifier=notifier,
        store=CredentialStore(settings.tokens_file),
        queue=FallbackQueue(notifier),
        support=MagicMock(),
        google=google if configured else None,
        guard=MagicMock() if configured else None,
        engine=MagicMock() if configured else None,
    )


@pytest.fixture
def install():
    def _install(ctx):
        app.state.relay = ctx
        return TestClient(app)

    yield _install
    app.state.relay = None


# ---------------------------------------------------------------------------
# /oauth/auth
# ---------------------------------------------------------------------------

class TestStartAuthorization:
    def test_redirects_to_consent_screen(self, tmp_path, install):
        ctx = _context(tmp_path)
        ctx.google = GoogleClient(ctx.settings.google)
        client = install(ctx)

        response = client.get("/oauth/auth", follow_redirects=False)

        assert response.status_code == 307
        location = urlparse(response.headers["location"])
        params = parse_qs(location.query)
        assert location.netloc == "accounts.google.com"
        assert params["access_type"] == ["offline"]
        assert params["prompt"] == ["consent"]
        assert params["client_id"] == ["client-id"]
        assert params["state"][0]

    def test_unconfigured_gmail_returns_503(self, tmp_path, install):
        client = install(_context(tmp_path, configured=False))

        response = client.get("/oauth/auth", follow_redirects=False)

        assert response.status_code == 503
        assert response.json() == {"error": "Gmail is not configured"}


# ---------------------------------------------------------------------------
# /oauth/callback
# ---------------------------------------------------------------------------

class TestCallback:
    def test_allowed_account_is_saved(self, tmp_path, install):
        ctx = _context(tmp_path, _google())
        client = install(ctx)

        response = client.get("/oauth/callback", params={"code": "auth-code"})

        assert response.status_code == 200
        assert "Authentication Successful!" in response.text
        assert ALLOWED in response.text
        assert ctx.store.load_refresh_token() == "1//new"
        ctx.guard.use_refresh_token.assert_called_once_with("1//new")

    def test_wrong_account_page(self, tmp_path, install):
        ctx = _context(tmp_path, _google(email="intruder@example.com"))
        client = install(ctx)

        response = client.get("/oauth/callback", params={"code": "auth-code"})

        assert "Wrong Account" in response.text
        assert "intruder@example.com" in response.text
        assert ALLOWED in response.text
        assert ctx.store.load() is None

    def test_denied_consent(self, tmp_path, install):
        ctx = _context(tmp_path, _google())
        client = install(ctx)

        response = client.get("/oauth/callback", params={"error": "access_denied"})

        assert "Authorization was cancelled or denied" in response.text
        ctx.google.exchange_code.assert_not_awaited()

    def test_missing_code(self, tmp_path, install):
        client = install(_context(tmp_path, _google()))

        response = client.get("/oauth/callback")

        assert "No Authorization Code" in response.text

    def test_exchange_failure_renders_error_page(self, tmp_path, install):
        google = _google()
        google.exchange_code.side_effect = ProviderError("Code exchange failed: 400", status=400, code="invalid_grant")
        client = install(_context(tmp_path, google))

        response = client.get("/oauth/callback", params={"code": "stale"})

        assert "Authentication Failed" in response.text
        assert "Failed to complete authorization" in response.text


# ---------------------------------------------------------------------------
# /oauth/test
# ---------------------------------------------------------------------------

class TestGmailAccessCheck:
    def test_no_stored_token(self, tmp_path, install):
        client = install(_context(tmp_path, _google()))

        response = client.get("/oauth/test")

        assert response.status_code == 400
        assert response.json()["error"].startswith("No refresh token found in tokens.json")

    def test_working_access(self, tmp_path, install):
        ctx = _context(tmp_path, _google())
        ctx.store.save("1//stored")
        client = install(ctx)

        response = client.get("/oauth/test")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["message"] == "Gmail API access working!"
        ctx.google.refresh_access_token.assert_awaited_once_with("1//stored")

    def test_revoked_token(self, tmp_path, install):
        google = _google()
        google.refresh_access_token.side_effect = ProviderError("invalid_grant", status=400, code="invalid_grant")
        ctx = _context(tmp_path, google)
        ctx.store.save("1//revoked")
        client = install(ctx)

        response = client.get("/oauth/test")

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["message"] == "Gmail API access failed"

    def test_unexpected_error(self, tmp_path, install):
        google = _google()
        google.get_profile.side_effect = RuntimeError("boom")
        ctx = _context(tmp_path, google)
        ctx.store.save("1//stored")
        client = install(ctx)

        response = client.get("/oauth/test")

        assert response.status_code == 500
        assert response.json() == {"error": "Test failed", "details": "boom"}


# ---------------------------------------------------------------------------
# /token/status
# ---------------------------------------------------------------------------

class TestTokenStatus:
    def test_not_configured(self, tmp_path, install, monkeypatch):
        for name in ("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REDIRECT_URL", "GMAIL_SENDER_EMAIL"):
            monkeypatch.delenv(name, raising=False)
        client = install(_context(tmp_path, configured=False))

        response = client.get("/token/status")

        body = response.json()
        assert body["configured"] is False
        assert "GOOGLE_CLIENT_ID" in body["missing"]

    def test_report_includes_pending_emails(self, tmp_path, install):
        ctx = _context(tmp_path, _google())
        ctx.checker = MagicMock()
        ctx.checker.report = AsyncMock(return_value={"configured": True})
        client = install(ctx)

        response = client.get("/token/status")

        assert response.json() == {"configured": True, "pending_emails": 0}
