"""
Unit tests for webhook secret authentication.
Tests header extraction and constant-time secret verification.
"""

from unittest.mock import Mock

import pytest
from fastapi import HTTPException

from relay.auth import UNAUTHORIZED_MESSAGE, provided_secret, verify_webhook_secret


def _ctx(secret="s3cret"):
    return Mock(settings=Mock(webhook_secret=secret))


class TestProvidedSecret:
    """Test which header the secret is taken from."""

    def test_webhook_header_wins(self):
        assert provided_secret("from-header", "Bearer from-auth") == "from-header"

    def test_bearer_prefix_is_stripped(self):
        assert provided_secret(None, "Bearer s3cret") == "s3cret"

    def test_raw_authorization_value(self):
        assert provided_secret(None, "s3cret") == "s3cret"

    def test_nothing_provided(self):
        assert provided_secret(None, None) is None


class TestVerifyWebhookSecret:
    """Test the FastAPI dependency directly."""

    @pytest.mark.asyncio
    async def test_matching_secret_passes(self):
        """A matching X-Webhook-Secret should be accepted."""
        assert await verify_webhook_secret("s3cret", None, _ctx()) is None

    @pytest.mark.asyncio
    async def test_matching_bearer_passes(self):
        assert await verify_webhook_secret(None, "Bearer s3cret", _ctx()) is None

    @pytest.mark.asyncio
    async def test_wrong_secret_raises_401(self):
        """A mismatched secret should raise 401 with the fixed message."""
        with pytest.raises(HTTPException) as exc_info:
            await verify_webhook_secret("guess", None, _ctx())

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == UNAUTHORIZED_MESSAGE

    @pytest.mark.asyncio
    async def test_missing_secret_raises_401(self):
        with pytest.raises(HTTPException) as exc_info:
            await verify_webhook_secret(None, None, _ctx())

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_non_ascii_secret_does_not_crash(self):
        with pytest.raises(HTTPException):
            await verify_webhook_secret("пароль", None, _ctx())
