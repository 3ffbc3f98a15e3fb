"""
Diagnostics behind GET /token/status.

Public API:
  TokenChecker(guard, google, store).report() -> dict

The report combines:
  token_status     tokeninfo + userinfo + one timed Gmail profile call
  token_age        issue / expiry times read from the access token when it is
                   a JWT (decoded without signature verification, display only)
  longevity_test   five Gmail profile calls 100 ms apart, average latency
  recommendations  human-readable summary of the above
  guard            the Token Guard's own state
  credential       stored record metadata (never the secret)

None of the checks raise; failures are reported inside the dict.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import jwt

from relay.models.delivery import utcnow
from relay.services.credential_store import CredentialStore
from relay.services.google_client import GoogleClient
from relay.services.token_guard import TokenGuard

logger = logging.getLogger(__name__)

LONGEVITY_CALLS = 5
LONGEVITY_PAUSE_SECONDS = 0.1
SLOW_RESPONSE_MS = 2000
GOOD_RESPONSE_MS = 1000


def _epoch_to_iso(value) -> Optional[str]:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc).isoformat()
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def token_age(access_token: str) -> dict:
    """
    Issue and expiry times of a JWT access token. Google access tokens are
    usually opaque, in which case only last_used is known.
    """
    now = utcnow().isoformat()
    try:
        claims = jwt.decode(access_token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return {
            "last_used": now,
            "refresh_token_age": "Unable to determine exact age - refresh token format not readable",
        }

    result = {"last_used": now}
    issued = _epoch_to_iso(claims.get("iat"))
    expires = _epoch_to_iso(claims.get("exp"))
    if issued:
        result["refresh_token_age"] = f"Access token issued: {issued}"
    if expires:
        result["estimated_expiry"] = f"Access token expires: {expires}"
    return result


def recommendations(status: dict, longevity: dict) -> list[str]:
    items = []
    if not status.get("is_valid"):
        items.append("❌ Token is invalid - immediate re-authorization required")
        items.append("🔗 Visit /oauth/auth to get new token")
    else:
        items.append("✅ Token is currently working")

    if longevity["failed_tests"] > 0:
        items.append(
            f"⚠️ {longevity['failed_tests']} out of {longevity['total_tests']} API calls failed"
        )
    if longevity["average_response_time"] > SLOW_RESPONSE_MS:
        items.append("🐌 API response time is slow - possible quota issues")
    if status.get("is_valid") and longevity["successful_tests"] == longevity["total_tests"]:
        items.append("🚀 Token health is excellent")
        items.append("📅 No immediate action needed")
    return items


class TokenChecker:
    def __init__(
        self,
        guard: TokenGuard,
        google: GoogleClient,
        store: Optional[CredentialStore] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.guard = guard
        self.google = google
        self.store = store
        self._sleep = sleep

    async def _timed_profile(self, access_token: str) -> float:
        started = time.perf_counter()
        await self.google.get_profile(access_token)
        return (time.perf_counter() - started) * 1000

    async def check_status(self) -> dict:
        try:
            access_token = await self.guard.access_token()
        except Exception as exc:
            return {"is_valid": False, "error": f"Unable to get access token from refresh token: {exc}"}

        try:
            info = await self.google.get_tokeninfo(access_token)
            user = await self.google.get_userinfo(access_token)
        except Exception as exc:
            return {"is_valid": False, "error": str(exc)}

        try:
            elapsed = await self._timed_profile(access_token)
            quota = {
                "response_time_ms": round(elapsed),
                "estimated_daily_limit": 1_000_000_000,
                "estimated_email_limit": 1000,
                "rate_limit_status": "good" if elapsed < GOOD_RESPONSE_MS else "slow",
            }
        except Exception as exc:
            logger.warning(f"Quota probe failed: {exc}")
            quota = {"error": "Unable to check quota usage"}

        return {
            "is_valid": True,
            "token_info": {
                "scope": info.get("scope", "Unknown"),
                "expires_in": info.get("expires_in", "Unknown"),
                "audience": info.get("aud", "Unknown"),
                "issued_at": _epoch_to_iso(info.get("iat")) or "Unknown",
            },
            "user_info": {
                "email": user.get("email"),
                "name": user.get("name"),
                "verified": user.get("verified_email"),
            },
            "quota_info": quota,
        }

    async def check_age(self) -> dict:
        try:
            access_token = await self.guard.access_token()
        except Exception as exc:
            return {"refresh_token_age": f"Error: {exc}"}
        return token_age(access_token)

    async def check_longevity(self, calls: int = LONGEVITY_CALLS) -> dict:
        results = {
            "total_tests": calls,
            "successful_tests": 0,
            "failed_tests": 0,
            "average_response_time": 0,
            "errors": [],
        }
        times = []
        for _ in range(calls):
            try:
                access_token = await self.guard.access_token()
                times.append(await self._timed_profile(access_token))
                results["successful_tests"] += 1
                await self._sleep(LONGEVITY_PAUSE_SECONDS)
            except Exception as exc:
                results["failed_tests"] += 1
                results["errors"].append(str(exc))

        if times:
            results["average_response_time"] = round(sum(times) / len(times))
        return results

    async def report(self) -> dict:
        status = await self.check_status()
        age = await self.check_age()
        longevity = await self.check_longevity()
        return {
            "timestamp": utcnow().isoformat(),
            "configured": True,
            "token_status": status,
            "token_age": age,
            "longevity_test": longevity,
            "recommendations": recommendations(status, longevity),
            "guard": self.guard.status(),
            "credential": self.store.metadata() if self.store else None,
        }


def not_configured_report(missing: list[str]) -> dict:
    """Report served when the Gmail side is not configured at all."""
    return {
        "timestamp": utcnow().isoformat(),
        "configured": False,
        "missing": missing,
        "recommendations": [
            "⚙️ Gmail is not configured - set " + ", ".join(missing) + " and restart",
        ],
    }
