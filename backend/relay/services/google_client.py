"""
Thin async client for the Google endpoints the relay uses.

  - OAuth consent URL and token endpoint (code exchange, refresh)
  - userinfo and tokeninfo
  - Gmail users.getProfile (cheap liveness probe) and users.messages.send

Every failure is raised as a ProviderError carrying the HTTP status and the
OAuth / Gmail error code when the body has one, so errors.classify_error()
can sort it. Network failures become ProviderError with a network code.
"""

import logging
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from relay.config import GoogleSettings
from relay.services.errors import ProviderError, from_transport_error

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_TOKEN_INFO_URL = "https://oauth2.googleapis.com/tokeninfo"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GMAIL_API = "https://gmail.googleapis.com/gmail/v1/users/me"

SCOPES = [
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
]

REQUEST_TIMEOUT = 30.0


def _error_from_response(response: httpx.Response, what: str) -> ProviderError:
    """
    Build a ProviderError from a non-2xx response.

    The token endpoint answers {"error": "invalid_grant", "error_description": ...};
    Gmail answers {"error": {"code": 401, "message": ..., "status": "UNAUTHENTICATED"}}.
    """
    code: Optional[str] = None
    message = response.text
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, str):
            code = error
            message = body.get("error_description") or error
        elif isinstance(error, dict):
            message = error.get("message") or message
            details = error.get("errors") or []
            if details and isinstance(details[0], dict):
                code = details[0].get("reason")

    return ProviderError(
        f"{what} failed: {response.status_code} {message}",
        status=response.status_code,
        code=code,
    )


class GoogleClient:
    def __init__(self, settings: GoogleSettings, http: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._http = http or httpx.AsyncClient(timeout=REQUEST_TIMEOUT)

    async def aclose(self) -> None:
        await self._http.aclose()

    # -------------
    # OAuth
    # -------------
    def build_auth_url(self, state: str) -> str:
        """
        Consent URL requesting offline access with forced re-consent, so that
        Google always issues a refresh token.
        """
        params = {
            "client_id": self.settings.client_id,
            "redirect_uri": self.settings.redirect_url,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict:
        return await self._token_request({
            "code": code,
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "redirect_uri": self.settings.redirect_url,
            "grant_type": "authorization_code",
        }, what="Code exchange")

    async def refresh_access_token(self, refresh_token: str) -> dict:
        return await self._token_request({
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }, what="Token refresh")

    async def _token_request(self, data: dict, what: str) -> dict:
        response = await self._request("POST", GOOGLE_TOKEN_URL, what=what, data=data)
        return response.json()

    # -------------
    # Identity
    # -------------
    async def get_userinfo(self, access_token: str) -> dict:
        response = await self._request(
            "GET", GOOGLE_USERINFO_URL, what="Userinfo", access_token=access_token
        )
        return response.json()

    async def get_tokeninfo(self, access_token: str) -> dict:
        response = await self._request(
            "GET",
            GOOGLE_TOKEN_INFO_URL,
            what="Token validation",
            params={"access_token": access_token},
        )
        return response.json()

    # -------------
    # Gmail
    # -------------
    async def get_profile(self, access_token: str) -> dict:
        response = await self._request(
            "GET", f"{GMAIL_API}/profile", what="Gmail profile", access_token=access_token
        )
        return response.json()

    async def send_raw(self, access_token: str, raw: str) -> dict:
        """Send a base64url-encoded RFC 5322 message. Returns {"id", "threadId", ...}."""
        response = await self._request(
            "POST",
            f"{GMAIL_API}/messages/send",
            what="Gmail send",
            access_token=access_token,
            json={"raw": raw},
        )
        return response.json()

    # -------------
    # helpers
    # -------------
    async def _request(
        self,
        method: str,
        url: str,
        *,
        what: str,
        access_token: Optional[str] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = kwargs.pop("headers", {}) or {}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as exc:
            raise from_transport_error(exc) from exc

        if response.status_code not in (200, 202):
            raise _error_from_response(response, what)
        return response
