"""
Runtime configuration.

Settings are read from the environment (a local .env file is loaded first via
python-dotenv). The three core secrets are mandatory: without BOT_TOKEN,
CHAT_ID and WEBHOOK_SECRET the relay has nothing to relay to and refuses to
start. Google settings are optional; when any of them is missing the Gmail
side degrades to "not configured" and only the chat forward runs.

Environment variables
---------------------
BOT_TOKEN                       Telegram bot token (required)
CHAT_ID                         Operator chat id (required)
WEBHOOK_SECRET                  Shared secret for inbound webhooks (required)
GOOGLE_CLIENT_ID                OAuth client id
GOOGLE_CLIENT_SECRET            OAuth client secret
GOOGLE_REDIRECT_URL             OAuth callback URL
GOOGLE_REFRESH_TOKEN            Seed refresh token, used only when tokens.json is absent
GMAIL_SENDER_EMAIL              Sending mailbox; also the only account allowed to re-authorize
GMAIL_SENDER_NAME               Display name on outgoing mail
BASE_URL                        Public base URL, used in operator links
TOKENS_FILE                     Path of the persisted credential record
CORS_ORIGINS                    Extra comma-separated CORS origins (read by main.py)
NOTIFY_TIMEZONE                 Timezone used for dates in operator messages
RETRY_INTERVAL_MINUTES          Fallback queue drain interval
TOKEN_MONITOR_INTERVAL_MINUTES  Token monitor interval
PORT                            Listen port for `python -m relay.main` (default 3000)
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

DEFAULT_REDIRECT_URL = "http://localhost:3000/oauth/callback"
DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_SENDER_NAME = "Block Royale Support"


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing."""


@dataclass(frozen=True)
class GoogleSettings:
    client_id: str
    client_secret: str
    redirect_url: str
    sender_email: str
    sender_name: str = DEFAULT_SENDER_NAME


@dataclass(frozen=True)
class Settings:
    bot_token: str
    chat_id: str
    webhook_secret: str
    google: Optional[GoogleSettings] = None
    seed_refresh_token: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    tokens_file: Path = Path("tokens.json")
    notify_timezone: str = "Europe/Kyiv"
    retry_interval_minutes: int = 60
    token_monitor_interval_minutes: int = 30

    @property
    def auth_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/oauth/auth"

    @property
    def allowed_account(self) -> Optional[str]:
        """The single mailbox permitted to complete re-authorization."""
        return self.google.sender_email if self.google else None


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _load_google_settings() -> Optional[GoogleSettings]:
    client_id = os.getenv("GOOGLE_CLIENT_ID", "").strip()
    client_secret = os.getenv("GOOGLE_CLIENT_SECRET", "").strip()
    sender_email = os.getenv("GMAIL_SENDER_EMAIL", "").strip()

    if not client_id or not client_secret or not sender_email:
        return None

    return GoogleSettings(
        client_id=client_id,
        client_secret=client_secret,
        redirect_url=os.getenv("GOOGLE_REDIRECT_URL", "").strip() or DEFAULT_REDIRECT_URL,
        sender_email=sender_email,
        sender_name=os.getenv("GMAIL_SENDER_NAME", "").strip() or DEFAULT_SENDER_NAME,
    )


def missing_google_settings() -> List[str]:
    """Names of the Google variables that are not set (for the degraded-mode log line)."""
    names = ["GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GMAIL_SENDER_EMAIL"]
    return [name for name in names if not os.getenv(name, "").strip()]


def load_settings() -> Settings:
    """
    Build Settings from the environment.

    Raises:
        ConfigurationError: if BOT_TOKEN, CHAT_ID or WEBHOOK_SECRET is missing,
            or a numeric setting cannot be parsed.
    """
    load_dotenv()

    bot_token = os.getenv("BOT_TOKEN", "").strip()
    chat_id = os.getenv("CHAT_ID", "").strip()
    webhook_secret = os.getenv("WEBHOOK_SECRET", "").strip()

    if not bot_token or not chat_id or not webhook_secret:
        raise ConfigurationError(
            "BOT_TOKEN, CHAT_ID and WEBHOOK_SECRET must be provided in environment variables"
        )

    return Settings(
        bot_token=bot_token,
        chat_id=chat_id,
        webhook_secret=webhook_secret,
        google=_load_google_settings(),
        seed_refresh_token=os.getenv("GOOGLE_REFRESH_TOKEN", "").strip() or None,
        base_url=os.getenv("BASE_URL", "").strip() or DEFAULT_BASE_URL,
        tokens_file=Path(os.getenv("TOKENS_FILE", "").strip() or "tokens.json"),
        notify_timezone=os.getenv("NOTIFY_TIMEZONE", "").strip() or "Europe/Kyiv",
        retry_interval_minutes=_int_env("RETRY_INTERVAL_MINUTES", 60),
        token_monitor_interval_minutes=_int_env("TOKEN_MONITOR_INTERVAL_MINUTES", 30),
    )
