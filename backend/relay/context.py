"""
Process-wide collaborators, built once at startup.

RelayContext holds everything the routers need. It is created in the FastAPI
lifespan and stored on app.state.relay; handlers receive it through the
get_context dependency. When the Google settings are incomplete the Gmail
side (google, guard, engine, checker) is None and only the chat forward runs.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from fastapi import HTTPException, Request

from relay.config import Settings, missing_google_settings
from relay.services.credential_store import CredentialStore
from relay.services.delivery import DeliveryEngine
from relay.services.fallback_queue import FallbackQueue
from relay.services.google_client import GoogleClient
from relay.services.message_builder import MessageBuilder
from relay.services.notifier import OperatorNotifier, TelegramBot
from relay.services.scheduler import PeriodicTask, queue_drainer, token_monitor
from relay.services.support import SupportService
from relay.services.token_checker import TokenChecker
from relay.services.token_guard import TokenGuard

logger = logging.getLogger(__name__)


@dataclass
class RelayContext:
    settings: Settings
    bot: TelegramBot
    notifier: OperatorNotifier
    store: CredentialStore
    queue: FallbackQueue
    support: SupportService
    google: Optional[GoogleClient] = None
    guard: Optional[TokenGuard] = None
    engine: Optional[DeliveryEngine] = None
    checker: Optional[TokenChecker] = None
    tasks: list[PeriodicTask] = field(default_factory=list)

    @property
    def gmail_configured(self) -> bool:
        return self.engine is not None

    def start_background(self) -> None:
        if self.guard is None or self.engine is None:
            return
        self.tasks = [
            token_monitor(self.guard, self.settings.token_monitor_interval_minutes),
            queue_drainer(self.queue, self.engine, self.settings.retry_interval_minutes),
        ]
        for task in self.tasks:
            task.start()

    async def aclose(self) -> None:
        for task in self.tasks:
            await task.stop()
        await self.notifier.wait_idle()
        await self.bot.aclose()
        if self.google is not None:
            await self.google.aclose()


def _initial_refresh_token(store: CredentialStore, settings: Settings) -> Optional[str]:
    token = store.load_refresh_token()
    if token:
        return token
    if settings.seed_refresh_token:
        logger.info("Using GOOGLE_REFRESH_TOKEN from environment as the initial refresh token")
        return settings.seed_refresh_token
    return None


def build_context(settings: Settings) -> RelayContext:
    bot = TelegramBot(settings.bot_token)
    notifier = OperatorNotifier(bot, settings.chat_id)
    store = CredentialStore(settings.tokens_file)

    google = guard = engine = checker = None
    if settings.google is None:
        logger.warning(
            "Gmail not configured - set " + ", ".join(missing_google_settings())
            + " to enable confirmation emails"
        )
    else:
        google = GoogleClient(settings.google)
        guard = TokenGuard(
            google,
            _initial_refresh_token(store, settings),
            notifier,
            auth_url=settings.auth_url,
            notify_timezone=settings.notify_timezone,
        )
        builder = MessageBuilder(settings.google.sender_email, settings.google.sender_name)
        engine = DeliveryEngine(guard, google, builder)
        checker = TokenChecker(guard, google, store)
        if not guard.has_credentials:
            logger.warning(f"Gmail credentials missing - authorize via {settings.auth_url}")

    queue = FallbackQueue(notifier, guard, notify_timezone=settings.notify_timezone)
    support = SupportService(bot, settings.chat_id, engine, queue, settings.notify_timezone)

    return RelayContext(
        settings=settings,
        bot=bot,
        notifier=notifier,
        store=store,
        queue=queue,
        support=support,
        google=google,
        guard=guard,
        engine=engine,
        checker=checker,
    )


def get_context(request: Request) -> RelayContext:
    ctx = getattr(request.app.state, "relay", None)
    if ctx is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return ctx


def require_gmail(request: Request) -> RelayContext:
    """Like get_context, but 503 when the Gmail side is not configured."""
    ctx = get_context(request)
    if not ctx.gmail_configured:
        raise HTTPException(status_code=503, detail="Gmail is not configured")
    return ctx
