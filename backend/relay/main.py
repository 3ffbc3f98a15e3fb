"""
Support Relay API
FastAPI application that relays support requests to a Telegram chat and
confirms them to the requester by Gmail.

Endpoints:
  POST   /webhook/support            support request intake (secret, rate limited)
  POST   /webhook/support/response   operator reply email (secret)
  GET    /oauth/auth                 start Gmail re-authorization
  GET    /oauth/callback             finish Gmail re-authorization
  GET    /oauth/test                 test Gmail access with the stored token
  GET    /token/status               credential diagnostics
  GET    /fallback/queue             queued deliveries (secret)
  POST   /fallback/retry             drain the fallback queue now (secret)
  POST   /fallback/report            post the queue listing to the chat (secret)
  DELETE /fallback/queue             clear the fallback queue (secret)
  GET    /health                     liveness
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import List

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from relay.config import load_settings
from relay.context import build_context
from relay.models.delivery import utcnow
from relay.routers import fallback, oauth, support, token

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

load_dotenv()


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    Always includes the local dev servers. Additional origins are read from
    the CORS_ORIGINS environment variable as a comma-separated list, e.g.:
        CORS_ORIGINS=https://blockroyale.app,https://support.blockroyale.app

    Duplicates are removed while preserving order.
    """
    always_included = [
        "http://localhost:3000",
        "http://localhost:8080",
    ]

    extra_origins: List[str] = []
    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    if cors_env:
        extra_origins = [o.strip() for o in cors_env.split(",") if o.strip()]

    seen: set = set()
    origins: List[str] = []
    for origin in always_included + extra_origins:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)

    return origins


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build the RelayContext on startup unless one was already installed
    (tests install their own), start the periodic jobs, and close everything
    on shutdown. A missing core secret aborts startup with ConfigurationError.
    """
    owned = getattr(app.state, "relay", None) is None
    if owned:
        settings = load_settings()
        ctx = build_context(settings)
        app.state.relay = ctx
        ctx.start_background()
        logger.info(f"Support relay started, webhook endpoint: {settings.base_url.rstrip('/')}/webhook/support")

    try:
        yield
    finally:
        if owned:
            await app.state.relay.aclose()
            app.state.relay = None


async def error_body_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Errors are returned as {"error": "..."} rather than FastAPI's {"detail": ...}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed parameters get the same 400 {"error": ...} shape as the handlers' own checks."""
    fields = sorted({str(error["loc"][-1]) for error in exc.errors() if error.get("loc")})
    logger.warning(f"Rejected request to {request.url.path}: invalid {', '.join(fields) or 'body'}")
    return JSONResponse(
        status_code=400,
        content={"error": f"Invalid request parameters: {', '.join(fields) or 'body'}"},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Support Relay API",
        description="Relays support requests to Telegram and confirms them by Gmail",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_origin_regex=r"https://.*\.(pinggy\.link|ngrok\.io|herokuapp\.com)",
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type", "X-Webhook-Secret", "Authorization"],
    )

    app.add_exception_handler(StarletteHTTPException, error_body_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(support.router, prefix="/webhook", tags=["support"])
    app.include_router(oauth.router, prefix="/oauth", tags=["oauth"])
    app.include_router(token.router, prefix="/token", tags=["token"])
    app.include_router(fallback.router, prefix="/fallback", tags=["fallback"])

    @app.get("/")
    async def root():
        return {"message": "Support Relay API", "version": "0.1.0"}

    @app.get("/health")
    async def health():
        return {"status": "OK", "timestamp": utcnow().isoformat()}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("relay.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "3000")))


if __name__ == "__main__":
    run()
