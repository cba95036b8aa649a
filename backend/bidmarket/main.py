import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bidmarket.clients.marketplace import MarketplaceClient
from bidmarket.config import settings
from bidmarket.middleware.exceptions import register_exception_handlers
from bidmarket.routers import health, watchlist, wizard

logger = logging.getLogger("bidmarket")


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every marketplace request at INFO
    logging.getLogger("httpx").setLevel(logging.INFO if settings.debug else logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open one pooled marketplace connection for the process lifetime."""
    if getattr(app.state, "marketplace", None) is None:
        app.state.marketplace = MarketplaceClient(
            httpx.AsyncClient(
                base_url=settings.marketplace_api_url,
                timeout=settings.request_timeout_seconds,
            )
        )
        owns_client = True
    else:
        owns_client = False
    logger.info(f"Marketplace API: {settings.marketplace_api_url}")
    try:
        yield
    finally:
        if owns_client:
            await app.state.marketplace.aclose()
            app.state.marketplace = None


def create_app(marketplace: MarketplaceClient | None = None) -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="bidmarket",
        description="Auction marketplace listing wizard and watchlist API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.marketplace = marketplace

    # ── Exception Handlers ───────────────────────────────────
    register_exception_handlers(app)

    # ── Middleware ───────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routers ──────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(wizard.router, prefix="/api/listings/wizard", tags=["wizard"])
    app.include_router(watchlist.router, prefix="/api/watchlist", tags=["watchlist"])

    return app


app = create_app()
