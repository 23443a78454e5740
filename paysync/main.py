"""PaySync — FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from paysync.api.v1.billing import router as billing_router
from paysync.api.v1.webhooks import router as webhooks_router
from paysync.config import settings
from paysync.database import Database, get_database

# Configure root logger so all paysync.* loggers output to stderr.
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the connection pool at startup and dispose it at shutdown."""
    database = Database.from_settings(settings)
    app.state.database = database
    try:
        yield
    finally:
        await database.close()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Mirrors Stripe products, prices, customers and subscriptions into PostgreSQL.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(billing_router)
app.include_router(webhooks_router)


@app.get("/health", tags=["health"])
async def health_check(db: Database = Depends(get_database)) -> dict[str, str]:
    """Health check endpoint, including a database round-trip."""
    healthy = await db.health_check()
    return {
        "status": "healthy" if healthy else "degraded",
        "database": "ok" if healthy else "unavailable",
        "service": settings.app_name,
    }


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run("paysync.main:app", host=settings.host, port=settings.port)
