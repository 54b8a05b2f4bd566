"""
FastAPI application entry point.
Configures routes, middleware, and lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wedfund.config import settings
from wedfund.database import init_db, close_db
from wedfund.logging_config import configure_logging
from wedfund.redis import RedisClient

from wedfund.api.payments import router as payments_router
from wedfund.api.payment_pages import router as payment_pages_router
from wedfund.api.public import router as public_router
from wedfund.api.admin.guests import router as admin_guests_router
from wedfund.api.admin.payments import router as admin_payments_router
from wedfund.api.admin.events import router as admin_events_router
from wedfund.api.admin.content import router as admin_content_router
from wedfund.api.admin.dashboard import router as admin_dashboard_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifecycle manager."""
    configure_logging()
    logger.info(f"Starting up {settings.app_name} ({settings.app_env})...")

    try:
        await init_db()
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    try:
        RedisClient.get_client()
    except Exception as e:
        logger.warning(f"Failed to initialize Redis: {e}")

    yield

    await RedisClient.close()
    await close_db()
    logger.info("Shutting down...")


app = FastAPI(
    title="Wedding Fund",
    description="Wedding fundraising site backend with Pesapal payments",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error"},
    )


origins = [settings.site_url]
if settings.is_development:
    origins.append("*")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "env": settings.app_env,
    }


# Payment proxy (JSON) and redirect pages (HTML)
app.include_router(payments_router, prefix="/api/payments", tags=["payments"])
app.include_router(payment_pages_router, prefix="/payments", tags=["payments"])

# Public site
app.include_router(public_router, prefix="/api", tags=["public"])

# Admin
for admin_router in (
    admin_guests_router,
    admin_payments_router,
    admin_events_router,
    admin_content_router,
    admin_dashboard_router,
):
    app.include_router(admin_router, prefix="/admin/api", tags=["admin"])
