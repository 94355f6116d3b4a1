# backend/bookrail/main.py
"""
Bookrail API application.

Booking lifecycle and dual-rail settlement: the platform fee is charged to the
client's card, the provider amount is pushed to the provider's bank account.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .core.config import is_running_tests, settings
from .core.exceptions import DomainException
from .database import Base, engine
from .middleware.prometheus_middleware import PrometheusMiddleware
from .routes import bookings, metrics, payments

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

API_TITLE = "Bookrail API"
API_VERSION = "1.0.0"


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info("Bookrail API starting up...")
    logger.info(f"Environment: {settings.environment}")
    if settings.rails_fake:
        logger.warning("Payment rails are running in fake mode; no money will move")

    if not settings.is_production and not is_running_tests():
        import bookrail.models  # noqa: F401

        Base.metadata.create_all(bind=engine)

    yield

    logger.info("Bookrail API shutting down...")


async def _domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Fallback for domain errors that escape a route without being converted."""
    http_exc = exc.to_http_exception()
    return JSONResponse(
        status_code=http_exc.status_code,
        content={"detail": http_exc.detail},
        headers=getattr(http_exc, "headers", None),
    )


def create_app() -> FastAPI:
    application = FastAPI(
        title=API_TITLE,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
    )
    application.add_middleware(PrometheusMiddleware)
    application.add_exception_handler(DomainException, _domain_exception_handler)

    application.include_router(bookings.router)
    application.include_router(payments.router)
    application.include_router(metrics.router)

    @application.get("/health", include_in_schema=False)
    def health() -> Dict[str, str]:
        return {"status": "healthy", "environment": settings.environment}

    return application


app = create_app()
