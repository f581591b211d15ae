"""
FastAPI Application Entry Point.

HTTP shell around the Cashbook Ledger: creates tables on startup, exposes a
health probe and translates ledger errors into JSON responses.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from starlette.exceptions import HTTPException
from cashbook.app.core.config import settings
from cashbook.app.core.observability import ObservabilityMiddleware, setup_logging
from cashbook.app.db.session import engine, Base
from cashbook.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from cashbook.app.models.cash_account import CashAccount  # noqa: F401
from cashbook.app.models.cash_denomination import CashDenomination  # noqa: F401
from cashbook.app.models.week import Week  # noqa: F401
from cashbook.app.models.person import Person  # noqa: F401
from cashbook.app.models.income import IncomeEntry  # noqa: F401
from cashbook.app.models.outcome import OutcomeEntry  # noqa: F401

setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Disposes the engine pool on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Cash balance consistency engine for incomes and outcomes",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to Cashbook Ledger API",
        "docs": "/docs",
        "health": "/health",
    }
