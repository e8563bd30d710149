"""
FastAPI application factory and entry point.

create_app() builds and configures the application:
  1. Lifespan manager: logging setup, database handle, payment gateway,
     and their cleanup on shutdown
  2. Middleware: request ids and CORS
  3. Exception handlers: maps domain errors to HTTP responses
  4. Router registration: transactions and account read endpoints

Running locally:
    uvicorn ledger_core.main:app --reload

Tests build their own app with create_app() and place a Database and a
payment gateway on app.state before the lifespan runs; the lifespan keeps
whatever is already there.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ledger_core.config import settings
from ledger_core.database import Database
from ledger_core.exceptions import register_exception_handlers
from ledger_core.logging_config import setup_logging
from ledger_core.middleware import RequestIDMiddleware
from ledger_core.routers import accounts, transactions
from ledger_core.services.gateway import build_payment_gateway

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
      Configures JSON logging, opens the database (creating missing tables
      when CREATE_TABLES_ON_STARTUP is set; production schemas should be
      managed by migrations instead) and builds the payment gateway.

    Shutdown:
      Closes the gateway and disposes of the database engine. Only what the
      lifespan itself created is closed.
    """
    # --- Startup ---
    setup_logging(settings.LOG_LEVEL)

    owns_database = getattr(app.state, "database", None) is None
    if owns_database:
        app.state.database = Database.from_url(
            settings.DATABASE_URL,
            echo=settings.DEBUG,
            isolation_level=settings.DB_ISOLATION_LEVEL,
        )
        if settings.CREATE_TABLES_ON_STARTUP:
            await app.state.database.create_all()

    owns_gateway = getattr(app.state, "payment_gateway", None) is None
    if owns_gateway:
        app.state.payment_gateway = build_payment_gateway(settings)

    logger.info(
        "Ledger service started",
        extra={"gateway_mode": settings.PAYMENT_GATEWAY_MODE},
    )
    yield
    # --- Shutdown ---
    if owns_gateway:
        await app.state.payment_gateway.aclose()
    if owns_database:
        await app.state.database.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Transaction engine: deposits, withdrawals, bill pay and transfers",
        lifespan=lifespan,
    )

    # -----------------------------------------------------------------------
    # Middleware
    # -----------------------------------------------------------------------

    app.add_middleware(RequestIDMiddleware)

    # CORS: lock this down to the real frontend origin(s) in production.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    register_exception_handlers(app)

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------

    app.include_router(transactions.router, prefix="/transactions", tags=["Transactions"])
    app.include_router(accounts.router, prefix="/accounts", tags=["Accounts"])

    # -----------------------------------------------------------------------
    # Health check
    # -----------------------------------------------------------------------

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Liveness probe for deployment orchestrators."""
        return {"status": "ok", "version": settings.APP_VERSION}

    return app


app = create_app()
