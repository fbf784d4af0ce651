"""
ITSM Ticket Lifecycle - Main Application
=========================================

Ticket lifecycle and SLA engine for an IT service management backend.

Modules:
- Lifecycle: create, assign, change status, comment, attach, audit trail
- Escalation: SLA breach sweep, triggered by an external timer

Clean Architecture Layers:
- Interfaces: FastAPI controllers, sweep job
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database models and repositories
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

# Configuration and Core
from itsm.config import settings
from itsm.core import ApplicationException

# Infrastructure
from itsm.infrastructure.database import close_database, create_tables, get_engine, init_database

# Module Routers
from itsm.lifecycle.interfaces import escalation_router, lifecycle_router

# Shared
from itsm.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    MetricsMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from itsm.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database
    3. Create database tables (outside production)

    SHUTDOWN:
    1. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting ITSM lifecycle service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    init_database()

    # Production schemas are managed by migrations
    if settings.environment != "production":
        logger.info("Creating database tables")
        await create_tables()

    app.state.settings = settings
    logger.info("ITSM lifecycle service started")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down ITSM lifecycle service")
    await close_database()
    logger.info("ITSM lifecycle service shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="ITSM Ticket Lifecycle API",
    description="""
    ## Ticket Lifecycle & SLA Engine

    **Tickets**
    - `POST /tickets` - Create a ticket (number allocated, SLA due dates snapshotted)
    - `GET /tickets` - List ticket summaries
    - `GET /tickets/{id}` - Ticket summary with customer, assignee and queue names
    - `POST /tickets/{id}/assign` - Assign to a user and/or queue
    - `POST /tickets/{id}/status` - Change status
    - `POST /tickets/{id}/sla` - Attach or detach an SLA policy
    - `POST|GET /tickets/{id}/comments` - Comments
    - `POST|GET /tickets/{id}/attachments` - Attachment metadata
    - `GET /tickets/{id}/history` - Append-only audit trail

    **Escalation**
    - `POST /escalations/sweep` - Escalate tickets past their resolution due date

    Priority escalation order: `P4_Low` → `P3_Medium` → `P2_High` → `P1_Critical`.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(lifecycle_router)
app.include_router(escalation_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint for load balancers and orchestrators.

    Reports `degraded` when the database cannot be reached.
    """
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        database = "connected"
    except (RuntimeError, SQLAlchemyError, OSError) as e:
        logger.warning("Health check database query failed", extra={"error": str(e)})
        database = "unavailable"

    return {
        "status": "healthy" if database == "connected" else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": {"database": database},
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "escalation_interval_seconds": settings.escalation_interval_seconds,
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "itsm.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower()
    )
