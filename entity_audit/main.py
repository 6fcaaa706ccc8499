"""
Entity Audit: FastAPI Application.

This is the entry point for the audit query API.
All routers are registered here.
"""

from fastapi import FastAPI

from entity_audit.config import get_settings
from entity_audit.observability import setup_logging
from entity_audit.api.audits import router as audits_router
from entity_audit.api.health import router as health_router
from entity_audit.api.middleware import AuditContextMiddleware

settings = get_settings()

setup_logging(
    level=settings.LOG_LEVEL,
    format=settings.LOG_FORMAT,
    redact=settings.LOG_REDACT,
    cache=settings.ENVIRONMENT == "production",
)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Audit trail and point-in-time reconstruction for SQLAlchemy models",
)

app.add_middleware(AuditContextMiddleware)

# Register routers
app.include_router(health_router)
app.include_router(audits_router)
