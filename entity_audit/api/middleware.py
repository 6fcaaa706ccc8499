"""
Per-request execution context.

Every request runs in its own execution context, so the acting
user of one request can never leak into another one served
concurrently. The user comes from the X-Audit-User header, in the
form "<type>:<id>"; without it, audits made during the request
carry no user.
"""

from collections.abc import Callable

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from entity_audit.observability import get_logger
from entity_audit.services.execution_context import UserRef, execution_context

logger = get_logger(__name__)

USER_HEADER = "X-Audit-User"


class AuditContextMiddleware(BaseHTTPMiddleware):

    async def dispatch(  # type: ignore[override]
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        header = request.headers.get(USER_HEADER)
        user = None
        if header:
            try:
                user = UserRef.parse(header)
            except ValueError as e:
                return JSONResponse(status_code=400, content={"detail": str(e)})

        with execution_context(current_user=user):
            with structlog.contextvars.bound_contextvars(
                audit_user=header or None
            ):
                return await call_next(request)
