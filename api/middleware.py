"""Request-scoped middleware for API requests."""

from uuid import UUID, uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import bind_request_id, error_response, ErrorCodes, release_request_id
from utils.tenant_context import set_current_tenant_id, clear_current_tenant_id


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a request ID, echoed in the X-Request-ID header and the envelope meta."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        token = bind_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            release_request_id(token)
        response.headers["X-Request-ID"] = request_id
        return response


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Binds the tenant resolved by the upstream gateway.

    The gateway authenticates the caller and forwards the tenant in the
    X-Tenant-ID header. This middleware:
    1. Rejects requests without a valid tenant id (401)
    2. Sets tenant_id in request.state and tenant context
    3. Clears context after request completes

    Public paths bypass tenant binding entirely.
    """

    HEADER = "X-Tenant-ID"

    PUBLIC_PATHS = [
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def _is_public_path(self, path: str) -> bool:
        """Check if path is in public paths list."""
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        if self._is_public_path(request.url.path):
            return await call_next(request)

        raw = request.headers.get(self.HEADER)
        try:
            tenant_id = UUID(raw) if raw else None
        except ValueError:
            tenant_id = None

        if tenant_id is None:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.TENANT_REQUIRED,
                    f"A valid {self.HEADER} header is required",
                ).model_dump(mode="json"),
            )

        set_current_tenant_id(tenant_id)
        request.state.tenant_id = tenant_id

        try:
            return await call_next(request)
        finally:
            # Always clear context
            clear_current_tenant_id()
