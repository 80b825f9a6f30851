"""Authentication middleware for FastAPI.

Provides:
- AuthMiddleware: resolves an optional bearer token into a Viewer
- get_viewer: dependency for routes that require a signed-in user
- get_optional_viewer: dependency for routes that also serve anonymous sessions
"""

from dataclasses import dataclass
from uuid import UUID

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from dropdawn.auth.verifier import TokenVerifier
from dropdawn.errors import ApiError, ApiErrorCode
from dropdawn.logging import get_logger
from dropdawn.responses import error_response

logger = get_logger(__name__)

AUTHORIZATION_HEADER = "authorization"

# Paths that never look at credentials
PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


@dataclass
class Viewer:
    """Authenticated viewer identity.

    Attributes:
        user_id: The viewer's user ID (from JWT sub claim).
        email: Email claim, when the token carries one.
    """

    user_id: UUID
    email: str | None = None


class AuthMiddleware(BaseHTTPMiddleware):
    """Attach the viewer identity to request state.

    Order of checks:
    1. Skip if public path
    2. No Authorization header: viewer is None (anonymous temporary chat)
    3. Malformed header or invalid token: 401
    4. Attach Viewer to request state

    Whether an anonymous request is acceptable is decided by the route.
    """

    def __init__(self, app: ASGIApp, verifier: TokenVerifier):
        super().__init__(app)
        self.verifier = verifier

    async def dispatch(self, request: Request, call_next) -> JSONResponse:
        request.state.viewer = None

        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        auth_header = request.headers.get(AUTHORIZATION_HEADER)
        if not auth_header:
            return await call_next(request)

        if not auth_header.lower().startswith("bearer ") or not auth_header[7:].strip():
            logger.warning("auth_failure", reason="invalid_header_format")
            return self._error_json_response(
                ApiErrorCode.E_UNAUTHENTICATED, "Invalid authorization header format", 401
            )

        token = auth_header[7:].strip()
        try:
            payload = self.verifier.verify(token)
        except ApiError as e:
            return self._error_json_response(e.code, e.message, e.status_code)

        request.state.viewer = Viewer(user_id=UUID(payload["sub"]), email=payload.get("email"))
        return await call_next(request)

    def _error_json_response(
        self, code: ApiErrorCode, message: str, status_code: int
    ) -> JSONResponse:
        return JSONResponse(status_code=status_code, content=error_response(code, message))


def get_viewer(request: Request) -> Viewer:
    """FastAPI dependency to get the authenticated viewer.

    Raises:
        ApiError(E_UNAUTHENTICATED): If the request carried no valid token.
    """
    viewer = getattr(request.state, "viewer", None)
    if viewer is None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    return viewer


def get_optional_viewer(request: Request) -> Viewer | None:
    """FastAPI dependency returning the viewer, or None for anonymous requests."""
    return getattr(request.state, "viewer", None)
