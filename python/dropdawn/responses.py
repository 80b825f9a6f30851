"""JSON envelopes and the exception handlers that produce them.

Plain JSON routes answer with `{"data": ...}`. Failures answer with
`{"error": {"code", "message", "request_id"}}`, where request_id comes from
the request-id middleware when the caller does not pass one.

/api/chat uses the error envelope only for the checks that run before its
SSE stream opens. After that, failures travel as `error` events.
"""

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from dropdawn.errors import ApiError, ApiErrorCode
from dropdawn.logging import get_logger, get_request_id

logger = get_logger(__name__)

# Starlette raises HTTPException for routing failures (unknown path, wrong method)
_HTTP_STATUS_TO_CODE = {
    400: ApiErrorCode.E_INVALID_REQUEST,
    401: ApiErrorCode.E_UNAUTHENTICATED,
    403: ApiErrorCode.E_FORBIDDEN,
    404: ApiErrorCode.E_NOT_FOUND,
    405: ApiErrorCode.E_INVALID_REQUEST,
    422: ApiErrorCode.E_INVALID_REQUEST,
    429: ApiErrorCode.E_RATE_LIMITED,
}


def success_response(data: Any) -> dict[str, Any]:
    """Wrap a route result as `{"data": data}`."""
    return {"data": data}


def error_response(
    code: ApiErrorCode, message: str, request_id: str | None = None
) -> dict[str, Any]:
    """Build the error envelope.

    request_id is omitted from the body when neither the caller nor the
    current request context provides one.
    """
    request_id = request_id or get_request_id()

    error = {"code": code.value, "message": message}
    if request_id:
        error["request_id"] = request_id
    return {"error": error}


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message),
    )


async def http_exception_handler(request: Request, exc: Any) -> JSONResponse:
    """Map Starlette/FastAPI HTTPException onto an ApiErrorCode."""
    code = _HTTP_STATUS_TO_CODE.get(exc.status_code, ApiErrorCode.E_INTERNAL)
    message = str(exc.detail) if exc.detail else "An error occurred"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(code, message),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort 500. The traceback goes to the log, never to the client."""
    logger.exception("unhandled_exception", error_type=type(exc).__name__, path=request.url.path)

    return JSONResponse(
        status_code=500,
        content=error_response(ApiErrorCode.E_INTERNAL, "Internal server error"),
    )
