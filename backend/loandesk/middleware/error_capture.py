"""Middleware that records failed API requests in error_logs.

Engine errors are turned into responses by the handlers in ``main``; those
handlers park the exception on ``request.state.engine_error`` so the entry
written here carries its real category and field errors. Unhandled
exceptions become a bare 500.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import Request, Response
from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from loandesk.auth_utils import decode_token
from loandesk.services.error_logger import RequestContext, capture

logger = logging.getLogger("loandesk.middleware")

# Auth failures and unknown routes are not recorded
_IGNORED_STATUSES = (401, 403, 405)


def _user_id_from(request: Request) -> Optional[int]:
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    try:
        return int(decode_token(auth_header[7:]).get("sub", 0)) or None
    except (JWTError, ValueError, TypeError):
        return None


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class ErrorCaptureMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        request.state.engine_error = None

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
            await capture(exc, RequestContext(
                method=request.method,
                path=request.url.path,
                status_code=500,
                duration_ms=_elapsed_ms(start),
                user_id=_user_id_from(request),
            ))
            return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

        code = response.status_code
        if code >= 400 and code not in _IGNORED_STATUSES:
            engine_error = request.state.engine_error
            # Unknown routes carry no engine error; only missing entities are kept
            if code != 404 or engine_error is not None:
                await capture(engine_error, RequestContext(
                    method=request.method,
                    path=request.url.path,
                    status_code=code,
                    duration_ms=_elapsed_ms(start),
                    user_id=_user_id_from(request),
                ))
        return response
