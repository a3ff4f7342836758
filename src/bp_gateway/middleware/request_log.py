"""Request logging middleware.

Every request gets a request id: the caller's X-Request-ID when it looks sane
(schedulers pass their own run id), otherwise a fresh `req_<12 hex>`. The id
lands in request.state for the ApiResponse envelope, in the response header,
and in one access-log line per request:

    INFO [POST] /api/v1/cron/distributions/standard → 200 (231ms) req_a1b2c3d4e5f6

5xx responses are logged at WARNING so failed runs stand out.
"""

import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("bp.request")

_HEADER = "X-Request-ID"
_ACCEPTED_ID = re.compile(r"^[A-Za-z0-9_.:-]{1,64}$")


def _request_id(request: Request) -> str:
    incoming = request.headers.get(_HEADER)
    if incoming and _ACCEPTED_ID.match(incoming):
        return incoming
    return f"req_{uuid.uuid4().hex[:12]}"


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _request_id(request)
        request.state.request_id = request_id

        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "[%s] %s → %d (%.0fms) %s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request_id,
        )
        response.headers[_HEADER] = request_id
        return response
