# src/repokit/core/logging/middleware.py
"""
Request context middleware for FastAPI / Starlette.

For each incoming request it:
1. takes the `X-Request-ID` header, or generates a UUID4 when absent, and stores
   it with `set_request_id()` so `RequestIdFilter` attaches it to log records;
2. stores the request's base URL and query params with `set_request_context()`
   so repositories can build pagination links without seeing the request;
3. echoes `X-Request-ID` on the response;
4. resets both contextvars in a `finally`, also when downstream raises.

Register it early, before routers that may emit logs:

    app.add_middleware(RequestContextMiddleware)
"""

import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from repokit.core.request_context import reset_request_context, set_request_context
from .filters import reset_request_id, set_request_id

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Sets request id, request URL and query params for the duration of a request.
    """

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        base_url = str(request.url.replace(query=""))

        id_token = set_request_id(rid)
        context_tokens = set_request_context(base_url, dict(request.query_params))
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = rid
            return response
        finally:
            reset_request_context(context_tokens)
            reset_request_id(id_token)
