# src/repokit/core/request_context.py
"""
Ambient request data for code that runs below the HTTP layer.

Repositories never receive the request object. Pagination still needs the
current page number and the query string (so `next_page_url` keeps any filters
the client sent), so `RequestContextMiddleware` stores both here in contextvars
for the duration of each request:

    set_request_context(url="http://api/posts", query={"status": "draft", "page": "2"})
    get_request_query()    # {"status": "draft", "page": "2"}
    get_request_url()      # "http://api/posts"

Outside a request (CLI scripts, tests, background jobs) the query is `{}` and the
url is `None`.
"""

import contextvars
from collections.abc import Mapping

_request_url_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_url", default=None)
_request_query_ctx: contextvars.ContextVar[dict[str, str] | None] = contextvars.ContextVar(
    "request_query", default=None
)


def set_request_context(url: str | None, query: Mapping[str, str] | None = None):
    """
    Store url and query params for the current context.

    Returns:
        A token pair to pass to `reset_request_context`.
    """
    return _request_url_ctx.set(url), _request_query_ctx.set(dict(query or {}))


def reset_request_context(tokens) -> None:
    url_token, query_token = tokens
    _request_url_ctx.reset(url_token)
    _request_query_ctx.reset(query_token)


def get_request_url() -> str | None:
    """Base URL (scheme, host, path) of the current request, without the query string."""
    return _request_url_ctx.get()


def get_request_query() -> dict[str, str]:
    """Copy of the current request's query params; `{}` outside a request."""
    return dict(_request_query_ctx.get() or {})
