"""
Pagination results.

`Page` (from `paginate`) knows the total row count; `SimplePage` (from
`simple_paginate`) only knows whether another page exists, which saves the
COUNT query.

Link URLs are built from the request that was current when the page was built
(see `repokit.core.request_context`): every query param the client sent is kept
and only the page param is replaced.

    GET /posts?status=draft&page=2
    page.next_page_url   # "http://api/posts?status=draft&page=3"

Outside a request there is no base URL and the links are relative (`?page=3`).
"""
import math
from typing import Any
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, computed_field

from repokit.core.request_context import get_request_query, get_request_url


def resolve_page(page: int | None, page_param: str) -> int:
    """Explicit page, else the request's page param, else 1. Anything below 1 becomes 1."""
    if page is None:
        raw = get_request_query().get(page_param)
        try:
            page = int(raw) if raw is not None else 1
        except ValueError:
            page = 1
    return max(int(page), 1)


class SimplePage(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: list[Any]
    per_page: int
    current_page: int
    has_more_pages: bool
    page_param: str = "page"
    path: str | None = Field(default_factory=get_request_url)
    query: dict[str, str] = Field(default_factory=get_request_query)

    def url(self, page: int) -> str:
        query = dict(self.query)
        query[self.page_param] = str(page)
        return f"{self.path or ''}?{urlencode(query)}"

    @computed_field
    @property
    def next_page_url(self) -> str | None:
        if not self.has_more_pages:
            return None
        return self.url(self.current_page + 1)

    @computed_field
    @property
    def prev_page_url(self) -> str | None:
        if self.current_page <= 1:
            return None
        return self.url(self.current_page - 1)


class Page(SimplePage):
    total: int

    @computed_field
    @property
    def last_page(self) -> int:
        return max(math.ceil(self.total / self.per_page), 1)

    @computed_field
    @property
    def first_page_url(self) -> str:
        return self.url(1)

    @computed_field
    @property
    def last_page_url(self) -> str:
        return self.url(self.last_page)
