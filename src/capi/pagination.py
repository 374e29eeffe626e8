"""Paginated list envelope and helpers for walking list endpoints.

List endpoints return::

    {
        "pagination": {
            "total_results": 3,
            "total_pages": 2,
            "first": {"href": "..."},
            "last": {"href": "..."},
            "next": {"href": "..."},
            "previous": null
        },
        "resources": [...]
    }

The absence of ``next`` is the only end-of-list signal.
"""

import logging
from typing import (
    Any,
    AsyncIterator,
    Generic,
    List,
    Optional,
    Type,
    TypeVar,
)

from pydantic import BaseModel, ConfigDict, Field

from .query import QueryParams
from .transport import Query, RawResponse, Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Link(BaseModel):
    """Hyperlink object used throughout the API."""

    model_config = ConfigDict(frozen=True)

    href: str = Field(..., description="Absolute URL of the linked resource")
    method: Optional[str] = Field(
        default=None, description="HTTP method, present on action links"
    )


class Pagination(BaseModel):
    """Pagination block of a list response."""

    model_config = ConfigDict(frozen=True)

    total_results: int = Field(..., ge=0)
    total_pages: int = Field(..., ge=0)
    first: Optional[Link] = None
    last: Optional[Link] = None
    next: Optional[Link] = None
    previous: Optional[Link] = None


class ListResponse(BaseModel, Generic[T]):
    """One page of a list endpoint."""

    model_config = ConfigDict(frozen=True)

    pagination: Pagination
    resources: List[T] = Field(default_factory=list)

    @property
    def next_url(self) -> Optional[str]:
        return self.pagination.next.href if self.pagination.next else None

    @property
    def has_next(self) -> bool:
        return self.pagination.next is not None


def decode_list(response: RawResponse, item_type: Type[T]) -> ListResponse[T]:
    """Decode a list response body.

    Raises:
        DecodeError: If the body is not a list envelope of ``item_type``
    """
    return response.decode(ListResponse[item_type])  # type: ignore[valid-type]


async def iter_pages(
    transport: Transport,
    path: str,
    item_type: Type[T],
    params: Query = None,
    max_pages: Optional[int] = None,
) -> AsyncIterator[ListResponse[T]]:
    """Yield pages of a list endpoint, following ``next`` links.

    Args:
        transport: Transport used for every page request
        path: List endpoint path, e.g. /v3/apps
        item_type: Model each resource is decoded into
        params: Query for the first page; later pages use the ``next`` href
        max_pages: Stop after this many pages
    """
    if max_pages is not None and max_pages < 1:
        raise ValueError("max_pages must be positive")

    fetched = 0
    response = await transport.get(path, params)
    while True:
        page = decode_list(response, item_type)
        fetched += 1
        yield page

        if not page.has_next:
            return
        if max_pages is not None and fetched >= max_pages:
            logger.debug(f"Stopping {path} pagination after {fetched} pages")
            return

        response = await transport.get(page.next_url or "")


class PaginationIterator(Generic[T]):
    """Async iterator over every resource of a list endpoint.

    Usage::

        async for app in PaginationIterator(transport, "/v3/apps", App):
            ...
    """

    def __init__(
        self,
        transport: Transport,
        path: str,
        item_type: Type[T],
        params: Query = None,
        max_pages: Optional[int] = None,
    ):
        self.transport = transport
        self.path = path
        self.item_type = item_type
        self.params = params
        self.max_pages = max_pages
        self.pages_fetched = 0
        self.total_results: Optional[int] = None

    def __aiter__(self) -> AsyncIterator[T]:
        return self._resources()

    async def _resources(self) -> AsyncIterator[T]:
        async for page in iter_pages(
            self.transport, self.path, self.item_type, self.params, self.max_pages
        ):
            self.pages_fetched += 1
            self.total_results = page.pagination.total_results
            for resource in page.resources:
                yield resource

    async def all(self) -> List[T]:
        return [resource async for resource in self]


async def fetch_all_pages(
    transport: Transport,
    path: str,
    item_type: Type[T],
    params: Query = None,
    max_pages: Optional[int] = None,
    page_size: Optional[int] = None,
) -> List[T]:
    """Collect every resource of a list endpoint into one list."""
    if page_size is not None:
        if params is not None and not isinstance(params, QueryParams):
            raise TypeError("page_size requires QueryParams")
        params = (params or QueryParams()).with_per_page(page_size)

    iterator: PaginationIterator[Any] = PaginationIterator(
        transport, path, item_type, params, max_pages
    )
    return await iterator.all()
