"""Tests for the list envelope and page walking helpers."""

import httpx
import pytest
from pydantic import BaseModel

from capi.errors import DecodeError
from capi.pagination import (
    ListResponse,
    PaginationIterator,
    decode_list,
    fetch_all_pages,
    iter_pages,
)
from capi.query import QueryParams
from capi.transport import RawResponse, Transport

API_URL = "https://api.example.com"


class App(BaseModel):
    guid: str
    name: str


def page_body(number: int, total_pages: int, names, per_page: int = 2) -> dict:
    def link(page: int) -> dict:
        return {"href": f"{API_URL}/v3/apps?page={page}&per_page={per_page}"}

    return {
        "pagination": {
            "total_results": total_pages * per_page,
            "total_pages": total_pages,
            "first": link(1),
            "last": link(total_pages),
            "next": link(number + 1) if number < total_pages else None,
            "previous": link(number - 1) if number > 1 else None,
        },
        "resources": [{"guid": f"guid-{name}", "name": name} for name in names],
    }


def paged_handler(pages):
    """Serve ``pages[n - 1]`` for ?page=n (page 1 when absent)."""

    def handler(request: httpx.Request) -> httpx.Response:
        number = int(request.url.params.get("page", "1"))
        return httpx.Response(200, json=pages[number - 1])

    return handler


@pytest.fixture
def three_pages(responder_factory):
    pages = [
        page_body(1, 3, ["a", "b"]),
        page_body(2, 3, ["c", "d"]),
        page_body(3, 3, ["e"]),
    ]
    return responder_factory(paged_handler(pages))


class TestListResponse:
    """Decoding of the list envelope."""

    def test_decode(self):
        response = RawResponse(
            200, {}, httpx.Response(200, json=page_body(1, 2, ["a"])).content
        )

        page = decode_list(response, App)

        assert isinstance(page, ListResponse)
        assert page.pagination.total_pages == 2
        assert page.resources == [App(guid="guid-a", name="a")]
        assert page.has_next
        assert page.next_url == f"{API_URL}/v3/apps?page=2&per_page=2"
        assert page.pagination.previous is None

    def test_last_page_has_no_next(self):
        response = RawResponse(
            200, {}, httpx.Response(200, json=page_body(2, 2, ["a"])).content
        )

        page = decode_list(response, App)

        assert not page.has_next
        assert page.next_url is None

    def test_link_method(self):
        body = page_body(1, 1, [])
        body["pagination"]["first"]["method"] = "GET"
        response = RawResponse(200, {}, httpx.Response(200, json=body).content)

        page = decode_list(response, dict)

        assert page.pagination.first.method == "GET"
        assert page.resources == []

    def test_mismatched_body_raises_decode_error(self):
        response = RawResponse(
            200, {}, b'{"resources": "nope"}', method="GET", path="/v3/apps"
        )

        with pytest.raises(DecodeError) as exc_info:
            decode_list(response, App)

        assert exc_info.value.path == "/v3/apps"
        assert exc_info.value.method == "GET"

    def test_invalid_json_raises_decode_error(self):
        with pytest.raises(DecodeError):
            RawResponse(200, {}, b"<html>").json()


@pytest.mark.asyncio
class TestPageWalking:
    """Following next links until the last page."""

    async def test_iterator_yields_every_resource(self, three_pages):
        transport = Transport(API_URL, http_client=three_pages.client())

        iterator = PaginationIterator(transport, "/v3/apps", App)
        names = [app.name async for app in iterator]

        assert names == ["a", "b", "c", "d", "e"]
        assert iterator.pages_fetched == 3
        assert iterator.total_results == 6
        assert len(three_pages.requests) == 3

    async def test_first_page_uses_params(self, three_pages):
        transport = Transport(API_URL, http_client=three_pages.client())

        await fetch_all_pages(
            transport,
            "/v3/apps",
            App,
            params=QueryParams().with_order_by("name"),
            page_size=2,
        )

        first = three_pages.requests[0].url
        assert first.params["order_by"] == "name"
        assert first.params["per_page"] == "2"
        assert three_pages.requests[1].url.params["page"] == "2"

    async def test_max_pages_limits_requests(self, three_pages):
        transport = Transport(API_URL, http_client=three_pages.client())

        apps = await fetch_all_pages(transport, "/v3/apps", App, max_pages=2)

        assert [app.name for app in apps] == ["a", "b", "c", "d"]
        assert len(three_pages.requests) == 2

    async def test_iter_pages(self, three_pages):
        transport = Transport(API_URL, http_client=three_pages.client())

        pages = [page async for page in iter_pages(transport, "/v3/apps", App)]

        assert [len(page.resources) for page in pages] == [2, 2, 1]
        assert not pages[-1].has_next

    async def test_single_page(self, responder_factory):
        responder = responder_factory(
            httpx.Response(200, json=page_body(1, 1, ["only"]))
        )
        transport = Transport(API_URL, http_client=responder.client())

        apps = await fetch_all_pages(transport, "/v3/apps", App)

        assert [app.name for app in apps] == ["only"]
        assert len(responder.requests) == 1

    async def test_invalid_max_pages(self, three_pages):
        transport = Transport(API_URL, http_client=three_pages.client())

        with pytest.raises(ValueError):
            await fetch_all_pages(transport, "/v3/apps", App, max_pages=0)
