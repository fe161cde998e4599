from __future__ import annotations

import json

import httpx
import pytest

from app.schemas import OrderBookSnapshot, TrendingEventsPage
from query.api import ApiResponseError, DashboardApiClient
from query.client import QueryClient, QueryDefaults, QueryError
from query.queries import (
    MENTIONS_EVENTS_KEY,
    MarketQueries,
    mentions_next_page_param,
    trending_next_page_param,
)
from query.retry import RetryPolicy


def _events(offset: int, count: int) -> list[dict[str, object]]:
    return [{"id": str(offset + i), "title": f"Event {offset + i}", "slug": f"e-{offset + i}"} for i in range(count)]


def _queries(
    test_settings, handler, sleep_recorder, fake_clock, *, retry: RetryPolicy | None = None
) -> tuple[MarketQueries, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    api = DashboardApiClient(settings=test_settings, transport=httpx.MockTransport(recording))
    defaults = QueryDefaults(retry=retry) if retry else QueryDefaults()
    client = QueryClient(defaults=defaults, clock=fake_clock, sleep=sleep_recorder)
    return MarketQueries(client, api, settings=test_settings), seen


def test_mentions_next_page_param():
    assert mentions_next_page_param(_events(0, 20), [[], []]) == 40
    assert mentions_next_page_param(_events(0, 19), [[]]) is None
    assert mentions_next_page_param({"unexpected": True}, [[]]) is None


def test_trending_next_page_param():
    page = TrendingEventsPage.model_validate(
        {
            "success": True,
            "data": {"events": [], "pagination": {"total": 120, "limit": 50, "offset": 50, "hasMore": True}},
        }
    )
    last = TrendingEventsPage.model_validate(
        {
            "success": True,
            "data": {"events": [], "pagination": {"total": 120, "limit": 50, "offset": 100, "hasMore": False}},
        }
    )
    missing = TrendingEventsPage.model_validate({"success": True, "data": {"events": []}})

    assert trending_next_page_param(page, [page]) == 100
    assert trending_next_page_param(last, [page, last]) is None
    assert trending_next_page_param(missing, [missing]) is None


@pytest.mark.asyncio
async def test_mentions_events_paginate_until_short_page(test_settings, sleep_recorder, fake_clock):
    sizes = {0: 20, 20: 20, 40: 7}

    def handler(request: httpx.Request) -> httpx.Response:
        offset = int(request.url.params["offset"])
        return httpx.Response(200, json={"success": True, "data": _events(offset, sizes[offset])})

    queries, seen = _queries(test_settings, handler, sleep_recorder, fake_clock)

    data = await queries.all_mentions_events()

    assert len(seen) == 3
    assert [r.url.params["offset"] for r in seen] == ["0", "20", "40"]
    assert all(r.url.params["limit"] == "20" for r in seen)
    assert seen[0].url.path == "/api/events/mentions"
    assert len(data.items()) == 47
    assert queries.client.get_query_data(MENTIONS_EVENTS_KEY) is data


@pytest.mark.asyncio
async def test_mentions_events_retry_on_server_errors(test_settings, sleep_recorder, fake_clock):
    responses = iter(
        [
            httpx.Response(503, json={"error": "unavailable"}),
            httpx.Response(500, json={"error": "boom"}),
            httpx.Response(200, json={"success": True, "data": _events(0, 3)}),
        ]
    )
    queries, seen = _queries(test_settings, lambda request: next(responses), sleep_recorder, fake_clock)

    data = await queries.mentions_events()

    assert len(seen) == 3
    assert sleep_recorder.delays == [1.0, 2.0]
    assert data.has_next_page is False


@pytest.mark.asyncio
async def test_unsuccessful_payload_surfaces_as_query_error(test_settings, sleep_recorder, fake_clock):
    queries, seen = _queries(
        test_settings,
        lambda request: httpx.Response(200, json={"success": False, "data": []}),
        sleep_recorder,
        fake_clock,
        retry=RetryPolicy.disabled(),
    )

    with pytest.raises(QueryError) as excinfo:
        await queries.mentions_events()

    assert isinstance(excinfo.value.cause, ApiResponseError)
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_top_holders_query_is_cached(test_settings, sleep_recorder, fake_clock, sample_holders_payload):
    body = {
        "data": [
            {
                "tokenYes": sample_holders_payload[0]["token"],
                "holdersYes": sample_holders_payload[0]["holders"],
                "tokenNo": sample_holders_payload[1]["token"],
                "holdersNo": sample_holders_payload[1]["holders"][1:],
            }
        ]
    }
    queries, seen = _queries(
        test_settings, lambda request: httpx.Response(200, json=body), sleep_recorder, fake_clock
    )

    first = await queries.top_holders("0xmarket")
    second = await queries.top_holders("0xmarket")

    assert first is second
    assert len(seen) == 1
    assert seen[0].url.params["marketId"] == "0xmarket"
    assert first[0].holders_no[0].pseudonym == "Late-Fade"


@pytest.mark.asyncio
async def test_order_book_query_parses_snapshots(test_settings, sleep_recorder, fake_clock):
    books = [
        {
            "market": "0xcondition",
            "asset_id": "t1",
            "timestamp": "1718000000000",
            "hash": "abc",
            "bids": [{"price": "0.40", "size": "100"}, {"price": "0.42", "size": "50"}],
            "asks": [{"price": "0.47", "size": "80"}, {"price": "0.45", "size": "10"}],
            "min_order_size": "5",
        }
    ]
    queries, seen = _queries(
        test_settings, lambda request: httpx.Response(200, json=books), sleep_recorder, fake_clock
    )

    snapshots = await queries.order_book(["t1"])

    assert json.loads(seen[0].content) == {"token_ids": ["t1"]}
    assert isinstance(snapshots[0], OrderBookSnapshot)
    assert snapshots[0].best_bid == pytest.approx(0.42)
    assert snapshots[0].best_ask == pytest.approx(0.45)
    assert snapshots[0].spread == pytest.approx(0.03)
