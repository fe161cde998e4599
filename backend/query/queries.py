"""Query keys, pagination rules and fetchers for the dashboard resources."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from loguru import logger

from app.core.config import Settings, settings as default_settings
from app.schemas import OrderBookSnapshot, TokenHolders, TrendingEventsPage

from .api import DashboardApiClient
from .client import InfiniteData, QueryClient

EVENTS_PAGE_SIZE = 20

MENTIONS_EVENTS_KEY = ("events", "mentions", "infinite")


def mentions_next_page_param(
    last_page: Any, all_pages: list[Any], *, page_size: int = EVENTS_PAGE_SIZE
) -> int | None:
    """A full page means more events may exist; a short page ends pagination."""

    events = last_page if isinstance(last_page, list) else []
    if len(events) >= page_size:
        return len(all_pages) * page_size
    return None


def trending_next_page_param(last_page: Any, all_pages: list[Any]) -> int | None:
    pagination = None
    if isinstance(last_page, TrendingEventsPage):
        pagination = last_page.data.pagination
    if pagination is None:
        logger.error("Trending events page is missing pagination: {!r}", last_page)
        return None
    return pagination.offset + pagination.limit if pagination.has_more else None


def trending_events_key(
    *, limit: int = 50, tag_slug: str | None = None, featured: bool | None = None
) -> tuple[Any, ...]:
    return (
        "events",
        "trending",
        "infinite",
        {"limit": limit, "tag_slug": tag_slug, "featured": featured},
    )


def top_holders_key(market_id: str) -> tuple[str, ...]:
    return ("market", "top-holders", market_id)


def order_book_key(token_ids: Sequence[str]) -> tuple[str, ...]:
    return ("market", "order-book", *token_ids)


class MarketQueries:
    """Binds the dashboard API to a query client with per-resource cache settings."""

    def __init__(
        self,
        client: QueryClient,
        api: DashboardApiClient,
        *,
        settings: Settings | None = None,
    ) -> None:
        config = settings or default_settings
        self.client = client
        self.api = api
        self.page_size = config.events_page_size
        self.events_stale_time = config.events_stale_time_seconds

    def _next_mentions_param(self, last_page: Any, all_pages: list[Any]) -> int | None:
        return mentions_next_page_param(last_page, all_pages, page_size=self.page_size)

    async def _fetch_mentions_page(self, offset: int) -> list[dict[str, Any]]:
        return await self.api.get_mentions_events(offset=offset, limit=self.page_size)

    async def mentions_events(self) -> InfiniteData:
        return await self.client.fetch_infinite_query(
            MENTIONS_EVENTS_KEY,
            self._fetch_mentions_page,
            get_next_page_param=self._next_mentions_param,
            stale_time=self.events_stale_time,
        )

    async def more_mentions_events(self) -> InfiniteData:
        return await self.client.fetch_next_page(
            MENTIONS_EVENTS_KEY,
            self._fetch_mentions_page,
            get_next_page_param=self._next_mentions_param,
        )

    async def all_mentions_events(self, *, max_pages: int | None = None) -> InfiniteData:
        return await self.client.fetch_all_pages(
            MENTIONS_EVENTS_KEY,
            self._fetch_mentions_page,
            get_next_page_param=self._next_mentions_param,
            max_pages=max_pages,
        )

    async def trending_events(
        self,
        *,
        limit: int = 50,
        tag_slug: str | None = None,
        featured: bool | None = None,
    ) -> InfiniteData:
        async def fetch_page(offset: int) -> TrendingEventsPage:
            return await self.api.get_trending_events(
                limit=limit, offset=offset, tag_slug=tag_slug, featured=featured
            )

        return await self.client.fetch_infinite_query(
            trending_events_key(limit=limit, tag_slug=tag_slug, featured=featured),
            fetch_page,
            get_next_page_param=trending_next_page_param,
            stale_time=self.events_stale_time,
        )

    async def top_holders(self, market_id: str) -> list[TokenHolders]:
        return await self.client.fetch_query(
            top_holders_key(market_id), lambda: self.api.get_top_holders(market_id)
        )

    async def order_book(self, token_ids: Sequence[str]) -> list[OrderBookSnapshot]:
        async def fetch() -> list[OrderBookSnapshot]:
            books = await self.api.get_order_book(token_ids)
            return [OrderBookSnapshot.model_validate(book) for book in books]

        return await self.client.fetch_query(order_book_key(token_ids), fetch)
