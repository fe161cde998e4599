"""Aggregation operations behind the market data routes."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from loguru import logger

from app.core.config import Settings, settings as default_settings
from app.core.errors import InvalidInput, MissingParameter, UnexpectedError, UpstreamError
from app.schemas import ActivityPage, TokenHolders
from ingestion.client import ClobClient, PolymarketDataClient
from ingestion.normalize import normalize_activity, normalize_holders

ORDER_BOOK_FAILURE_MESSAGE = "Failed to fetch order book data"
HOLDERS_FAILURE_MESSAGE = "Failed to fetch holders"
ACTIVITY_FAILURE_MESSAGE = "Failed to fetch activity data"


class MarketDataService:
    """Fetches upstream market data and hands back the internal shapes.

    Each operation makes a single pass against the upstream; retrying is left
    to the consumers.
    """

    def __init__(
        self,
        *,
        data_client: PolymarketDataClient,
        clob_client: ClobClient,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.data_client = data_client
        self.clob_client = clob_client
        self.settings = settings or default_settings
        self._sleep = sleep

    async def get_top_holders(self, market_id: str | None) -> list[TokenHolders]:
        if not market_id or not market_id.strip():
            raise MissingParameter("marketId is required")

        try:
            raw_groups = await self.data_client.fetch_holders(market_id)
        except UpstreamError as exc:
            raise UpstreamError(
                HOLDERS_FAILURE_MESSAGE, upstream_status=exc.upstream_status
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Error fetching top holders market={}: {}", market_id, exc)
            raise UnexpectedError() from exc

        try:
            normalized = normalize_holders(
                raw_groups, limit=self.settings.top_holders_limit
            )
        except ValueError as exc:
            logger.error("Malformed holders payload market={}: {}", market_id, exc)
            raise UnexpectedError() from exc

        logger.info(
            "Mapped top holders market={} groups={} records={}",
            market_id,
            len(raw_groups),
            len(normalized),
        )
        return normalized

    async def get_order_book(self, token_ids: Any) -> Any:
        if (
            not isinstance(token_ids, list)
            or not token_ids
            or not all(isinstance(token_id, str) and token_id for token_id in token_ids)
        ):
            raise InvalidInput("token_ids array is required")

        try:
            books = await self.clob_client.fetch_order_books(token_ids)
        except UpstreamError as exc:
            logger.error("Error fetching order book tokens={}: {}", token_ids, exc)
            raise UpstreamError(
                ORDER_BOOK_FAILURE_MESSAGE,
                status_code=500,
                upstream_status=exc.upstream_status,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Error fetching order book tokens={}: {}", token_ids, exc)
            raise UpstreamError(ORDER_BOOK_FAILURE_MESSAGE, status_code=500) from exc

        if isinstance(books, list):
            ask_levels = sum(
                len(book.get("asks") or []) for book in books if isinstance(book, dict)
            )
            logger.info(
                "Fetched order books count={} ask_levels={}", len(books), ask_levels
            )
        return books

    async def get_activity(self, address: str | None, limit: int | None = None) -> ActivityPage:
        if not address or not address.strip():
            raise MissingParameter("Address parameter is required")

        requested = limit if limit and limit > 0 else self.settings.activity_default_limit
        batch_size = self.settings.activity_batch_size

        try:
            collected: list[Any] = []
            offset = 0
            reached_end = False
            while len(collected) < requested:
                try:
                    batch = await self.data_client.fetch_activity(
                        address, limit=batch_size, offset=offset
                    )
                except (UpstreamError, httpx.HTTPError, ValueError) as exc:
                    logger.warning(
                        "Stopping activity fetch address={} offset={}: {}", address, offset, exc
                    )
                    reached_end = True
                    break

                records = batch if isinstance(batch, list) else []
                if not records:
                    reached_end = True
                    break

                collected.extend(records)
                if len(records) < batch_size:
                    reached_end = True
                    break

                offset += batch_size
                await self._sleep(self.settings.activity_batch_delay_seconds)

            activities = normalize_activity(collected[:requested])
        except Exception:  # noqa: BLE001
            logger.exception("Error fetching activity address={}", address)
            return ActivityPage(address=address, error=ACTIVITY_FAILURE_MESSAGE)

        logger.info(
            "Fetched activity address={} fetched={} returned={}",
            address,
            len(collected),
            len(activities),
        )
        return ActivityPage(
            activities=activities,
            count=len(activities),
            address=address,
            has_more=not reached_end or len(collected) > requested,
            next_offset=min(len(collected), requested),
        )
