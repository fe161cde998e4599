from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx
from loguru import logger

from app.core.config import Settings, settings as default_settings
from app.core.errors import UpstreamError

from .normalize import build_order_book_request


class _UpstreamClient:
    """Shared lifecycle for the async Polymarket clients."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
            follow_redirects=True,
        )

    @staticmethod
    def _ensure_success(response: httpx.Response, label: str) -> None:
        if response.is_success:
            return
        logger.warning(
            "Polymarket {} returned status={} reason={}",
            label,
            response.status_code,
            response.reason_phrase,
        )
        raise UpstreamError(
            f"Polymarket {label} error: {response.reason_phrase}",
            upstream_status=response.status_code,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class PolymarketDataClient(_UpstreamClient):
    """Holders and wallet activity from the Polymarket data API."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        config = settings or default_settings
        super().__init__(
            base_url=base_url or str(config.data_api_base_url),
            timeout=timeout or config.upstream_timeout_seconds,
            headers={"Content-Type": "application/json", "Cache-Control": "no-cache"},
            transport=transport,
        )

    async def fetch_holders(self, market_id: str) -> Any:
        params = {"market": market_id}
        logger.info("Polymarket GET /holders params={}", params)
        response = await self.client.get("/holders", params=params)
        self._ensure_success(response, "holders")
        return response.json()

    async def fetch_activity(self, address: str, *, limit: int, offset: int) -> Any:
        params = {"user": address, "limit": limit, "offset": offset}
        logger.info("Polymarket GET /activity params={}", params)
        response = await self.client.get(
            "/activity", params=params, headers={"Accept": "application/json"}
        )
        self._ensure_success(response, "activity")
        return response.json()


class ClobClient(_UpstreamClient):
    """Batched order-book snapshots from the Polymarket CLOB API."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        books_path: str | None = None,
        timeout: float | None = None,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        config = settings or default_settings
        self.books_path = books_path or config.clob_books_path
        super().__init__(
            base_url=base_url or str(config.clob_base_url),
            timeout=timeout or config.upstream_timeout_seconds,
            headers={
                "Accept": "application/json, text/plain, */*",
                "Content-Type": "application/json",
                "Referer": config.upstream_referer,
                "User-Agent": config.upstream_user_agent,
            },
            transport=transport,
        )

    async def fetch_order_books(self, token_ids: Sequence[str]) -> Any:
        """Fetch every book in one call and return the upstream payload untouched."""

        body = build_order_book_request(token_ids)
        logger.info("Polymarket POST {} tokens={}", self.books_path, len(body))
        response = await self.client.post(self.books_path, json=body)
        self._ensure_success(response, "order book")
        return response.json()
