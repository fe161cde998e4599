from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx
from loguru import logger

from app.core.config import Settings, settings as default_settings
from app.schemas import (
    ActivityPage,
    EventPage,
    HoldersResponse,
    TokenHolders,
    TrendingEventsPage,
)


class ApiResponseError(Exception):
    """The dashboard API answered with a failure status or an unsuccessful payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DashboardApiClient:
    """Async consumer of the dashboard API used by the query definitions."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        config = settings or default_settings
        self.base_url = base_url or str(config.dashboard_api_base_url)
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or config.dashboard_api_timeout_seconds,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        logger.debug("Dashboard API {} {} {}", method, path, kwargs.get("params") or "")
        response = await self.client.request(method, path, **kwargs)
        if not response.is_success:
            detail: Any = None
            try:
                detail = response.json().get("error")
            except (ValueError, AttributeError):
                detail = response.reason_phrase
            raise ApiResponseError(
                f"{method} {path} failed with status {response.status_code}: {detail}",
                status_code=response.status_code,
            )
        return response.json()

    async def get_mentions_events(self, offset: int = 0, limit: int = 20) -> list[dict[str, Any]]:
        payload = await self._request(
            "GET", "/events/mentions", params={"offset": offset, "limit": limit}
        )
        page = EventPage.model_validate(payload)
        if not page.success:
            raise ApiResponseError("GET /events/mentions returned success=false")
        return page.data

    async def get_trending_events(
        self,
        *,
        limit: int = 50,
        offset: int = 0,
        tag_slug: str | None = None,
        featured: bool | None = None,
    ) -> TrendingEventsPage:
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if tag_slug:
            params["tag_slug"] = tag_slug
        if featured is not None:
            params["featured"] = "true" if featured else "false"
        payload = await self._request("GET", "/events/trending", params=params)
        return TrendingEventsPage.model_validate(payload)

    async def get_top_holders(self, market_id: str) -> list[TokenHolders]:
        payload = await self._request(
            "GET", "/market/top-holders", params={"marketId": market_id}
        )
        return HoldersResponse.model_validate(payload).data

    async def get_order_book(self, token_ids: Sequence[str]) -> list[dict[str, Any]]:
        payload = await self._request(
            "POST", "/market/order-book", json={"token_ids": list(token_ids)}
        )
        if not isinstance(payload, list):
            raise ApiResponseError("POST /market/order-book returned a non-list payload")
        return payload

    async def get_activity(self, address: str, limit: int | None = None) -> ActivityPage:
        params: dict[str, Any] = {"address": address}
        if limit:
            params["limit"] = limit
        payload = await self._request("GET", "/market/activity", params=params)
        return ActivityPage.model_validate(payload)

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "DashboardApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
