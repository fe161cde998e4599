from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from . import schemas
from .core.config import settings
from .core.errors import InvalidInput, MarketDataError, UnexpectedError
from .core.logging import configure_logging
from .services.market_data_service import MarketDataService
from ingestion.client import ClobClient, PolymarketDataClient

app = FastAPI(title="Market Data API", version="0.1.0", debug=settings.debug)


@app.on_event("startup")
def on_startup() -> None:
    """Configure logging when the API boots."""

    configure_logging(settings.log_level)


@app.exception_handler(MarketDataError)
async def _market_data_error_handler(request: Request, exc: MarketDataError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = InvalidInput(_describe_validation_error(exc))
    logger.info("Rejected request to {}: {}", request.url.path, error.message)
    return JSONResponse(status_code=error.status_code, content={"error": error.message})


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = first.get("loc") or ("request",)
    return f"Invalid {location[-1]} parameter: {first.get('msg', 'invalid value')}"


@app.exception_handler(Exception)
async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on {} {}", request.method, request.url.path)
    error = UnexpectedError()
    return JSONResponse(status_code=error.status_code, content={"error": error.message})


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


async def _market_data_service() -> AsyncIterator[MarketDataService]:
    """Provide a market data service with upstream clients scoped to the request."""

    async with PolymarketDataClient() as data_client, ClobClient() as clob_client:
        yield MarketDataService(data_client=data_client, clob_client=clob_client)


async def _read_json_body(request: Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning("Rejected unparseable body on {}: {}", request.url.path, exc)
        raise UnexpectedError() from exc


@app.post("/api/market/order-book", tags=["market"])
async def get_order_book(
    request: Request,
    service: MarketDataService = Depends(_market_data_service),
):
    """Proxy a batch of token ids to the CLOB and return the books unchanged."""

    payload = await _read_json_body(request)
    if not isinstance(payload, dict):
        raise InvalidInput("token_ids array is required")
    books = await service.get_order_book(payload.get("token_ids"))
    return JSONResponse(content=books)


@app.get(
    "/api/market/top-holders",
    response_model=schemas.HoldersResponse,
    response_model_exclude_unset=True,
    tags=["market"],
)
async def get_top_holders(
    market_id: Annotated[str | None, Query(alias="marketId", description="Market condition id")] = None,
    service: MarketDataService = Depends(_market_data_service),
):
    """Return the largest Yes and No holders for a market."""

    holders = await service.get_top_holders(market_id)
    return schemas.HoldersResponse(data=holders)


@app.get(
    "/api/market/activity",
    response_model=schemas.ActivityPage,
    response_model_exclude_none=True,
    tags=["market"],
)
async def get_activity(
    address: Annotated[str | None, Query(description="Wallet address")] = None,
    limit: Annotated[int | None, Query(ge=1, le=1000, description="Number of records to return")] = None,
    service: MarketDataService = Depends(_market_data_service),
):
    """Return recent trading activity for a wallet."""

    return await service.get_activity(address, limit)
