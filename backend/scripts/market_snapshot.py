import argparse
import asyncio
import json
import sys

from loguru import logger

from app.core.config import get_settings
from app.core.errors import MarketDataError
from app.core.logging import configure_logging
from app.services.market_data_service import MarketDataService
from ingestion.client import ClobClient, PolymarketDataClient


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print normalized top holders and order books for a Polymarket market"
    )
    parser.add_argument("--market-id", default=None, help="Market condition id for top holders")
    parser.add_argument(
        "--token-id",
        action="append",
        default=None,
        metavar="TOKEN_ID",
        help="Outcome token id for the order book (repeatable)",
    )
    parser.add_argument("--indent", type=int, default=2, help="JSON indentation")
    return parser.parse_args()


async def _snapshot(args: argparse.Namespace) -> dict[str, object]:
    settings = get_settings()
    snapshot: dict[str, object] = {}
    async with PolymarketDataClient(settings=settings) as data_client, ClobClient(
        settings=settings
    ) as clob_client:
        service = MarketDataService(
            data_client=data_client, clob_client=clob_client, settings=settings
        )
        if args.market_id:
            holders = await service.get_top_holders(args.market_id)
            snapshot["top_holders"] = [
                item.model_dump(by_alias=True, exclude_unset=True) for item in holders
            ]
        if args.token_id:
            snapshot["order_book"] = await service.get_order_book(args.token_id)
    return snapshot


def main() -> None:
    args = parse_args()
    configure_logging(get_settings().log_level)

    if not args.market_id and not args.token_id:
        logger.error("Pass --market-id and/or at least one --token-id")
        sys.exit(2)

    try:
        snapshot = asyncio.run(_snapshot(args))
    except MarketDataError as exc:
        logger.error("Snapshot failed status={} error={}", exc.status_code, exc.message)
        sys.exit(1)

    print(json.dumps(snapshot, indent=args.indent))


if __name__ == "__main__":
    main()
