from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from app.schemas import ActivityItem, HolderEntry, TokenHolders

TOP_HOLDERS_LIMIT = 15


def _holder_group(raw_group: Any, position: int) -> tuple[str, list[Any]]:
    if not isinstance(raw_group, dict):
        raise ValueError(f"holder group {position} is not an object")
    holders = raw_group.get("holders")
    if not isinstance(holders, list):
        raise ValueError(f"holder group {position} is missing a holders list")
    return str(raw_group.get("token") or ""), holders


def _holder_entries(raw_holders: Sequence[Any]) -> list[HolderEntry]:
    # Slicing happens before this, so a null entry still occupies its position.
    return [HolderEntry.model_validate(item) for item in raw_holders if isinstance(item, dict)]


def normalize_holders(
    raw_groups: Any, *, limit: int = TOP_HOLDERS_LIMIT
) -> list[TokenHolders]:
    """Reshape the data API holders payload into a single ``TokenHolders`` record.

    The upstream returns one group per outcome token. Fewer than two groups
    means there is nothing to compare, so the result is empty rather than an
    error. The first holder of the second group is skipped; the upstream
    reports a duplicate entry at that position.
    """

    if not isinstance(raw_groups, list):
        raise ValueError("holders payload must be a list of outcome groups")
    if len(raw_groups) < 2:
        return []

    token_yes, yes_holders = _holder_group(raw_groups[0], 0)
    token_no, no_holders = _holder_group(raw_groups[1], 1)

    return [
        TokenHolders(
            token_yes=token_yes,
            holders_yes=_holder_entries(yes_holders[:limit]),
            token_no=token_no,
            holders_no=_holder_entries(no_holders[1 : limit + 1]),
        )
    ]


def build_order_book_request(token_ids: Sequence[str]) -> list[dict[str, str]]:
    """Shape token ids into the batch body expected by the CLOB ``/books`` endpoint."""

    if not token_ids:
        raise ValueError("at least one token id is required")
    return [{"token_id": str(token_id)} for token_id in token_ids]


def _market_name(raw_activity: dict[str, Any]) -> str | None:
    name = raw_activity.get("title")
    if name is None:
        name = raw_activity.get("market")
    if isinstance(name, str) and name.strip():
        return name
    return None


def normalize_activity(raw_items: Sequence[Any]) -> list[ActivityItem]:
    """Drop activity without a market title and map the rest into ``ActivityItem``."""

    normalized: list[ActivityItem] = []
    for raw_activity in raw_items:
        if not isinstance(raw_activity, dict):
            continue
        market_name = _market_name(raw_activity)
        if market_name is None:
            continue
        normalized.append(
            ActivityItem(
                id=raw_activity.get("transactionHash"),
                timestamp=raw_activity.get("timestamp"),
                type=raw_activity.get("type"),
                side=raw_activity.get("side"),
                market=market_name,
                slug=raw_activity.get("slug"),
                event_slug=raw_activity.get("eventSlug"),
                icon=raw_activity.get("icon"),
                outcome=raw_activity.get("outcome"),
                outcome_index=raw_activity.get("outcomeIndex"),
                size=raw_activity.get("size"),
                usdc_size=raw_activity.get("usdcSize"),
                price=raw_activity.get("price"),
                transaction_hash=raw_activity.get("transactionHash"),
            )
        )
    return normalized
