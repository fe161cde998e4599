from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Models exchanged with the dashboard use the upstream camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HolderEntry(CamelModel):
    proxy_wallet: str | None = None
    bio: str | None = None
    asset: str | None = None
    pseudonym: str | None = None
    amount: float | None = None
    display_username_public: bool | None = None
    outcome_index: int | None = None
    name: str | None = None
    profile_image: str | None = None
    profile_image_optimized: str | None = None

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow", frozen=True
    )

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> float | None:
        if value is None:
            return None
        return float(value)


class TokenHolders(CamelModel):
    token_yes: str
    holders_yes: list[HolderEntry] = Field(default_factory=list)
    token_no: str
    holders_no: list[HolderEntry] = Field(default_factory=list)


class HoldersResponse(BaseModel):
    data: list[TokenHolders] = Field(default_factory=list)


class OrderBookLevel(BaseModel):
    price: float
    size: float


class OrderBookSnapshot(BaseModel):
    market: str | None = None
    asset_id: str | None = None
    timestamp: str | None = None
    hash: str | None = None
    bids: list[OrderBookLevel] = Field(default_factory=list)
    asks: list[OrderBookLevel] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> str | None:
        if value is None:
            return None
        return str(value)

    @property
    def best_bid(self) -> float | None:
        return max((level.price for level in self.bids), default=None)

    @property
    def best_ask(self) -> float | None:
        return min((level.price for level in self.asks), default=None)

    @property
    def spread(self) -> float | None:
        if self.best_bid is None or self.best_ask is None:
            return None
        return self.best_ask - self.best_bid


class ActivityItem(CamelModel):
    id: str | None = None
    timestamp: int | None = None
    type: str | None = None
    side: str | None = None
    market: str
    slug: str | None = None
    event_slug: str | None = None
    icon: str | None = None
    outcome: str | None = None
    outcome_index: int | None = None
    size: float | None = None
    usdc_size: float | None = None
    price: float | None = None
    transaction_hash: str | None = None


class ActivityPage(CamelModel):
    activities: list[ActivityItem] = Field(default_factory=list)
    count: int = 0
    address: str = ""
    has_more: bool = False
    next_offset: int = 0
    error: str | None = None


class EventPage(BaseModel):
    success: bool
    data: list[dict[str, Any]] = Field(default_factory=list)


class Pagination(CamelModel):
    total: int = 0
    limit: int
    offset: int
    has_more: bool = False


class TrendingEventsData(BaseModel):
    events: list[dict[str, Any]] = Field(default_factory=list)
    pagination: Pagination | None = None


class TrendingEventsPage(BaseModel):
    success: bool
    data: TrendingEventsData
