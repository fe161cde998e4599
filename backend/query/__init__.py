"""Client-side data fetching: cache, retry and pagination over the dashboard API."""

from .api import ApiResponseError, DashboardApiClient
from .cache import QueryCache, QueryEntry, QueryStatus, hash_query_key
from .client import (
    InfiniteData,
    QueryClient,
    QueryClientProvider,
    QueryDefaults,
    QueryError,
    make_query_client,
)
from .queries import MarketQueries
from .retry import RetryExhausted, RetryPolicy, retrying_fetch

__all__ = [
    "ApiResponseError",
    "DashboardApiClient",
    "InfiniteData",
    "MarketQueries",
    "QueryCache",
    "QueryClient",
    "QueryClientProvider",
    "QueryDefaults",
    "QueryEntry",
    "QueryError",
    "QueryStatus",
    "RetryExhausted",
    "RetryPolicy",
    "hash_query_key",
    "make_query_client",
    "retrying_fetch",
]
