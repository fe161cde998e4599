"""Caching, de-duplicating, retrying query client for the dashboard API."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from app.core.config import Settings, get_settings

from .cache import QueryCache, QueryEntry, QueryStatus
from .retry import RetryExhausted, RetryPolicy, SleepFn, retrying_fetch

QueryFn = Callable[[], Awaitable[Any]]
PageFn = Callable[[Any], Awaitable[Any]]
NextPageParamFn = Callable[[Any, list[Any]], Any]


class QueryError(Exception):
    """A fetch cycle ended in the error state; the cause is chained."""

    def __init__(self, key: Sequence[Any], cause: BaseException) -> None:
        super().__init__(f"query {list(key)!r} failed: {cause}")
        self.key = tuple(key)
        self.cause = cause


@dataclass(frozen=True, slots=True)
class QueryDefaults:
    stale_time: float = 60.0
    gc_time: float = 300.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    @classmethod
    def from_settings(cls, config: Settings) -> "QueryDefaults":
        return cls(
            stale_time=config.query_stale_time_seconds,
            gc_time=config.query_gc_time_seconds,
            retry=RetryPolicy(
                max_retries=config.query_retry_attempts,
                base_delay=config.query_retry_base_delay_seconds,
                max_delay=config.query_retry_max_delay_seconds,
                jitter=config.query_retry_jitter,
            ),
        )


@dataclass(slots=True)
class InfiniteData:
    pages: list[Any] = field(default_factory=list)
    page_params: list[Any] = field(default_factory=list)
    next_page_param: Any = None

    @property
    def has_next_page(self) -> bool:
        return self.next_page_param is not None

    def items(self) -> list[Any]:
        flattened: list[Any] = []
        for page in self.pages:
            if isinstance(page, list):
                flattened.extend(page)
            else:
                flattened.append(page)
        return flattened


def _consume_task_result(task: asyncio.Task) -> None:
    # Background refetches may finish with nobody awaiting them.
    if not task.cancelled():
        task.exception()


class QueryClient:
    """Per-key cache with stale-while-revalidate reads and a single in-flight fetch per key."""

    def __init__(
        self,
        *,
        defaults: QueryDefaults | None = None,
        cache: QueryCache | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.defaults = defaults or QueryDefaults()
        self._clock = clock
        self._sleep = sleep
        self.cache = cache or QueryCache(clock=clock)

    async def fetch_query(
        self,
        key: Sequence[Any],
        fn: QueryFn,
        *,
        stale_time: float | None = None,
        retry: RetryPolicy | None = None,
    ) -> Any:
        """Return cached data when fresh, stale data plus a background refetch, or await a fetch."""

        self.collect_garbage()
        entry = self.cache.build(key)
        self._touch(entry)

        window = self.defaults.stale_time if stale_time is None else stale_time
        if entry.has_data:
            if entry.is_stale(window, self._clock()):
                logger.debug("Serving stale query {} while revalidating", entry.key_hash)
                self._start_fetch(entry, fn, retry)
            return entry.data

        return await asyncio.shield(self._start_fetch(entry, fn, retry))

    async def refetch_query(
        self, key: Sequence[Any], fn: QueryFn, *, retry: RetryPolicy | None = None
    ) -> Any:
        entry = self.cache.build(key)
        self._touch(entry)
        return await asyncio.shield(self._start_fetch(entry, fn, retry))

    async def fetch_infinite_query(
        self,
        key: Sequence[Any],
        fn: PageFn,
        *,
        get_next_page_param: NextPageParamFn,
        initial_page_param: Any = 0,
        stale_time: float | None = None,
        retry: RetryPolicy | None = None,
    ) -> InfiniteData:
        """Load the first page, or refetch every loaded page in order once stale."""

        entry = self.cache.build(key)

        async def load_pages() -> InfiniteData:
            previous = entry.data if isinstance(entry.data, InfiniteData) else None
            target = len(previous.pages) if previous and previous.pages else 1
            pages: list[Any] = []
            params: list[Any] = []
            param = initial_page_param
            while True:
                page = await fn(param)
                pages.append(page)
                params.append(param)
                next_param = get_next_page_param(page, pages)
                if next_param is None or len(pages) >= target:
                    return InfiniteData(pages, params, next_param)
                param = next_param

        return await self.fetch_query(key, load_pages, stale_time=stale_time, retry=retry)

    async def fetch_next_page(
        self,
        key: Sequence[Any],
        fn: PageFn,
        *,
        get_next_page_param: NextPageParamFn,
        initial_page_param: Any = 0,
        retry: RetryPolicy | None = None,
    ) -> InfiniteData:
        entry = self.cache.get(key)
        if entry is None or not isinstance(entry.data, InfiniteData):
            return await self.fetch_infinite_query(
                key,
                fn,
                get_next_page_param=get_next_page_param,
                initial_page_param=initial_page_param,
                retry=retry,
            )

        while entry.is_fetching:
            try:
                await asyncio.shield(entry.fetch_task)
            except QueryError as exc:
                if not isinstance(entry.data, InfiniteData):
                    raise
                logger.debug(
                    "Extending query {} from last good pages after failed refetch: {}",
                    entry.key_hash,
                    exc.cause,
                )

        current: InfiniteData = entry.data
        if not current.has_next_page:
            return current

        param = current.next_page_param

        async def load_next() -> InfiniteData:
            page = await fn(param)
            pages = [*current.pages, page]
            return InfiniteData(
                pages, [*current.page_params, param], get_next_page_param(page, pages)
            )

        self._touch(entry)
        return await asyncio.shield(self._start_fetch(entry, load_next, retry))

    async def fetch_all_pages(
        self,
        key: Sequence[Any],
        fn: PageFn,
        *,
        get_next_page_param: NextPageParamFn,
        initial_page_param: Any = 0,
        max_pages: int | None = None,
        retry: RetryPolicy | None = None,
    ) -> InfiniteData:
        """Keep requesting pages until ``get_next_page_param`` reports no more."""

        data = await self.fetch_infinite_query(
            key,
            fn,
            get_next_page_param=get_next_page_param,
            initial_page_param=initial_page_param,
            retry=retry,
        )
        while data.has_next_page and (max_pages is None or len(data.pages) < max_pages):
            data = await self.fetch_next_page(
                key,
                fn,
                get_next_page_param=get_next_page_param,
                initial_page_param=initial_page_param,
                retry=retry,
            )
        return data

    def get_query_data(self, key: Sequence[Any]) -> Any:
        entry = self.cache.get(key)
        return entry.data if entry else None

    def get_query_state(self, key: Sequence[Any]) -> QueryEntry | None:
        return self.cache.get(key)

    def set_query_data(self, key: Sequence[Any], data: Any) -> None:
        entry = self.cache.build(key)
        self._resolve(entry, data)

    def invalidate_queries(self, prefix: Sequence[Any] = ()) -> int:
        """Mark matching entries stale so their next read refetches."""

        entries = self.cache.find_all(prefix)
        for entry in entries:
            entry.invalidated = True
        return len(entries)

    @contextmanager
    def subscribe(self, key: Sequence[Any]) -> Iterator[QueryEntry]:
        """Keep an entry alive for as long as the caller observes it."""

        entry = self.cache.build(key)
        entry.subscribers += 1
        entry.inactive_since = None
        try:
            yield entry
        finally:
            entry.subscribers -= 1
            if entry.subscribers == 0:
                entry.inactive_since = self._clock()

    def collect_garbage(self) -> int:
        return self.cache.collect_garbage(self.defaults.gc_time)

    def clear(self) -> None:
        self.cache.clear()

    def _touch(self, entry: QueryEntry) -> None:
        if entry.subscribers == 0:
            entry.inactive_since = self._clock()

    def _start_fetch(
        self, entry: QueryEntry, fn: QueryFn, retry: RetryPolicy | None
    ) -> asyncio.Task:
        if entry.is_fetching:
            return entry.fetch_task

        policy = retry or self.defaults.retry
        entry.status = QueryStatus.FETCHING
        entry.failure_count = 0
        task = asyncio.get_running_loop().create_task(self._run_fetch(entry, fn, policy))
        task.add_done_callback(_consume_task_result)
        entry.fetch_task = task
        return task

    async def _run_fetch(self, entry: QueryEntry, fn: QueryFn, policy: RetryPolicy) -> Any:
        def on_retry(failure_count: int, error: BaseException, delay: float) -> None:
            entry.status = QueryStatus.RETRYING
            entry.failure_count = failure_count
            entry.error = error

        try:
            data = await retrying_fetch(fn, policy, sleep=self._sleep, on_retry=on_retry)
        except asyncio.CancelledError:
            entry.status = QueryStatus.SUCCESS if entry.has_data else QueryStatus.IDLE
            raise
        except RetryExhausted as exc:
            self._fail(entry, exc.last_error, exc.attempts)
            raise QueryError(entry.key, exc.last_error) from exc.last_error
        except Exception as exc:  # noqa: BLE001
            self._fail(entry, exc, entry.failure_count + 1)
            raise QueryError(entry.key, exc) from exc

        self._resolve(entry, data)
        return data

    def _resolve(self, entry: QueryEntry, data: Any) -> None:
        entry.data = data
        entry.status = QueryStatus.SUCCESS
        entry.error = None
        entry.failure_count = 0
        entry.invalidated = False
        entry.data_updated_at = self._clock()
        self._touch(entry)

    def _fail(self, entry: QueryEntry, error: BaseException, failure_count: int) -> None:
        entry.status = QueryStatus.ERROR
        entry.error = error
        entry.failure_count = failure_count
        self._touch(entry)
        logger.warning(
            "Query {} failed after {} attempt(s): {}", entry.key_hash, failure_count, error
        )


def make_query_client(
    settings: Settings | None = None,
    *,
    cache: QueryCache | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: SleepFn = asyncio.sleep,
) -> QueryClient:
    config = settings or get_settings()
    return QueryClient(
        defaults=QueryDefaults.from_settings(config), cache=cache, clock=clock, sleep=sleep
    )


class QueryClientProvider:
    """Hands out query clients: a fresh one per call on the server, one per session otherwise."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        factory: Callable[[], QueryClient] | None = None,
        server: bool | None = None,
    ) -> None:
        config = settings or get_settings()
        self._factory = factory or (lambda: make_query_client(config))
        self.server = config.is_server_runtime if server is None else server
        self._session_client: QueryClient | None = None

    def get(self) -> QueryClient:
        if self.server:
            return self._factory()
        if self._session_client is None:
            self._session_client = self._factory()
        return self._session_client
