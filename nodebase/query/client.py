"""
NodeBase Backend: Query Client and Query Cache
===============================================

What:  In-memory read-through cache of procedure results, shared in shape
       between server render time and the client runtime.
How:   A `QueryClient` owns a `QueryCache` of `Query` entries, one per
       distinct key hash. Each entry holds its state (pending / success /
       error) and at most one in-flight fetch task. Fetches are retried
       with tenacity according to the client's defaults.
Who:   The render scope (server, one client per request) and the client
       runtime (one client per hydrated page).

Entry Lifecycle:
    build (pending) ──fetch ok──▶ success ──stale_time elapses──▶ stale
          │                          ▲                              │
          └──fetch failed──▶ error ──┴────────── refetch ◀──────────┘

    Idle entries not accessed for gc_time seconds are evicted the next
    time another entry is built. The entry being built is never evicted by
    its own build, so ensure_query_data serves cached data of any age.

Coalescing:
    `Query.start_fetch` returns the running task when one exists, so any
    number of concurrent readers of one key share one underlying call.
    Readers await the task through `asyncio.shield`: a reader that is
    cancelled leaves the fetch running, and its result still lands in the
    cache for later readers.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from fastapi.encoders import jsonable_encoder
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from nodebase.config import Settings, settings as default_settings
from nodebase.exceptions import NodeBaseError

logger = logging.getLogger(__name__)

QueryKey = Tuple[Any, ...]
QueryFn = Callable[[], Awaitable[Any]]
Clock = Callable[[], float]

PENDING = "pending"
SUCCESS = "success"
ERROR = "error"

IDLE = "idle"
FETCHING = "fetching"


# ══════════════════════════════════════════════════════════════════════════
# Keys
# ══════════════════════════════════════════════════════════════════════════

def normalize_query_key(key: Any) -> QueryKey:
    """Turns a list/tuple (or a bare value) into the tuple form used as key."""
    if isinstance(key, (list, tuple)):
        return tuple(key)
    return (key,)


def hash_query_key(key: Sequence[Any]) -> str:
    """
    Canonical JSON of the key.

    Lists and tuples hash identically and dict keys are sorted, so a key
    that went through JSON (dehydration) hashes like the original.
    """
    return json.dumps(list(key), sort_keys=True, separators=(",", ":"), default=str)


def key_matches(key: Sequence[Any], prefix: Sequence[Any]) -> bool:
    """True when `prefix` is a leading slice of `key`."""
    if len(prefix) > len(key):
        return False
    return hash_query_key(key[: len(prefix)]) == hash_query_key(prefix)


# ══════════════════════════════════════════════════════════════════════════
# Options
# ══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class QueryOptions:
    """What to cache (`query_key`) and how to load it (`query_fn`)."""

    query_key: QueryKey
    query_fn: QueryFn
    stale_time: Optional[float] = None
    retry: Optional[int] = None


@dataclass
class QueryState:
    status: str = PENDING
    fetch_status: str = IDLE
    data: Any = None
    data_updated_at: float = 0.0
    error: Optional[BaseException] = None
    error_updated_at: float = 0.0
    fetch_failure_count: int = 0
    is_invalidated: bool = False

    @property
    def has_data(self) -> bool:
        return self.data_updated_at > 0


def default_should_dehydrate_query(query: "Query") -> bool:
    """Pending and successful entries travel to the client; errors do not."""
    return query.state.status in (PENDING, SUCCESS)


def _identity(value: Any) -> Any:
    return value


@dataclass
class QueryDefaults:
    stale_time: float = 30.0
    gc_time: float = 300.0
    retry: int = 2
    retry_delay: float = 1.0
    max_retry_delay: float = 30.0


@dataclass
class DehydrateOptions:
    should_dehydrate_query: Callable[["Query"], bool] = default_should_dehydrate_query
    serialize_data: Callable[[Any], Any] = jsonable_encoder


@dataclass
class HydrateOptions:
    deserialize_data: Callable[[Any], Any] = _identity


@dataclass
class DefaultOptions:
    queries: QueryDefaults = field(default_factory=QueryDefaults)
    dehydrate: DehydrateOptions = field(default_factory=DehydrateOptions)
    hydrate: HydrateOptions = field(default_factory=HydrateOptions)


def _is_retryable(error: BaseException) -> bool:
    # Client errors (bad input, unknown procedure) fail the same way every time.
    if isinstance(error, NodeBaseError) and 400 <= error.status_code < 500:
        return False
    return True


# ══════════════════════════════════════════════════════════════════════════
# Cache Entries
# ══════════════════════════════════════════════════════════════════════════

class Query:
    """One cache entry: key, state and the in-flight fetch, if any."""

    def __init__(self, query_key: QueryKey, now: float, state: Optional[QueryState] = None):
        self.query_key = query_key
        self.query_hash = hash_query_key(query_key)
        self.state = state or QueryState()
        self.last_accessed = now
        self.query_fn: Optional[QueryFn] = None
        self._task: Optional["asyncio.Task[Tuple[bool, Any]]"] = None

    @property
    def is_fetching(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_stale(self, stale_time: float, now: float) -> bool:
        if self.state.is_invalidated or not self.state.has_data:
            return True
        return now - self.state.data_updated_at >= stale_time

    def start_fetch(
        self,
        query_fn: QueryFn,
        retrying: AsyncRetrying,
        clock: Clock,
    ) -> "asyncio.Task[Tuple[bool, Any]]":
        """Starts a fetch, or returns the one already running for this key."""
        if self.is_fetching:
            return self._task  # type: ignore[return-value]
        self.query_fn = query_fn
        self.state.fetch_status = FETCHING
        self._task = asyncio.get_running_loop().create_task(
            self._run(query_fn, retrying, clock),
            name=f"query-fetch:{self.query_hash}",
        )
        return self._task

    async def _run(
        self,
        query_fn: QueryFn,
        retrying: AsyncRetrying,
        clock: Clock,
    ) -> Tuple[bool, Any]:
        """
        Runs the fetch and records its outcome in `state`.

        Returns (True, data) or (False, error). The task itself never
        raises an application error, so a background refetch nobody awaits
        does not leave an unretrieved exception behind.
        """
        attempts = 0
        try:
            data = None
            async for attempt in retrying:
                with attempt:
                    attempts += 1
                    data = await query_fn()
        except asyncio.CancelledError:
            self.state.fetch_status = IDLE
            raise
        except Exception as e:
            self.state.status = ERROR
            self.state.error = e
            self.state.error_updated_at = clock()
            self.state.fetch_failure_count = attempts
            self.state.fetch_status = IDLE
            logger.debug("Query %s failed after %d attempt(s): %s", self.query_hash, attempts, e)
            return False, e

        self.state.status = SUCCESS
        self.state.data = data
        self.state.data_updated_at = clock()
        self.state.error = None
        self.state.fetch_failure_count = 0
        self.state.is_invalidated = False
        self.state.fetch_status = IDLE
        return True, data

    def __repr__(self) -> str:
        return f"<Query(key={self.query_hash}, status='{self.state.status}')>"


class QueryCache:
    """Entries indexed by key hash. Exactly one `Query` per hash."""

    def __init__(self) -> None:
        self._queries: Dict[str, Query] = {}

    def get(self, query_key: Sequence[Any]) -> Optional[Query]:
        return self._queries.get(hash_query_key(normalize_query_key(query_key)))

    def build(self, query_key: Sequence[Any], now: float) -> Query:
        key = normalize_query_key(query_key)
        query_hash = hash_query_key(key)
        query = self._queries.get(query_hash)
        if query is None:
            query = Query(key, now)
            self._queries[query_hash] = query
        query.last_accessed = now
        return query

    def find_all(self, query_key: Optional[Sequence[Any]] = None) -> List[Query]:
        if query_key is None:
            return list(self._queries.values())
        prefix = normalize_query_key(query_key)
        return [q for q in self._queries.values() if key_matches(q.query_key, prefix)]

    def remove(self, query: Query) -> None:
        self._queries.pop(query.query_hash, None)

    def clear(self) -> None:
        self._queries.clear()

    def collect_garbage(self, gc_time: float, now: float, keep: Optional[str] = None) -> int:
        """Evicts idle entries not accessed for `gc_time` seconds, except `keep`."""
        expired = [
            q for q in self._queries.values()
            if q.query_hash != keep
            and not q.is_fetching
            and now - q.last_accessed >= gc_time
        ]
        for query in expired:
            self.remove(query)
        if expired:
            logger.debug("Evicted %d idle queries", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._queries)

    def __iter__(self) -> Iterator[Query]:
        return iter(list(self._queries.values()))


# ══════════════════════════════════════════════════════════════════════════
# Client
# ══════════════════════════════════════════════════════════════════════════

class QueryClient:
    """
    Front door to the cache.

    Operations:
        fetch_query()        fresh data from cache, else fetch (raises on error)
        prefetch_query()     fetch_query() that records failures instead of raising
        ensure_query_data()  cached data regardless of age, else fetch
        get/set_query_data() direct cache access
        get_query_state()    snapshot of an entry's state
        invalidate_queries() mark entries stale
        remove_queries()     drop entries
    """

    def __init__(
        self,
        default_options: Optional[DefaultOptions] = None,
        clock: Clock = time.time,
    ):
        self._defaults = default_options or DefaultOptions()
        self._clock = clock
        self.query_cache = QueryCache()

    def get_default_options(self) -> DefaultOptions:
        return self._defaults

    def now(self) -> float:
        return self._clock()

    def stale_time_for(self, options: QueryOptions) -> float:
        if options.stale_time is not None:
            return options.stale_time
        return self._defaults.queries.stale_time

    def _retrying(self, retry: Optional[int]) -> AsyncRetrying:
        defaults = self._defaults.queries
        retries = defaults.retry if retry is None else retry
        return AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(retries + 1),
            wait=wait_exponential(
                multiplier=defaults.retry_delay,
                max=defaults.max_retry_delay,
            ),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )

    def build_query(self, query_key: Sequence[Any]) -> Query:
        now = self.now()
        self.query_cache.collect_garbage(
            self._defaults.queries.gc_time,
            now,
            keep=hash_query_key(normalize_query_key(query_key)),
        )
        return self.query_cache.build(query_key, now)

    def start_fetch(self, query: Query, options: QueryOptions) -> "asyncio.Task[Tuple[bool, Any]]":
        """Starts (or joins) a fetch without waiting for it."""
        return query.start_fetch(options.query_fn, self._retrying(options.retry), self._clock)

    async def fetch_into(self, query: Query, options: QueryOptions) -> Any:
        """Starts or joins the fetch for `query` and waits for its outcome."""
        task = self.start_fetch(query, options)
        ok, value = await asyncio.shield(task)
        if not ok:
            raise value
        return value

    async def fetch_query(self, options: QueryOptions) -> Any:
        query = self.build_query(options.query_key)
        if not query.is_stale(self.stale_time_for(options), self.now()):
            return query.state.data
        return await self.fetch_into(query, options)

    async def prefetch_query(self, options: QueryOptions) -> None:
        try:
            await self.fetch_query(options)
        except Exception as e:
            logger.warning(
                "Prefetch of %s failed: %s",
                hash_query_key(options.query_key),
                getattr(e, "message", str(e)),
            )

    async def ensure_query_data(self, options: QueryOptions) -> Any:
        query = self.build_query(options.query_key)
        if query.state.has_data:
            return query.state.data
        return await self.fetch_into(query, options)

    def get_query_data(self, query_key: Sequence[Any]) -> Any:
        query = self.query_cache.get(query_key)
        return query.state.data if query is not None else None

    def set_query_data(self, query_key: Sequence[Any], data: Any) -> Any:
        """Stores `data` (or `data(previous)` when callable) as a fresh success."""
        query = self.build_query(query_key)
        value = data(query.state.data) if callable(data) else data
        query.state.status = SUCCESS
        query.state.data = value
        query.state.data_updated_at = self.now()
        query.state.error = None
        query.state.is_invalidated = False
        return value

    def get_query_state(self, query_key: Sequence[Any]) -> Optional[QueryState]:
        query = self.query_cache.get(query_key)
        return replace(query.state) if query is not None else None

    def invalidate_queries(self, query_key: Optional[Sequence[Any]] = None) -> int:
        queries = self.query_cache.find_all(query_key)
        for query in queries:
            query.state.is_invalidated = True
        return len(queries)

    def remove_queries(self, query_key: Optional[Sequence[Any]] = None) -> int:
        queries = self.query_cache.find_all(query_key)
        for query in queries:
            self.query_cache.remove(query)
        return len(queries)

    def clear(self) -> None:
        self.query_cache.clear()


def make_query_client(
    settings: Optional[Settings] = None,
    *,
    retry: Optional[int] = None,
    clock: Clock = time.time,
) -> QueryClient:
    """
    Builds a new QueryClient from configuration. Every call returns a new
    instance; nothing is shared between callers.

    Args:
        settings: Source of stale/gc/retry values (module settings by default).
        retry: Overrides `query_retry` (the server render passes 0).
        clock: Time source in seconds.
    """
    s = settings or default_settings
    defaults = QueryDefaults(
        stale_time=s.query_stale_time,
        gc_time=s.query_gc_time,
        retry=s.query_retry if retry is None else retry,
        retry_delay=s.query_retry_delay,
        max_retry_delay=s.query_max_retry_delay,
    )
    return QueryClient(DefaultOptions(queries=defaults), clock=clock)
