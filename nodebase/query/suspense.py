"""
Suspending and non-blocking reads over a QueryClient.

`suspense_query` is what a view awaits before it can render; `peek_query`
never waits and reports which state the entry is in so the caller can pick
fallback markup.
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from nodebase.query.client import ERROR, PENDING, SUCCESS, QueryClient, QueryOptions


@dataclass(frozen=True)
class QueryResult:
    status: str
    data: Any = None
    error: Optional[BaseException] = None
    is_stale: bool = True
    is_fetching: bool = False

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING

    @property
    def is_success(self) -> bool:
        return self.status == SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status == ERROR


def peek_query(
    client: QueryClient,
    query_key: Sequence[Any],
    stale_time: Optional[float] = None,
) -> QueryResult:
    """Current state of an entry; a missing entry reads as pending."""
    query = client.query_cache.get(query_key)
    if query is None:
        return QueryResult(status=PENDING)

    if stale_time is None:
        stale_time = client.get_default_options().queries.stale_time
    state = query.state
    return QueryResult(
        status=state.status,
        data=state.data,
        error=state.error,
        is_stale=query.is_stale(stale_time, client.now()),
        is_fetching=query.is_fetching,
    )


async def suspense_query(client: QueryClient, options: QueryOptions) -> Any:
    """
    Returns the entry's data once it is available.

    Fresh data is returned at once. Stale data is also returned at once,
    with a refetch started in the background. A failed refetch keeps the
    last good data, and reads keep serving it. Otherwise the read waits on
    the (shared) fetch and raises its error.
    """
    query = client.build_query(options.query_key)
    if query.state.status == SUCCESS or (query.state.status == ERROR and query.state.has_data):
        if query.is_stale(client.stale_time_for(options), client.now()):
            client.start_fetch(query, options)
        return query.state.data
    return await client.fetch_into(query, options)
