"""Query cache: keyed procedure results, freshness, retries, (de)hydration."""

from nodebase.query.client import (
    DefaultOptions,
    Query,
    QueryCache,
    QueryClient,
    QueryOptions,
    QueryState,
    hash_query_key,
    make_query_client,
)
from nodebase.query.hydration import dehydrate, hydrate
from nodebase.query.suspense import QueryResult, peek_query, suspense_query

__all__ = [
    "DefaultOptions",
    "Query",
    "QueryCache",
    "QueryClient",
    "QueryOptions",
    "QueryResult",
    "QueryState",
    "dehydrate",
    "hash_query_key",
    "hydrate",
    "make_query_client",
    "peek_query",
    "suspense_query",
]
