"""
NodeBase Backend: Dehydration and Hydration
============================================

What:  Moves query cache contents from the server render into the page and
       back into a client-side cache.
How:   `dehydrate` produces a JSON-only snapshot of the selected entries.
       `hydrate` merges a snapshot into a client, keeping whichever side
       fetched last.

Snapshot Shape:
    {
        "queries": [
            {
                "query_key": ["getUsers"],
                "query_hash": "[\"getUsers\"]",
                "state": {
                    "status": "success",
                    "data": [...],
                    "data_updated_at": 1700000000.0,
                    "error": null,
                    "error_updated_at": 0.0,
                    "fetch_failure_count": 0,
                    "is_invalidated": false
                }
            }
        ]
    }

Errors never cross the boundary: error entries are not selected by the
default predicate, and the `error` field is always null.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from nodebase.query.client import (
    PENDING,
    SUCCESS,
    Query,
    QueryClient,
    QueryKey,
    QueryState,
    normalize_query_key,
)

logger = logging.getLogger(__name__)

DehydratedState = Dict[str, List[Dict[str, Any]]]


def _dehydrate_query(query: Query, serialize_data: Callable[[Any], Any]) -> Dict[str, Any]:
    state = query.state
    return {
        "query_key": serialize_data(list(query.query_key)),
        "query_hash": query.query_hash,
        "state": {
            "status": state.status,
            "data": serialize_data(state.data) if state.has_data else None,
            "data_updated_at": state.data_updated_at,
            "error": None,
            "error_updated_at": state.error_updated_at,
            "fetch_failure_count": state.fetch_failure_count,
            "is_invalidated": state.is_invalidated,
        },
    }


def dehydrate(
    client: QueryClient,
    should_dehydrate_query: Optional[Callable[[Query], bool]] = None,
    serialize_data: Optional[Callable[[Any], Any]] = None,
) -> DehydratedState:
    """
    Snapshots the client's cache.

    Args:
        client: The cache to snapshot.
        should_dehydrate_query: Entry filter. Defaults to the client's
            dehydrate options (pending or success).
        serialize_data: JSON conversion of data. Defaults to the client's
            dehydrate options (jsonable_encoder).
    """
    options = client.get_default_options().dehydrate
    should = should_dehydrate_query or options.should_dehydrate_query
    serialize = serialize_data or options.serialize_data

    queries = [
        _dehydrate_query(query, serialize)
        for query in client.query_cache
        if should(query)
    ]
    logger.debug("Dehydrated %d queries", len(queries))
    return {"queries": queries}


def _read_entry(item: Any) -> Optional[Tuple[QueryKey, Dict[str, Any], str, float]]:
    """Key, state, status and timestamp of a snapshot entry, or None when malformed."""
    if not isinstance(item, dict) or not isinstance(item.get("query_key"), (list, tuple)):
        return None
    incoming = item.get("state") or {}
    if not isinstance(incoming, dict):
        return None
    try:
        updated_at = float(incoming.get("data_updated_at") or 0.0)
    except (TypeError, ValueError):
        return None
    status = incoming.get("status", PENDING)
    return normalize_query_key(item["query_key"]), incoming, status, updated_at


def hydrate(
    client: QueryClient,
    dehydrated_state: Optional[Dict[str, Any]],
    deserialize_data: Optional[Callable[[Any], Any]] = None,
) -> int:
    """
    Merges a snapshot into `client`. Returns the number of entries written.

    Merge rules:
        - an existing entry whose data is as new or newer is kept
        - a pending snapshot entry never overwrites an existing entry
        - a pending snapshot entry with no local counterpart creates a
          pending entry, so the first read fetches it
    """
    if not dehydrated_state:
        return 0
    deserialize = deserialize_data or client.get_default_options().hydrate.deserialize_data

    queries = dehydrated_state.get("queries")
    if not isinstance(queries, list):
        logger.warning("Ignoring snapshot without a queries list")
        return 0

    written = 0
    for item in queries:
        entry = _read_entry(item)
        if entry is None:
            logger.warning("Skipping malformed snapshot entry: %r", item)
            continue
        key, incoming, status, updated_at = entry

        existing = client.query_cache.get(key)
        if existing is not None:
            if status != SUCCESS or existing.state.data_updated_at >= updated_at:
                continue
        elif status not in (PENDING, SUCCESS):
            continue

        query = client.build_query(key)
        if status == SUCCESS:
            fetch_status = query.state.fetch_status
            query.state = QueryState(
                status=SUCCESS,
                fetch_status=fetch_status,
                data=deserialize(incoming.get("data")),
                data_updated_at=updated_at,
                is_invalidated=bool(incoming.get("is_invalidated", False)),
            )
        written += 1

    logger.debug("Hydrated %d queries", written)
    return written
