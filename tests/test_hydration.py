"""
NodeBase Backend: Dehydration / Hydration Tests
================================================

What we test:
    ✅ Only pending and successful entries are dehydrated
    ✅ The snapshot is plain JSON (pydantic data serialized)
    ✅ dehydrate → hydrate → dehydrate reproduces the snapshot
    ✅ Merge rules: newer local data wins, pending never overwrites
    ✅ Malformed snapshot entries are skipped
"""

import json
from datetime import datetime, timezone

import pytest

from nodebase.query.client import PENDING, SUCCESS, QueryOptions
from nodebase.query.hydration import dehydrate, hydrate
from nodebase.schemas.user import UserRead
from helpers import CountingFetcher, FakeClock, make_client


def _user(user_id: int) -> UserRead:
    stamp = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
    return UserRead(
        id=user_id,
        email=f"user{user_id}@example.com",
        name=f"User {user_id}",
        created_at=stamp,
        updated_at=stamp,
    )


async def _server_client(clock=None):
    client = make_client(clock)
    await client.prefetch_query(
        QueryOptions(query_key=("getUsers",), query_fn=CountingFetcher(result=[_user(1), _user(2)]))
    )
    await client.prefetch_query(
        QueryOptions(query_key=("broken",), query_fn=CountingFetcher(failures=1))
    )
    client.build_query(("later",))
    return client


class TestDehydrate:

    @pytest.mark.asyncio
    async def test_error_entries_are_not_dehydrated(self):
        client = await _server_client()

        state = dehydrate(client)

        keys = [item["query_key"] for item in state["queries"]]
        assert ["getUsers"] in keys
        assert ["later"] in keys
        assert ["broken"] not in keys

    @pytest.mark.asyncio
    async def test_snapshot_is_json(self):
        client = await _server_client()

        state = json.loads(json.dumps(dehydrate(client)))

        users_entry = next(q for q in state["queries"] if q["query_key"] == ["getUsers"])
        assert users_entry["state"]["status"] == SUCCESS
        assert users_entry["state"]["error"] is None
        assert [u["email"] for u in users_entry["state"]["data"]] == [
            "user1@example.com",
            "user2@example.com",
        ]

    @pytest.mark.asyncio
    async def test_custom_predicate(self):
        client = await _server_client()

        state = dehydrate(client, should_dehydrate_query=lambda q: q.state.status == SUCCESS)

        assert [item["query_key"] for item in state["queries"]] == [["getUsers"]]


class TestHydrate:

    @pytest.mark.asyncio
    async def test_round_trip_is_stable(self):
        """Hydrating a snapshot and dehydrating again yields the same snapshot."""
        server = await _server_client()
        snapshot = json.loads(json.dumps(dehydrate(server)))

        browser = make_client()
        hydrate(browser, snapshot)

        assert dehydrate(browser) == snapshot
        assert browser.get_query_state(("later",)).status == PENDING
        assert len(browser.get_query_data(("getUsers",))) == 2

    def test_newer_local_data_is_kept(self):
        clock = FakeClock(start=2000.0)
        browser = make_client(clock)
        browser.set_query_data(("getUsers",), ["local"])
        snapshot = {
            "queries": [{
                "query_key": ["getUsers"],
                "query_hash": '["getUsers"]',
                "state": {"status": SUCCESS, "data": ["server"], "data_updated_at": 1000.0},
            }]
        }

        assert hydrate(browser, snapshot) == 0
        assert browser.get_query_data(("getUsers",)) == ["local"]

    def test_older_local_data_is_replaced(self):
        clock = FakeClock(start=500.0)
        browser = make_client(clock)
        browser.set_query_data(("getUsers",), ["local"])
        snapshot = {
            "queries": [{
                "query_key": ["getUsers"],
                "query_hash": '["getUsers"]',
                "state": {"status": SUCCESS, "data": ["server"], "data_updated_at": 1000.0},
            }]
        }

        assert hydrate(browser, snapshot) == 1
        assert browser.get_query_data(("getUsers",)) == ["server"]
        assert browser.get_query_state(("getUsers",)).data_updated_at == 1000.0

    def test_pending_never_overwrites(self):
        browser = make_client()
        browser.set_query_data(("getUsers",), ["local"])
        snapshot = {
            "queries": [{
                "query_key": ["getUsers"],
                "query_hash": '["getUsers"]',
                "state": {"status": PENDING, "data": None, "data_updated_at": 0},
            }]
        }

        hydrate(browser, snapshot)

        assert browser.get_query_data(("getUsers",)) == ["local"]
        assert browser.get_query_state(("getUsers",)).status == SUCCESS

    def test_empty_or_missing_snapshot(self):
        browser = make_client()
        assert hydrate(browser, None) == 0
        assert hydrate(browser, {"queries": []}) == 0
        assert len(browser.query_cache) == 0

    def test_malformed_entries_are_skipped(self):
        browser = make_client()
        snapshot = {
            "queries": [
                {"state": {"status": "success", "data": 1}},
                "not-an-entry",
                {"query_key": ["bad-time"], "state": {"status": "success", "data_updated_at": "soon"}},
                {"query_key": ["getUsers"], "state": {"status": "success", "data": [], "data_updated_at": 5}},
            ]
        }

        assert hydrate(browser, snapshot) == 1
        assert browser.get_query_data(("getUsers",)) == []
        assert len(browser.query_cache) == 1

    def test_snapshot_without_query_list(self):
        browser = make_client()
        assert hydrate(browser, {"queries": "nope"}) == 0
        assert len(browser.query_cache) == 0
