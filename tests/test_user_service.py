"""
NodeBase Backend: User Service Tests
=====================================

What we test:
    ✅ list_users returns every user ordered by id (empty table → [])
    ✅ Transient driver errors are retried, then surface as StoreError
    ✅ Non-transient errors are wrapped without retrying and roll the session back
    ✅ Signup rejects duplicate emails; authentication checks the password
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.exc import OperationalError

from nodebase.config import Settings
from nodebase.exceptions import StoreError, ValidationError
from nodebase.services.user_service import UserService


def _transient() -> OperationalError:
    return OperationalError("SELECT users", {}, Exception("connection reset by peer"))


def _service(attempts: int = 3) -> UserService:
    return UserService(
        Settings(store_retry_attempts=attempts, store_retry_min_wait=0, store_retry_max_wait=0)
    )


class TestListUsersWithMockSession:

    @pytest.mark.asyncio
    async def test_returns_rows(self, mock_db_session):
        rows = [MagicMock(id=1), MagicMock(id=2)]
        result = MagicMock()
        result.scalars.return_value.all.return_value = rows
        mock_db_session.execute.return_value = result

        users = await _service().list_users(mock_db_session)

        assert users == rows
        mock_db_session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self, mock_db_session):
        result = MagicMock()
        result.scalars.return_value.all.return_value = []
        mock_db_session.execute = AsyncMock(side_effect=[_transient(), result])

        users = await _service().list_users(mock_db_session)

        assert users == []
        assert mock_db_session.execute.await_count == 2
        mock_db_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retries_exhausted_raise_store_error(self, mock_db_session):
        mock_db_session.execute = AsyncMock(side_effect=_transient())

        with pytest.raises(StoreError) as exc_info:
            await _service(attempts=3).list_users(mock_db_session)

        assert mock_db_session.execute.await_count == 3
        assert exc_info.value.context["operation"] == "list_users"
        # Driver details stay out of the user-facing message
        assert "connection reset" not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_non_transient_error_is_not_retried(self, mock_db_session):
        mock_db_session.execute = AsyncMock(side_effect=RuntimeError("bad SQL"))

        with pytest.raises(StoreError):
            await _service().list_users(mock_db_session)

        assert mock_db_session.execute.await_count == 1
        # The session is left usable for the rest of the request
        mock_db_session.rollback.assert_awaited_once()


class TestUserServiceWithDatabase:

    @pytest.mark.asyncio
    async def test_empty_table_lists_nothing(self, database):
        async with database.session_factory() as db:
            assert await UserService().list_users(db) == []

    @pytest.mark.asyncio
    async def test_list_is_ordered_by_id(self, database, create_users):
        await create_users(3)

        async with database.session_factory() as db:
            users = await UserService().list_users(db)

        assert [u.email for u in users] == [
            "user1@example.com",
            "user2@example.com",
            "user3@example.com",
        ]
        assert [u.id for u in users] == sorted(u.id for u in users)

    @pytest.mark.asyncio
    async def test_create_and_authenticate(self, database):
        service = UserService()
        async with database.session_factory() as db:
            user = await service.create_user(db, "  Ada@Example.com ", "password123", name="Ada")
            await db.commit()

            assert user.id is not None
            assert user.email == "ada@example.com"
            assert user.password_hash != "password123"

            signed_in = await service.authenticate(db, "ADA@example.com", "password123")
            assert signed_in is not None and signed_in.id == user.id
            assert await service.authenticate(db, "ada@example.com", "wrong-password") is None
            assert await service.authenticate(db, "nobody@example.com", "password123") is None

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, database, create_users):
        await create_users(1)

        async with database.session_factory() as db:
            with pytest.raises(ValidationError) as exc_info:
                await UserService().create_user(db, "user1@example.com", "password123")

        assert exc_info.value.field == "email"
