"""
NodeBase Backend: User Service (Store Access)
==============================================

What:  Reads and writes users through an async SQLAlchemy session.
How:   Every statement runs through `_execute`, which retries transient
       driver errors with tenacity and converts any remaining failure into
       `StoreError`. Callers never see SQLAlchemy exceptions.
Who:   The `getUsers` procedure (through the procedure context) and the
       sign-in / sign-up routes.
When:  Per call. The service holds configuration only; the session is
       passed in by the caller and belongs to the current request.

Retry Policy:
    Retried:     OperationalError, InterfaceError, ConnectionError, TimeoutError
    Attempts:    settings.store_retry_attempts (default 3, first call included)
    Backoff:     exponential from store_retry_min_wait, capped at
                 store_retry_max_wait, plus up to store_retry_min_wait jitter
    Not retried: everything else (programming errors, constraint violations)

    The session is rolled back before each retry so the next attempt starts
    from a clean transaction, and after a non-transient failure so the
    session stays usable for the rest of the request.
"""

import logging
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from nodebase.config import Settings, settings as default_settings
from nodebase.exceptions import StoreError, ValidationError
from nodebase.models.user import User
from nodebase.security import hash_password, verify_password

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (OperationalError, InterfaceError, ConnectionError, TimeoutError)


class UserService:
    """
    Store operations on the `users` table.

    Responsibilities:
        - list_users(): every user, ordered by id
        - get_user_by_email(): single lookup
        - create_user(): signup, rejects duplicate emails
        - authenticate(): email + password check
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            stop=stop_after_attempt(self.settings.store_retry_attempts),
            wait=wait_exponential_jitter(
                initial=self.settings.store_retry_min_wait,
                max=self.settings.store_retry_max_wait,
                jitter=self.settings.store_retry_min_wait,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def _execute(self, db: AsyncSession, statement: Any, operation: str) -> Any:
        """
        Runs one statement with the retry policy.

        Raises:
            StoreError: The statement failed for good (retries exhausted or
                a non-transient error).
        """
        result = None
        try:
            async for attempt in self._retrying():
                with attempt:
                    try:
                        result = await db.execute(statement)
                    except TRANSIENT_ERRORS:
                        await db.rollback()
                        raise
        except TRANSIENT_ERRORS as e:
            logger.error("Store operation %s failed after retries: %s", operation, str(e), exc_info=True)
            raise StoreError(
                context={"operation": operation, "error_type": type(e).__name__},
            ) from e
        except Exception as e:
            logger.error("Store operation %s failed: %s", operation, str(e), exc_info=True)
            await db.rollback()
            raise StoreError(
                context={"operation": operation, "error_type": type(e).__name__},
            ) from e
        return result

    async def list_users(self, db: AsyncSession) -> List[User]:
        """
        Returns every user.

        Ordered by id ascending so repeated calls return a stable sequence.
        An empty table yields an empty list.

        Raises:
            StoreError: The database is unreachable or the query failed.
        """
        result = await self._execute(db, select(User).order_by(User.id), "list_users")
        users = list(result.scalars().all())
        logger.debug("Listed %d users", len(users))
        return users

    async def get_user_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await self._execute(
            db, select(User).where(User.email == email.strip().lower()), "get_user_by_email"
        )
        return result.scalar_one_or_none()

    async def create_user(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        name: Optional[str] = None,
    ) -> User:
        """
        Creates a user with a hashed password.

        Raises:
            ValidationError: A user with this email already exists.
            StoreError: The insert failed for another reason.
        """
        email = email.strip().lower()
        if await self.get_user_by_email(db, email) is not None:
            raise ValidationError(
                message="An account with this email already exists",
                field="email",
            )

        user = User(email=email, name=name, password_hash=hash_password(password))
        db.add(user)
        try:
            await db.flush()
        except IntegrityError as e:
            await db.rollback()
            raise ValidationError(
                message="An account with this email already exists",
                field="email",
            ) from e
        except Exception as e:
            logger.error("Failed to create user %s: %s", email, str(e), exc_info=True)
            await db.rollback()
            raise StoreError(context={"operation": "create_user"}) from e

        logger.info("User %s created", user.id)
        return user

    async def authenticate(self, db: AsyncSession, email: str, password: str) -> Optional[User]:
        """Returns the user when the password matches, None otherwise."""
        user = await self.get_user_by_email(db, email)
        if user is None or not verify_password(password, user.password_hash):
            return None
        return user
