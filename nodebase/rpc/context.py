"""
NodeBase Backend: Procedure Context
====================================

What:  The value every procedure receives as `ctx`.
How:   `create_context` builds it from the request and its database session.
       `RequestScope` memoizes it so all procedure calls made while serving
       one request (direct calls and prefetches alike) share one context.
       A FastAPI dependency creates one scope per request, so nothing
       leaks between requests.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from nodebase.database import get_db_session
from nodebase.services.user_service import UserService

ANONYMOUS = "anonymous"
SESSION_USER_KEY = "user_id"


@dataclass(frozen=True)
class ProcedureContext:
    caller_id: str
    db: AsyncSession
    users: UserService
    request_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.caller_id != ANONYMOUS


def session_user_id(request: Request) -> Optional[str]:
    """The signed-in user's id from the session cookie, if any."""
    if "session" not in request.scope:
        return None
    user_id = request.session.get(SESSION_USER_KEY)
    return str(user_id) if user_id is not None else None


def create_context(request: Request, db: AsyncSession) -> ProcedureContext:
    users = getattr(request.app.state, "user_service", None)
    if users is None:
        users = UserService(getattr(request.app.state, "settings", None))
    return ProcedureContext(
        caller_id=session_user_id(request) or ANONYMOUS,
        db=db,
        users=users,
        request_id=getattr(request.state, "request_id", None),
    )


class RequestScope:
    """Per-request holder; `context()` returns the same object every time."""

    def __init__(self, request: Request, db: AsyncSession):
        self.request = request
        self.db = db
        self._context: Optional[ProcedureContext] = None

    def context(self) -> ProcedureContext:
        if self._context is None:
            self._context = create_context(self.request, self.db)
        return self._context


async def get_request_scope(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> RequestScope:
    return RequestScope(request, db)
