"""
NodeBase Backend: Route Guards
===============================

What:  FastAPI dependencies that gate pages on the session's sign-in state.
How:   The session cookie (Starlette SessionMiddleware) stores the signed-in
       user's id under "user_id". Guards raise `GuardRedirect` subclasses,
       which the handler registered in main.py turns into a 303 redirect.

    require_auth     no user in session  → AuthRequired → /login
    require_unauth   user in session     → AlreadyAuthenticated → /

Guards are declared before any dependency that opens a render scope, so a
rejected request never reaches a procedure.
"""

from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette import status

from nodebase.exceptions import AlreadyAuthenticated, AuthRequired, GuardRedirect
from nodebase.rpc.context import SESSION_USER_KEY, session_user_id


async def require_auth(request: Request) -> str:
    """Returns the signed-in user's id or redirects to the login page."""
    user_id = session_user_id(request)
    if user_id is None:
        raise AuthRequired()
    return user_id


async def require_unauth(request: Request) -> None:
    if session_user_id(request) is not None:
        raise AlreadyAuthenticated()


def sign_in(request: Request, user_id: int) -> None:
    request.session.clear()
    request.session[SESSION_USER_KEY] = user_id


def sign_out(request: Request) -> None:
    request.session.clear()


def guard_redirect_response(exc: GuardRedirect) -> RedirectResponse:
    return RedirectResponse(exc.location, status_code=status.HTTP_303_SEE_OTHER)
