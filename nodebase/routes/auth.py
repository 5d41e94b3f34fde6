"""
NodeBase Backend: Sign-in Routes
=================================

What:  Email + password login, signup with automatic sign-in, and logout.
How:   HTML forms posted as application/x-www-form-urlencoded. Every POST
       answers with a 303 redirect (post/redirect/get). Form errors are
       kept in the session and shown once on the next GET.

Routes:
    GET  /login    login form            (anonymous only)
    POST /login    check credentials     → /      or back to /login
    GET  /signup   signup form           (anonymous only)
    POST /signup   create + sign in      → /      or back to /signup
    POST /logout   clear the session     → /login
"""

import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette import status

from nodebase.auth import require_unauth, sign_in, sign_out
from nodebase.database import get_db_session
from nodebase.exceptions import ValidationError
from nodebase.schemas.user import LoginForm, SignupForm

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])

LOGIN_ERROR_KEY = "login_error"
SIGNUP_ERROR_KEY = "signup_error"


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


def _first_error(exc: PydanticValidationError) -> str:
    error = exc.errors(include_url=False)[0]
    return str(error.get("msg", "Invalid input")).removeprefix("Value error, ")


@router.get(
    "/login",
    response_class=HTMLResponse,
    name="show_login",
    dependencies=[Depends(require_unauth)],
)
async def login_form(request: Request):
    error = request.session.pop(LOGIN_ERROR_KEY, None)
    return request.app.state.templates.TemplateResponse(
        request, "login.html", {"error": error}
    )


@router.post("/login", name="process_login", dependencies=[Depends(require_unauth)])
async def process_login(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        form = LoginForm(email=email, password=password)
    except PydanticValidationError:
        request.session[LOGIN_ERROR_KEY] = "Invalid email or password."
        return _redirect("/login")

    user = await request.app.state.user_service.authenticate(db, form.email, form.password)
    if user is None:
        logger.info("Failed sign-in attempt")
        request.session[LOGIN_ERROR_KEY] = "Invalid email or password."
        return _redirect("/login")

    sign_in(request, user.id)
    logger.info("User %s signed in", user.id)
    return _redirect("/")


@router.get(
    "/signup",
    response_class=HTMLResponse,
    name="show_signup",
    dependencies=[Depends(require_unauth)],
)
async def signup_form(request: Request):
    error = request.session.pop(SIGNUP_ERROR_KEY, None)
    return request.app.state.templates.TemplateResponse(
        request, "signup.html", {"error": error}
    )


@router.post("/signup", name="process_signup", dependencies=[Depends(require_unauth)])
async def process_signup(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    confirm_password: str = Form(...),
    name: str = Form(""),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        form = SignupForm(
            name=name,
            email=email,
            password=password,
            confirm_password=confirm_password,
        )
    except PydanticValidationError as e:
        request.session[SIGNUP_ERROR_KEY] = _first_error(e)
        return _redirect("/signup")

    try:
        user = await request.app.state.user_service.create_user(
            db, form.email, form.password, name=form.name
        )
    except ValidationError as e:
        request.session[SIGNUP_ERROR_KEY] = e.message
        return _redirect("/signup")

    # New accounts are signed in straight away.
    sign_in(request, user.id)
    return _redirect("/")


@router.post("/logout", name="logout")
async def logout(request: Request):
    sign_out(request)
    return _redirect("/login")
