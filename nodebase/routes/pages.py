"""
NodeBase Backend: Server-rendered Pages
========================================

What:  The signed-in pages.
How:   Both pages are guarded by `require_auth`, declared first so an
       anonymous visitor is redirected before any procedure runs.

    GET /            prefetches getUsers into a request-local query cache,
                     renders the list (or a "Loading..." fallback when the
                     prefetch failed) and embeds the dehydrated cache in
                     <script id="__NODEBASE_STATE__" type="application/json">
    GET /dashboard   calls getUsers directly, without the cache, and prints
                     the JSON result
"""

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse

from nodebase.auth import require_auth
from nodebase.query.suspense import peek_query
from nodebase.rpc.app_router import get_router
from nodebase.rpc.context import RequestScope, get_request_scope
from nodebase.rpc.procedures import ProcedureRouter
from nodebase.rpc.server import RenderScope, get_render_scope

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Pages"])

STATE_ELEMENT_ID = "__NODEBASE_STATE__"


@router.get("/", response_class=HTMLResponse, name="home")
async def home(
    request: Request,
    _user_id: str = Depends(require_auth),
    render: RenderScope = Depends(get_render_scope),
):
    options = render.rpc.getUsers.query_options()
    render.prefetch(options)

    state = await render.dehydrate()
    result = peek_query(render.query_client, options.query_key)
    if result.is_error:
        logger.warning("Rendering users fallback: prefetch failed")

    response = request.app.state.templates.TemplateResponse(
        request,
        "index.html",
        {
            "users": result.data if result.is_success else None,
            "state": state,
            "state_id": STATE_ELEMENT_ID,
        },
    )
    render.emitted()
    return response


@router.get("/dashboard", response_class=HTMLResponse, name="dashboard")
async def dashboard(
    request: Request,
    _user_id: str = Depends(require_auth),
    scope: RequestScope = Depends(get_request_scope),
    procedures: ProcedureRouter = Depends(get_router),
):
    caller = procedures.create_caller(
        scope.context(), timeout=request.app.state.settings.rpc_timeout_seconds
    )
    users = await caller.getUsers()
    return request.app.state.templates.TemplateResponse(
        request,
        "dashboard.html",
        {"users_json": json.dumps(jsonable_encoder(users), indent=2)},
    )
