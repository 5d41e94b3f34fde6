"""
The application's procedures.

    getUsers   query, no input → list[UserRead] (ordered by id)
"""

from typing import Any, List

from fastapi import Request

from nodebase.rpc.context import ProcedureContext
from nodebase.rpc.procedures import ProcedureRouter
from nodebase.schemas.user import UserRead

app_router = ProcedureRouter()


@app_router.query("getUsers")
async def get_users(ctx: ProcedureContext, _input: Any = None) -> List[UserRead]:
    users = await ctx.users.list_users(ctx.db)
    return [UserRead.model_validate(user) for user in users]


def get_router(request: Request) -> ProcedureRouter:
    """FastAPI dependency: the router installed on the app by create_app."""
    return getattr(request.app.state, "rpc_router", app_router)
