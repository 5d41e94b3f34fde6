"""Procedure layer: registry, per-request context, direct caller, render scope, HTTP client."""

from nodebase.rpc.app_router import app_router
from nodebase.rpc.context import ProcedureContext, RequestScope, create_context
from nodebase.rpc.procedures import Caller, Procedure, ProcedureRouter, merge_routers

__all__ = [
    "Caller",
    "Procedure",
    "ProcedureContext",
    "ProcedureRouter",
    "RequestScope",
    "app_router",
    "create_context",
    "merge_routers",
]
