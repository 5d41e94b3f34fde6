"""
NodeBase Backend: Server Render Scope
======================================

What:  Everything a server-rendered page needs to prefetch procedure data
       and hand it to the client: a request-local query client, a Direct
       Caller bound to the request's context, and an options proxy.
How:   The page handler issues prefetches (scheduled as tasks, the handler
       keeps going), then calls `dehydrate()`, which waits for every issued
       prefetch before snapshotting the cache.

Phases (logged at DEBUG):

    start ──prefetch()──▶ prefetch-issued ──dehydrate()──▶ dehydrate
                                                              │
                                               emitted() ──▶ emit-html

Invariants:
    - One RenderScope, and one QueryClient, per request. Never shared.
    - Prefetched entries are settled (success or error) before dehydration.
    - The render query client does not retry; the store retries itself.
    - Procedure calls made through the scope share the request's database
      session and run one at a time.
"""

import asyncio
import logging
from typing import Any, List, Optional

from fastapi import Depends, Request

from nodebase.config import Settings, settings as default_settings
from nodebase.query.client import QueryClient, QueryOptions, make_query_client
from nodebase.query.hydration import DehydratedState, dehydrate
from nodebase.rpc.app_router import get_router
from nodebase.rpc.context import RequestScope, get_request_scope
from nodebase.rpc.options import OptionsProxy
from nodebase.rpc.procedures import Caller, ProcedureRouter

logger = logging.getLogger(__name__)

START = "start"
PREFETCH_ISSUED = "prefetch-issued"
DEHYDRATE = "dehydrate"
EMIT_HTML = "emit-html"


class RenderScope:
    def __init__(
        self,
        request_scope: RequestScope,
        router: ProcedureRouter,
        settings: Optional[Settings] = None,
        query_client: Optional[QueryClient] = None,
    ):
        s = settings or default_settings
        self.query_client = query_client or make_query_client(s, retry=0)
        self.caller: Caller = router.create_caller(
            request_scope.context(), timeout=s.rpc_timeout_seconds
        )
        self.rpc = OptionsProxy(self._call, names=router.procedures)
        self.phase = START
        self._session_lock = asyncio.Lock()
        self._pending: List["asyncio.Task[None]"] = []

    async def _call(self, name: str, input: Any) -> Any:
        async with self._session_lock:
            return await self.caller.call(name, input)

    def _enter(self, phase: str) -> None:
        if phase != self.phase:
            logger.debug("Render scope %s -> %s", self.phase, phase)
            self.phase = phase

    def prefetch(self, options: QueryOptions) -> "asyncio.Task[None]":
        """Schedules a prefetch into the render cache and returns at once."""
        if self.phase in (DEHYDRATE, EMIT_HTML):
            raise RuntimeError("Cannot prefetch after the cache has been dehydrated")
        task = asyncio.get_running_loop().create_task(
            self.query_client.prefetch_query(options)
        )
        self._pending.append(task)
        self._enter(PREFETCH_ISSUED)
        return task

    async def dehydrate(self) -> DehydratedState:
        """Waits for issued prefetches, then snapshots the render cache."""
        if self._pending:
            pending, self._pending = self._pending, []
            await asyncio.gather(*pending)
        self._enter(DEHYDRATE)
        return dehydrate(self.query_client)

    def emitted(self) -> None:
        self._enter(EMIT_HTML)


async def get_render_scope(
    request: Request,
    scope: RequestScope = Depends(get_request_scope),
    router: ProcedureRouter = Depends(get_router),
) -> RenderScope:
    return RenderScope(scope, router, getattr(request.app.state, "settings", None))
