"""
NodeBase Backend: Procedure Registry and Direct Caller
=======================================================

What:  Named server operations that can be invoked in-process (Direct
       Caller) or over HTTP (the /api/trpc bridge) with identical results.
How:   A `ProcedureRouter` maps names to `Procedure`s. A procedure is a kind
       (query or mutation), an optional pydantic input type and an async
       resolver `resolver(ctx, input)`.

Declaring a procedure:

    router = ProcedureRouter()

    @router.query("getUsers")
    async def get_users(ctx, _input):
        return await ctx.users.list_users(ctx.db)

Calling it directly:

    caller = router.create_caller(ctx, timeout=10)
    users = await caller.getUsers()
    users = await caller.call("getUsers")

Errors:
    Unknown name through call()     → ProcedureNotFound
    Unknown attribute on a Caller   → AttributeError
    Input rejected by its type      → ValidationError (BAD_REQUEST)
    Resolver exceeds the timeout    → ProcedureTimeout
    Anything the resolver raises    → propagated unchanged
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterator, Mapping, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from nodebase.exceptions import ProcedureNotFound, ProcedureTimeout, ValidationError

logger = logging.getLogger(__name__)

QUERY = "query"
MUTATION = "mutation"

Resolver = Callable[[Any, Any], Awaitable[Any]]


class Procedure:
    """One registered operation."""

    def __init__(
        self,
        name: str,
        kind: str,
        resolver: Resolver,
        input_type: Optional[Any] = None,
    ):
        if kind not in (QUERY, MUTATION):
            raise ValueError(f"Unknown procedure kind: {kind}")
        self.name = name
        self.kind = kind
        self.resolver = resolver
        self.input_type = input_type
        self._adapter = TypeAdapter(input_type) if input_type is not None else None

    @property
    def is_mutation(self) -> bool:
        return self.kind == MUTATION

    def parse_input(self, raw_input: Any) -> Any:
        """Validates raw JSON input. Procedures without an input type get None."""
        if self._adapter is None:
            return None
        try:
            return self._adapter.validate_python(raw_input)
        except PydanticValidationError as e:
            raise ValidationError(
                message=f'Invalid input for procedure "{self.name}"',
                context={"procedure": self.name, "errors": e.errors(include_url=False)},
            ) from e

    async def invoke(self, ctx: Any, raw_input: Any = None, timeout: Optional[float] = None) -> Any:
        value = self.parse_input(raw_input)
        if timeout is None:
            return await self.resolver(ctx, value)
        try:
            return await asyncio.wait_for(self.resolver(ctx, value), timeout)
        except asyncio.TimeoutError:
            logger.warning("Procedure %s timed out after %ss", self.name, timeout)
            raise ProcedureTimeout(self.name, timeout) from None

    def __repr__(self) -> str:
        return f"<Procedure(name='{self.name}', kind='{self.kind}')>"


class ProcedureRouter:
    """Registry of procedures, keyed by name."""

    def __init__(self) -> None:
        self._procedures: Dict[str, Procedure] = {}

    @property
    def procedures(self) -> Mapping[str, Procedure]:
        return dict(self._procedures)

    def add(self, procedure: Procedure) -> Procedure:
        if procedure.name in self._procedures:
            raise ValueError(f"Procedure already registered: {procedure.name}")
        self._procedures[procedure.name] = procedure
        return procedure

    def _register(self, name: str, kind: str, input_type: Optional[Any]):
        def decorator(resolver: Resolver) -> Resolver:
            self.add(Procedure(name, kind, resolver, input_type))
            return resolver
        return decorator

    def query(self, name: str, input: Optional[Any] = None):
        return self._register(name, QUERY, input)

    def mutation(self, name: str, input: Optional[Any] = None):
        return self._register(name, MUTATION, input)

    def get(self, name: str) -> Procedure:
        try:
            return self._procedures[name]
        except KeyError:
            raise ProcedureNotFound(name) from None

    def create_caller(self, ctx: Any, timeout: Optional[float] = None) -> "Caller":
        return Caller(self, ctx, timeout)

    def __contains__(self, name: object) -> bool:
        return name in self._procedures

    def __iter__(self) -> Iterator[Procedure]:
        return iter(list(self._procedures.values()))

    def __len__(self) -> int:
        return len(self._procedures)


def merge_routers(*routers: ProcedureRouter) -> ProcedureRouter:
    """Combines routers into a new one. Duplicate names raise ValueError."""
    merged = ProcedureRouter()
    for router in routers:
        for procedure in router:
            merged.add(procedure)
    return merged


class Caller:
    """
    In-process invoker bound to one context.

    Every registered procedure is exposed as an async method of the same
    name, taking the input as its only (optional) argument.
    """

    def __init__(self, router: ProcedureRouter, ctx: Any, timeout: Optional[float] = None):
        self._router = router
        self._ctx = ctx
        self._timeout = timeout

    async def call(self, name: str, input: Any = None) -> Any:
        procedure = self._router.get(name)
        logger.debug("Direct call %s", name)
        return await procedure.invoke(self._ctx, input, self._timeout)

    def __getattr__(self, name: str) -> Callable[..., Awaitable[Any]]:
        if name.startswith("_") or name not in self._router:
            raise AttributeError(f"No procedure named {name!r}")

        async def invoke(input: Any = None) -> Any:
            return await self.call(name, input)

        invoke.__name__ = name
        return invoke
