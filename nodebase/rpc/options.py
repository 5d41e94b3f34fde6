"""
Options proxy: turns a procedure name into query cache options.

    proxy = OptionsProxy(fetch)
    options = proxy.getUsers.query_options()
    options.query_key     # ("getUsers",)
    await options.query_fn()   # fetch("getUsers", None)

The same proxy type is used by the server render scope (fetch = Direct
Caller) and by the client runtime (fetch = HTTP client), so both sides
derive identical keys and dehydrated entries line up after hydration.
"""

from typing import Any, Awaitable, Callable, Collection, Optional

from nodebase.query.client import QueryKey, QueryOptions

Fetcher = Callable[[str, Any], Awaitable[Any]]


def procedure_query_key(name: str, input: Any = None) -> QueryKey:
    if input is None:
        return (name,)
    return (name, input)


class ProcedureOptions:
    def __init__(self, name: str, fetch: Fetcher):
        self.name = name
        self._fetch = fetch

    def query_key(self, input: Any = None) -> QueryKey:
        return procedure_query_key(self.name, input)

    def query_options(
        self,
        input: Any = None,
        *,
        stale_time: Optional[float] = None,
        retry: Optional[int] = None,
    ) -> QueryOptions:
        fetch, name = self._fetch, self.name

        async def query_fn() -> Any:
            return await fetch(name, input)

        return QueryOptions(
            query_key=self.query_key(input),
            query_fn=query_fn,
            stale_time=stale_time,
            retry=retry,
        )


class OptionsProxy:
    """Attribute access by procedure name; `names` restricts the allowed set."""

    def __init__(self, fetch: Fetcher, names: Optional[Collection[str]] = None):
        self._fetch = fetch
        self._names = names

    def __getattr__(self, name: str) -> ProcedureOptions:
        if name.startswith("_"):
            raise AttributeError(name)
        if self._names is not None and name not in self._names:
            raise AttributeError(f"No procedure named {name!r}")
        return ProcedureOptions(name, self._fetch)
