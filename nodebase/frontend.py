"""
NodeBase Backend: Client Runtime
=================================

What:  The client half of the render pipeline, for consumers of the
       server-rendered pages (the users view, end-to-end tests, scripts).
How:   `HydratedPage.from_html` extracts the dehydrated cache embedded by
       the home page and hydrates a fresh client QueryClient with it.
       Views read through `suspense_query`, so the first paint after
       hydration is served from the cache; cache misses, stale entries and
       explicit refetches go to the HTTP bridge through `RPCClient`.

    page = HydratedPage.from_html(html, RPCClient(http_client=...))
    html = await ErrorBoundary().render(UsersView(page))

Views render with the same Jinja2 partial (`_users.html`) the server uses,
so client and server markup for the list are identical.
"""

import json
import logging
from typing import Any, Callable, Dict, Optional, Protocol

from bs4 import BeautifulSoup
from jinja2 import Environment, PackageLoader, select_autoescape

from nodebase.config import Settings
from nodebase.query.client import QueryClient, make_query_client
from nodebase.query.hydration import hydrate
from nodebase.query.suspense import suspense_query
from nodebase.rpc.client import RPCClient
from nodebase.rpc.options import OptionsProxy

logger = logging.getLogger(__name__)

STATE_ELEMENT_ID = "__NODEBASE_STATE__"

_environment = Environment(
    loader=PackageLoader("nodebase", "templates"),
    autoescape=select_autoescape(["html"]),
)


def load_dehydrated_state(html: str) -> Optional[Dict[str, Any]]:
    """
    Returns the embedded cache snapshot, or None when the page has none.

    An unreadable payload counts as no snapshot: the page then loads its
    data over the bridge.
    """
    soup = BeautifulSoup(html, "html.parser")
    script = soup.find("script", id=STATE_ELEMENT_ID)
    if script is None:
        return None
    payload = script.get_text().strip()
    if not payload:
        return None
    try:
        state = json.loads(payload)
    except ValueError as e:
        logger.warning("Ignoring unreadable page state: %s", e)
        return None
    if not isinstance(state, dict):
        logger.warning("Ignoring page state of type %s", type(state).__name__)
        return None
    return state


class HydratedPage:
    """A page's client-side cache plus the means to refill it."""

    def __init__(self, query_client: QueryClient, rpc_client: RPCClient):
        self.query_client = query_client
        self.rpc_client = rpc_client

    @classmethod
    def from_html(
        cls,
        html: str,
        rpc_client: RPCClient,
        settings: Optional[Settings] = None,
        query_client: Optional[QueryClient] = None,
    ) -> "HydratedPage":
        client = query_client or make_query_client(settings)
        written = hydrate(client, load_dehydrated_state(html))
        logger.debug("Hydrated page cache with %d entries", written)
        return cls(client, rpc_client)

    @property
    def rpc(self) -> OptionsProxy:
        return self.rpc_client.options


class View(Protocol):
    async def render(self) -> str: ...


class UsersView:
    """The user list. Suspends on getUsers, renders the shared partial."""

    template_name = "_users.html"

    def __init__(self, page: HydratedPage):
        self.page = page

    def query_options(self):
        return self.page.rpc.getUsers.query_options()

    async def render(self) -> str:
        users = await suspense_query(self.page.query_client, self.query_options())
        return _environment.get_template(self.template_name).render(users=users)

    async def refetch(self) -> str:
        """Invalidates the list, waits for fresh data and renders it."""
        options = self.query_options()
        self.page.query_client.invalidate_queries(options.query_key)
        await self.page.query_client.fetch_query(options)
        return await self.render()


def _default_fallback(error: BaseException) -> str:
    return '<p class="error" role="alert">Something went wrong while loading this view.</p>'


class ErrorBoundary:
    """Renders `fallback(error)` in place of a view whose read failed."""

    def __init__(self, fallback: Callable[[BaseException], str] = _default_fallback):
        self.fallback = fallback
        self.error: Optional[BaseException] = None

    async def render(self, view: View) -> str:
        try:
            return await view.render()
        except Exception as e:
            self.error = e
            logger.warning("View %s failed: %s", type(view).__name__, getattr(e, "message", str(e)))
            return self.fallback(e)
