"""
NodeBase Backend: RPC HTTP Client
==================================

What:  Calls procedures through the /api/trpc bridge over HTTP.
How:   Thin wrapper around `httpx.AsyncClient`. Success envelopes are
       unwrapped to their `result`; error envelopes become
       `RemoteProcedureError` carrying the envelope's code and the HTTP
       status. Transport failures are mapped the same way so the query
       cache sees one error type.
Who:   The client runtime (`nodebase.frontend`) as the query function of
       every cache miss and refetch.

Base URL Resolution (get_base_url):
    in a browser            → ""            (relative to the page)
    VERCEL_URL is set       → https://{VERCEL_URL}
    APP_URL is set          → APP_URL
    otherwise               → http://localhost:{BACKEND_PORT}
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import httpx

from nodebase.config import Settings, settings as default_settings
from nodebase.exceptions import RemoteProcedureError
from nodebase.rpc.options import OptionsProxy

logger = logging.getLogger(__name__)

# Per-item status inside a mixed (207) batch response.
STATUS_BY_CODE = {
    "BAD_REQUEST": 400,
    "PARSE_ERROR": 400,
    "UNAUTHORIZED": 401,
    "NOT_FOUND": 404,
    "METHOD_NOT_SUPPORTED": 405,
    "TIMEOUT": 504,
}


def get_base_url(settings: Optional[Settings] = None, in_browser: bool = False) -> str:
    if in_browser:
        return ""
    s = settings or default_settings
    if s.vercel_url:
        return f"https://{s.vercel_url}"
    if s.app_url:
        return s.app_url.rstrip("/")
    return f"http://localhost:{s.backend_port}"


def _error_from_envelope(body: Any, status_code: int) -> Optional[RemoteProcedureError]:
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        return RemoteProcedureError(
            code=str(error.get("code", "INTERNAL_SERVER_ERROR")),
            message=str(error.get("message", "Remote procedure failed")),
            status_code=status_code,
        )
    return None


class RPCClient:
    """
    HTTP client for the procedure bridge.

    Usage:
        async with RPCClient() as rpc:
            users = await rpc.query("getUsers")
            options = rpc.options.getUsers.query_options()

    Pass `http_client` to reuse a configured httpx client (tests pass one
    bound to the ASGI app); the RPCClient then does not close it.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        s = settings or default_settings
        self.endpoint = s.rpc_endpoint
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=get_base_url(s) if base_url is None else base_url,
            timeout=timeout or s.rpc_client_timeout_seconds,
            headers=headers,
        )
        self.options = OptionsProxy(self.query)

    def _url(self, names: Sequence[str]) -> str:
        return f"{self.endpoint}/{','.join(names)}"

    async def _send(self, method: str, url: str, **kwargs: Any) -> Tuple[int, Any]:
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteProcedureError(
                code="TIMEOUT",
                message="The request to the server timed out",
                status_code=504,
                context={"url": url},
            ) from e
        except httpx.TransportError as e:
            raise RemoteProcedureError(
                code="NETWORK_ERROR",
                message="Could not reach the server",
                status_code=503,
                context={"url": url, "error_type": type(e).__name__},
            ) from e

        try:
            body = response.json()
        except ValueError as e:
            raise RemoteProcedureError(
                code="PARSE_ERROR",
                message="The server returned a non-JSON response",
                status_code=response.status_code,
                context={"url": url},
            ) from e
        return response.status_code, body

    def _unwrap(self, body: Any, status_code: int) -> Any:
        error = _error_from_envelope(body, status_code)
        if error is not None:
            logger.debug("Remote procedure error %s: %s", error.code, error.message)
            raise error
        if not isinstance(body, dict) or "result" not in body:
            raise RemoteProcedureError(
                code="PARSE_ERROR",
                message="Unexpected response envelope",
                status_code=status_code,
            )
        return body["result"]

    async def query(self, name: str, input: Any = None) -> Any:
        params = {"input": json.dumps(input)} if input is not None else None
        status_code, body = await self._send("GET", self._url([name]), params=params)
        return self._unwrap(body, status_code)

    async def mutation(self, name: str, input: Any = None) -> Any:
        status_code, body = await self._send("POST", self._url([name]), json={"input": input})
        return self._unwrap(body, status_code)

    async def batch(
        self, calls: Sequence[Tuple[str, Any]]
    ) -> List[Union[Any, RemoteProcedureError]]:
        """
        Sends several calls in one POST.

        Returns one item per call, in order: the result, or the
        RemoteProcedureError for that call (returned, not raised, so one
        failure does not hide its siblings).
        """
        if not calls:
            return []
        names = [name for name, _ in calls]
        inputs = {str(i): value for i, (_, value) in enumerate(calls) if value is not None}
        status_code, body = await self._send(
            "POST", self._url(names), params={"batch": "1"}, json=inputs
        )
        if not isinstance(body, list):
            raise _error_from_envelope(body, status_code) or RemoteProcedureError(
                code="PARSE_ERROR",
                message="Unexpected batch response",
                status_code=status_code,
            )

        outcomes: List[Union[Any, RemoteProcedureError]] = []
        for item in body:
            item_status = status_code
            if status_code == 207 and isinstance(item, dict) and isinstance(item.get("error"), dict):
                item_status = STATUS_BY_CODE.get(item["error"].get("code"), 500)
            error = _error_from_envelope(item, item_status)
            outcomes.append(error if error is not None else item.get("result"))
        return outcomes

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "RPCClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
