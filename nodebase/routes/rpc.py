"""
NodeBase Backend: Procedure HTTP Bridge
========================================

What:  Exposes the procedure registry over HTTP at settings.rpc_endpoint.
How:   One handler for GET and POST on the endpoint and every path below it.
       Each call is resolved independently against the request's memoized
       context; results are JSON-encoded with jsonable_encoder. Each call
       runs in its own transaction on the request's session: committed on
       success, rolled back on failure, so a failed call leaves the session
       usable for the calls after it.

Request Forms:
    GET  /api/trpc/getUsers                       single, no input
    GET  /api/trpc/getUser?input={"id":1}         single, JSON input
    POST /api/trpc/createThing  {"input": {...}}  single (empty body = no input)
    POST /api/trpc  {"procedure": "getUsers", "input": null}
    GET|POST /api/trpc/a,b?batch=1                batch, input {"0": .., "1": ..}
    POST /api/trpc  [{"procedure": "a"}, {"procedure": "b"}]

Responses:
    success   {"result": <json>}
    failure   {"error": {"code": "...", "message": "..."}}
    batch     JSON array in request order; status 200 when every call
              succeeded, the shared status when all failed alike, 207
              otherwise

Error Mapping:
    ValidationError      → 400 BAD_REQUEST (unparsable JSON → PARSE_ERROR)
    ProcedureNotFound    → 404 NOT_FOUND
    mutation over GET    → 405 METHOD_NOT_SUPPORTED
    ProcedureTimeout     → 504 TIMEOUT
    StoreError           → 500 INTERNAL_SERVER_ERROR
    anything else        → 500 with a generic message (details logged)
"""

import json
import logging
from typing import Any, List, Tuple, Union

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from nodebase.exceptions import MethodNotSupported, NodeBaseError, ValidationError
from nodebase.rpc.app_router import get_router
from nodebase.rpc.context import RequestScope, get_request_scope
from nodebase.rpc.procedures import ProcedureRouter
from nodebase.schemas.rpc import RPCCall, RPCErrorBody, RPCFailure

logger = logging.getLogger(__name__)

router = APIRouter(tags=["RPC"])

GENERIC_ERROR_MESSAGE = "An internal error occurred. Please try again later."

# Sentinel for "no input supplied" (distinct from a JSON null).
_MISSING = object()

Call = Union[Tuple[str, Any], NodeBaseError]


# ── Parsing ───────────────────────────────────────────────────────────────

def _loads(raw: Union[str, bytes], what: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ValidationError(message=f"{what} is not valid JSON", code="PARSE_ERROR") from e


async def _read_body(request: Request) -> Any:
    if request.method != "POST":
        return _MISSING
    body = await request.body()
    if not body.strip():
        return _MISSING
    return _loads(body, "Request body")


def _read_query_input(request: Request) -> Any:
    raw = request.query_params.get("input")
    if raw is None:
        return _MISSING
    return _loads(raw, "The input query parameter")


def _envelope_call(item: Any) -> Call:
    try:
        call = RPCCall.model_validate(item)
    except PydanticValidationError as e:
        return ValidationError(
            message="Each call must be an object with a non-empty \"procedure\" field",
            context={"errors": e.errors(include_url=False)},
        )
    return call.procedure, call.input


async def _parse_calls(request: Request, path: str, is_batch: bool) -> Tuple[List[Call], bool]:
    """Returns the calls in request order and whether the response is a batch."""
    body = await _read_body(request)

    if not path:
        if body is _MISSING:
            raise ValidationError(message="No procedure specified")
        if isinstance(body, list):
            if not body:
                raise ValidationError(message="Batch contains no calls")
            return [_envelope_call(item) for item in body], True
        call = _envelope_call(body)
        if isinstance(call, NodeBaseError):
            raise call
        return [call], False

    names = [name.strip() for name in path.split(",")]
    if any(not name for name in names):
        raise ValidationError(message=f'Empty procedure name in path "{path}"')

    raw = body if body is not _MISSING else _read_query_input(request)

    if is_batch:
        if raw is _MISSING or raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ValidationError(message="Batched input must be an object keyed by call index")
        return [(name, raw.get(str(i))) for i, name in enumerate(names)], True

    if len(names) > 1:
        raise ValidationError(message="Calling several procedures requires batch=1")

    if raw is _MISSING:
        return [(names[0], None)], False
    if body is not _MISSING:
        if not isinstance(body, dict) or not set(body) <= {"input"}:
            raise ValidationError(message='POST body must be an object with an "input" field')
        return [(names[0], body.get("input"))], False
    return [(names[0], raw)], False


# ── Resolution ────────────────────────────────────────────────────────────

def _failure(code: str, message: str) -> dict:
    return RPCFailure(error=RPCErrorBody(code=code, message=message)).model_dump()


async def _resolve(
    procedures: ProcedureRouter,
    scope: RequestScope,
    call: Call,
    method: str,
    timeout: float,
) -> Tuple[int, dict]:
    if isinstance(call, NodeBaseError):
        return call.status_code, _failure(call.code, call.message)

    name, raw_input = call
    try:
        procedure = procedures.get(name)
        if procedure.is_mutation and method == "GET":
            raise MethodNotSupported(name, method)
        result = await procedure.invoke(scope.context(), raw_input, timeout)
    except NodeBaseError as e:
        level = logging.ERROR if e.status_code >= 500 else logging.INFO
        logger.log(level, "Procedure %s failed: %s [%s] | Context: %s", name, e.code, e.message, e.context)
        return e.status_code, _failure(e.code, e.message)
    except Exception as e:
        logger.error("Procedure %s raised unexpectedly: %s", name, str(e), exc_info=True)
        return 500, _failure("INTERNAL_SERVER_ERROR", GENERIC_ERROR_MESSAGE)

    return 200, {"result": jsonable_encoder(result)}


def _batch_status(statuses: List[int]) -> int:
    distinct = set(statuses)
    if distinct == {200}:
        return 200
    if len(distinct) == 1:
        return distinct.pop()
    return 207


async def handle_rpc(
    request: Request,
    scope: RequestScope = Depends(get_request_scope),
    procedures: ProcedureRouter = Depends(get_router),
) -> JSONResponse:
    """Single entry point for every GET/POST below the RPC endpoint."""
    path = request.path_params.get("path", "").strip("/")
    is_batch = request.query_params.get("batch") in ("1", "true")
    settings = request.app.state.settings

    try:
        calls, batched = await _parse_calls(request, path, is_batch)
    except NodeBaseError as e:
        logger.info("Rejected RPC request to /%s: %s", path, e.message)
        return JSONResponse(status_code=e.status_code, content=_failure(e.code, e.message))

    outcomes = []
    for call in calls:
        # Calls share the request's session, so they run one after another,
        # each in its own transaction.
        status, envelope = await _resolve(
            procedures, scope, call, request.method, settings.rpc_timeout_seconds
        )
        if status < 400:
            await scope.db.commit()
        else:
            await scope.db.rollback()
        outcomes.append((status, envelope))

    if not batched:
        status, envelope = outcomes[0]
        return JSONResponse(status_code=status, content=envelope)

    return JSONResponse(
        status_code=_batch_status([status for status, _ in outcomes]),
        content=[envelope for _, envelope in outcomes],
    )


router.add_api_route("", handle_rpc, methods=["GET", "POST"], include_in_schema=False)
router.add_api_route("/{path:path}", handle_rpc, methods=["GET", "POST"], include_in_schema=False)
