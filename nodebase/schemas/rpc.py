"""
NodeBase Backend: RPC Envelope Schemas
=======================================

What:  The JSON envelopes spoken by the `/api/trpc` bridge.

    Request (envelope form):   {"procedure": "getUsers", "input": <json>}
    Success:                   {"result": <json>}
    Failure:                   {"error": {"code": "NOT_FOUND", "message": "..."}}

    Batched requests carry a list of request envelopes and receive a list
    of success/failure envelopes in the same order.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class RPCCall(BaseModel):
    """One procedure invocation inside a request body."""
    procedure: str = Field(min_length=1, description="Procedure name, e.g. getUsers")
    input: Optional[Any] = Field(default=None, description="JSON input, if any")


class RPCErrorBody(BaseModel):
    code: str = Field(description="RPC error code, e.g. BAD_REQUEST")
    message: str = Field(description="Human-readable description")


class RPCFailure(BaseModel):
    error: RPCErrorBody
