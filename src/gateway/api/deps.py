"""FastAPI dependency injection for the dispatcher and the request credential.

These dependencies are used in endpoint function signatures to inject the
shared OperationDispatcher and the PipeRun API token resolved for the
current request.
"""

from __future__ import annotations

from fastapi import Header, Query, Request

from src.gateway.crm.dispatcher import OperationDispatcher, resolve_credential
from src.gateway.crm.errors import AuthFailure, InternalFailure

MISSING_TOKEN_MESSAGE = (
    "API token not provided. Use the X-Token header, the ?token= query "
    "parameter, or configure PIPERUN_API_TOKEN"
)


async def get_dispatcher(request: Request) -> OperationDispatcher:
    """Retrieve the OperationDispatcher from app.state, 503 if not available."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise InternalFailure("Gateway not initialized", status_code=503)
    return dispatcher


async def get_credential(
    request: Request,
    x_token: str | None = Header(default=None, alias="X-Token"),
    x_piperun_token: str | None = Header(default=None, alias="X-PipeRun-Token"),
    token: str | None = Query(default=None),
) -> str:
    """Resolve the API token: header, then ?token=, then the configured default.

    Raises:
        AuthFailure(401): If no token is available from any source.
    """
    credential = resolve_credential(
        header=x_token or x_piperun_token,
        query=token,
        default=getattr(request.app.state, "default_token", None),
    )
    if credential is None:
        raise AuthFailure(MISSING_TOKEN_MESSAGE)
    return credential
