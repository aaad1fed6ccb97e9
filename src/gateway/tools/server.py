"""Tool-protocol (MCP) front end over stdio.

Every operation in the shared table is exposed as one tool with the same
name. Tool input schemas are generated from the operation's FieldSpecs, so
the schema a client sees and the validator that checks the call can never
drift apart. Failures surface as protocol errors carrying a JSON-RPC code
mapped from the failure taxonomy.

Logs go to stderr: stdout carries the protocol stream.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import structlog
from mcp import types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server
from mcp.shared.exceptions import McpError
from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    ErrorData,
    TextContent,
    Tool,
)

from src.gateway.api.middleware.logging import configure_structlog
from src.gateway.config import VERSION, get_settings
from src.gateway.crm.dispatcher import OperationDispatcher, resolve_credential
from src.gateway.crm.errors import (
    AuthFailure,
    CRMError,
    NotFoundFailure,
    UnknownOperation,
    ValidationFailure,
)
from src.gateway.crm.executor import RequestExecutor, RetryPolicy
from src.gateway.crm.formatters import format_response, to_json_text
from src.gateway.crm.operations import OPERATIONS, OperationSpec, resolve

logger = structlog.get_logger(__name__)

SERVER_NAME = "piperun-gateway"

TOKEN_ARGUMENT = "api_token"
FORMAT_ARGUMENT = "response_format"
RESPONSE_FORMATS = ("summary", "json")

# First match wins; anything unlisted is an internal error
ERROR_CODES: tuple[tuple[type[CRMError], int], ...] = (
    (UnknownOperation, METHOD_NOT_FOUND),
    (ValidationFailure, INVALID_PARAMS),
    (AuthFailure, INVALID_REQUEST),
    (NotFoundFailure, INVALID_REQUEST),
)


def error_code(exc: CRMError) -> int:
    """Protocol error code for a taxonomy failure."""
    for failure_type, code in ERROR_CODES:
        if isinstance(exc, failure_type):
            return code
    return INTERNAL_ERROR


def protocol_error(exc: CRMError) -> McpError:
    return McpError(ErrorData(code=error_code(exc), message=exc.message, data=exc.details))


def input_schema(spec: OperationSpec, token_required: bool = True) -> dict[str, Any]:
    """JSON schema for a tool's arguments, derived from the operation's FieldSpecs."""
    properties: dict[str, Any] = {}
    for field_spec in spec.fields:
        prop: dict[str, Any] = {"type": field_spec.type}
        if field_spec.description:
            prop["description"] = field_spec.description
        properties[field_spec.name] = prop

    properties[TOKEN_ARGUMENT] = {
        "type": "string",
        "description": "PipeRun API token"
        + ("" if token_required else " (optional: a default token is configured)"),
    }
    properties[FORMAT_ARGUMENT] = {
        "type": "string",
        "enum": list(RESPONSE_FORMATS),
        "default": "summary",
        "description": "summary: short readable text; json: the raw upstream response",
    }

    required = [f.name for f in spec.fields if f.required]
    if token_required:
        required.append(TOKEN_ARGUMENT)

    schema: dict[str, Any] = {"type": "object", "properties": properties, "required": required}
    if spec.at_least_one_of:
        schema["anyOf"] = [{"required": [name]} for name in spec.at_least_one_of]
    return schema


class ToolServer:
    """Protocol-independent tool handlers bound to a dispatcher.

    Args:
        dispatcher: Shared OperationDispatcher.
        default_token: Credential used when a call carries no ``api_token``.
    """

    def __init__(self, dispatcher: OperationDispatcher, default_token: str | None = None) -> None:
        self._dispatcher = dispatcher
        self._default_token = resolve_credential(default=default_token)

    def list_tools(self) -> list[Tool]:
        token_required = self._default_token is None
        return [
            Tool(
                name=spec.name,
                description=spec.description,
                inputSchema=input_schema(spec, token_required=token_required),
            )
            for spec in OPERATIONS.values()
        ]

    async def call_tool(self, name: str, arguments: Mapping[str, Any] | None) -> list[TextContent]:
        """Run the named tool and return its text content.

        Raises:
            McpError: METHOD_NOT_FOUND for an unknown tool, INVALID_PARAMS for
                bad arguments or a missing token, INVALID_REQUEST for auth and
                not-found failures, INTERNAL_ERROR for everything else.
        """
        try:
            spec = resolve(name)
        except UnknownOperation as exc:
            raise protocol_error(exc) from exc

        if arguments is not None and not isinstance(arguments, Mapping):
            raise McpError(ErrorData(code=INVALID_PARAMS, message="arguments must be an object"))

        args = dict(arguments or {})
        token = args.pop(TOKEN_ARGUMENT, None)
        response_format = args.pop(FORMAT_ARGUMENT, None) or "summary"
        if response_format not in RESPONSE_FORMATS:
            raise McpError(
                ErrorData(
                    code=INVALID_PARAMS,
                    message=f"{FORMAT_ARGUMENT} must be one of: {', '.join(RESPONSE_FORMATS)}",
                )
            )

        credential = resolve_credential(
            explicit=token if isinstance(token, str) else None,
            default=self._default_token,
        )
        if credential is None:
            raise McpError(
                ErrorData(
                    code=INVALID_PARAMS,
                    message=f"{TOKEN_ARGUMENT} is required (no default token configured)",
                )
            )

        try:
            payload = await self._dispatcher.dispatch(spec.name, args, credential)
        except CRMError as exc:
            raise protocol_error(exc) from exc
        except Exception as exc:
            logger.error("tools.unexpected_error", tool=spec.name, exc_info=True)
            raise McpError(
                ErrorData(code=INTERNAL_ERROR, message=f"Internal error: {exc}")
            ) from exc

        if response_format == "json":
            text = to_json_text(payload)
        else:
            text = format_response(spec.name, payload)
        return [TextContent(type="text", text=text)]


def build_server(tool_server: ToolServer) -> Server:
    """Wire ToolServer handlers into a low-level MCP server."""
    server: Server = Server(SERVER_NAME, version=VERSION)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return tool_server.list_tools()

    # Registered directly: the decorator form turns McpError into an
    # isError result and loses the error code.
    async def call_tool(request: types.CallToolRequest) -> types.ServerResult:
        content = await tool_server.call_tool(request.params.name, request.params.arguments)
        return types.ServerResult(types.CallToolResult(content=content, isError=False))

    server.request_handlers[types.CallToolRequest] = call_tool
    return server


async def main() -> None:
    """Serve every operation as a tool over stdio until the client disconnects."""
    settings = get_settings()
    configure_structlog(settings)

    executor = RequestExecutor.from_settings(settings)
    dispatcher = OperationDispatcher(executor, RetryPolicy.from_settings(settings))
    tool_server = ToolServer(dispatcher, default_token=settings.PIPERUN_API_TOKEN)
    server = build_server(tool_server)

    logger.info(
        "tools.server_starting",
        upstream=settings.PIPERUN_API_BASE_URL,
        tools=len(OPERATIONS),
        default_token_configured=bool(settings.PIPERUN_API_TOKEN.strip()),
    )
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        await executor.aclose()
        logger.info("tools.server_stopped")


def run() -> None:
    """Console entry point for the stdio tool server."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
