"""Tool-protocol (MCP) front end: one tool per CRM operation."""

from src.gateway.tools.server import ToolServer, build_server, input_schema

__all__ = ["ToolServer", "build_server", "input_schema"]
