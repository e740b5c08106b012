"""MCP package for diagram tool discovery and execution."""

from .registry import MCPRegistry, MCPTool, mcp_registry

__all__ = ["MCPRegistry", "MCPTool", "mcp_registry"]
