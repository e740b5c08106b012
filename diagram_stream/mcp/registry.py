"""In-process MCP registry for diagram tool discovery and execution."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional


@dataclass
class MCPTool:
    name: str
    description: str
    input_schema: Dict[str, Any]
    output_schema: Dict[str, Any]
    side_effects: str
    handler: Callable[..., Dict[str, Any]]
    version: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class MCPRegistry:
    def __init__(self) -> None:
        self._tools: Dict[str, MCPTool] = {}

    def register(self, tool: MCPTool) -> None:
        self._tools[tool.name] = tool

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": tool.name,
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.input_schema,
                "output_schema": tool.output_schema,
                "side_effects": tool.side_effects,
                "version": tool.version,
                "metadata": tool.metadata or {},
            }
            for tool in self._tools.values()
        ]

    def get_tool(self, name: str) -> Optional[MCPTool]:
        return self._tools.get(name)

    def execute(self, name: str, args: Dict[str, Any], context: Dict[str, Any]) -> Dict[str, Any]:
        tool = self.get_tool(name)
        if not tool:
            raise LookupError(f"Unknown tool: {name}")
        return tool.handler(context=context, **args)


mcp_registry = MCPRegistry()
