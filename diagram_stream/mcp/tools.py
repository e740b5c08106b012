"""MCP tool implementations and registration."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from diagram_stream.db_models import DiagramSession
from diagram_stream.mcp.registry import MCPRegistry, MCPTool
from diagram_stream.services.diagram_service import OUTPUT_ERROR, ToolOutput, diagram_service
from diagram_stream.tools.history_compaction import compact_tool_results

_TOOL_OUTPUT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "tool": {"type": "string"},
        "state": {"type": "string", "enum": ["output-available", "output-error"]},
        "status": {"type": "string"},
        "output": {"type": ["string", "null"]},
        "error_text": {"type": ["string", "null"]},
        "document": {"type": ["string", "null"]},
        "version": {"type": ["integer", "null"]},
        "resume_point": {"type": ["string", "null"]},
        "cache_key": {"type": ["string", "null"]},
        "errors": {"type": "array"},
        "unresolved": {"type": "array"},
    },
}


def _require_session(context: Dict[str, Any]) -> DiagramSession:
    session = context.get("session")
    if session is None:
        raise ValueError("session_id is required for this tool")
    return session


def _repair_failure(tool: str, message: str) -> Dict[str, Any]:
    return ToolOutput(tool=tool, state=OUTPUT_ERROR, status="unparseable_input", error_text=message).to_dict()


def tool_display_diagram(context: Dict[str, Any], xml: str = "", _error: Optional[str] = None) -> Dict[str, Any]:
    if _error:
        return _repair_failure("display_diagram", _error)
    result = diagram_service.display_diagram(context["db"], _require_session(context), xml)
    return result.to_dict()


def tool_append_diagram(context: Dict[str, Any], xml: str = "", _error: Optional[str] = None) -> Dict[str, Any]:
    if _error:
        return _repair_failure("append_diagram", _error)
    result = diagram_service.append_diagram(context["db"], _require_session(context), xml)
    return result.to_dict()


def tool_edit_diagram(
    context: Dict[str, Any],
    operations: Any = None,
    base_xml: Optional[str] = None,
    _error: Optional[str] = None,
) -> Dict[str, Any]:
    if _error:
        return _repair_failure("edit_diagram", _error)
    result = diagram_service.edit_diagram(
        context["db"],
        _require_session(context),
        operations if operations is not None else [],
        base_xml=base_xml,
    )
    return result.to_dict()


def tool_cache_image_regions(
    context: Dict[str, Any],
    regions: List[Dict[str, Any]],
    warnings: Optional[List[str]] = None,
) -> Dict[str, Any]:
    return diagram_service.cache_regions(regions, warnings).to_dict()


def tool_compact_tool_history(context: Dict[str, Any], messages: List[Any]) -> Dict[str, Any]:
    return {"messages": compact_tool_results(messages)}


def register_mcp_tools(registry: MCPRegistry) -> None:
    registry.register(
        MCPTool(
            name="display_diagram",
            description=(
                "Display a new diagram from sibling mxCell elements. Wrapper tags and the "
                "root cells 0 and 1 are added automatically. Output cut off mid-element is "
                "held and must be continued with append_diagram."
            ),
            input_schema={"type": "object", "properties": {"xml": {"type": "string"}}, "required": ["xml"]},
            output_schema=_TOOL_OUTPUT_SCHEMA,
            side_effects="stores a diagram version",
            handler=tool_display_diagram,
        )
    )
    registry.register(
        MCPTool(
            name="append_diagram",
            description=(
                "Continue a truncated display_diagram call. Start exactly where the previous "
                "output stopped; do not restart with wrapper tags or cells 0 and 1."
            ),
            input_schema={"type": "object", "properties": {"xml": {"type": "string"}}, "required": ["xml"]},
            output_schema=_TOOL_OUTPUT_SCHEMA,
            side_effects="stores a diagram version when assembly completes",
            handler=tool_append_diagram,
        )
    )
    registry.register(
        MCPTool(
            name="edit_diagram",
            description=(
                "Apply an atomic batch of add, update and delete operations by cell id. "
                "Deleting a cell also deletes its children, its edges and their labels."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "operations": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "operation": {"type": "string", "enum": ["add", "update", "delete"]},
                                "cell_id": {"type": "string"},
                                "new_xml": {"type": "string"},
                            },
                            "required": ["operation", "cell_id"],
                        },
                    },
                    "base_xml": {"type": ["string", "null"]},
                },
                "required": ["operations"],
            },
            output_schema=_TOOL_OUTPUT_SCHEMA,
            side_effects="stores a diagram version",
            handler=tool_edit_diagram,
        )
    )
    registry.register(
        MCPTool(
            name="cache_image_regions",
            description=(
                "Cache cropped image regions and return cell snippets that reference them "
                "with image=data:cache/<cache_key>/<region_name>."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "regions": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "name": {"type": "string"},
                                "data_url": {"type": "string"},
                                "width": {"type": "integer"},
                                "height": {"type": "integer"},
                            },
                            "required": ["name", "data_url"],
                        },
                    },
                    "warnings": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["regions"],
            },
            output_schema=_TOOL_OUTPUT_SCHEMA,
            side_effects="writes the in-memory region cache",
            handler=tool_cache_image_regions,
        )
    )
    registry.register(
        MCPTool(
            name="compact_tool_history",
            description="Truncate base64 image data URLs inside tool results of a message history.",
            input_schema={"type": "object", "properties": {"messages": {"type": "array"}}, "required": ["messages"]},
            output_schema={"type": "object", "properties": {"messages": {"type": "array"}}},
            side_effects="none",
            handler=tool_compact_tool_history,
        )
    )
