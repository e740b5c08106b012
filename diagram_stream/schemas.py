"""Pydantic schemas for API."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SessionCreateRequest(BaseModel):
    title: Optional[str] = None


class SessionCreateResponse(BaseModel):
    session_id: UUID
    title: str


class DocumentResponse(BaseModel):
    session_id: UUID
    version: Optional[int] = None
    reason: Optional[str] = None
    xml: str
    created_at: Optional[datetime] = None


class FragmentRequest(BaseModel):
    xml: str = ""


class EditRequest(BaseModel):
    # Kept loose so malformed batches reach boundary validation and come back
    # as tool errors instead of request validation failures.
    operations: Any = Field(default_factory=list)
    base_xml: Optional[str] = None


class ToolOutputResponse(BaseModel):
    tool: str
    state: str
    status: str
    output: Optional[str] = None
    error_text: Optional[str] = None
    document: Optional[str] = None
    version: Optional[int] = None
    resume_point: Optional[str] = None
    cache_key: Optional[str] = None
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    unresolved: List[Dict[str, Any]] = Field(default_factory=list)


class RegionPayload(BaseModel):
    name: str
    data_url: str
    width: Optional[int] = None
    height: Optional[int] = None


class RegionCacheRequest(BaseModel):
    regions: List[RegionPayload]
    warnings: List[str] = Field(default_factory=list)


class RegionLookupResponse(BaseModel):
    cache_key: str
    regions: Dict[str, str]


class MCPToolMetadata(BaseModel):
    id: str
    name: str
    description: str
    input_schema: Dict[str, Any]
    output_schema: Dict[str, Any]
    side_effects: Optional[str] = None
    mode: Optional[str] = None
    version: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class MCPDiscoverResponse(BaseModel):
    tools: List[MCPToolMetadata]


class MCPExecuteRequest(BaseModel):
    tool_id: str
    args: Dict[str, Any] = Field(default_factory=dict)
    # Unparsed tool-call arguments, possibly cut off mid-JSON; used when args is empty.
    raw_args: Optional[str] = None
    session_id: Optional[UUID] = None


class MCPExecuteResponse(BaseModel):
    result: Dict[str, Any]
