"""REST API server."""
from __future__ import annotations

import logging
from typing import Generator

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session as DbSession

from diagram_stream.db import Base, SessionLocal, engine
from diagram_stream.mcp.registry import mcp_registry
from diagram_stream.mcp.tools import register_mcp_tools
from diagram_stream.schemas import (
    DocumentResponse,
    EditRequest,
    FragmentRequest,
    MCPDiscoverResponse,
    MCPExecuteRequest,
    MCPExecuteResponse,
    RegionCacheRequest,
    RegionLookupResponse,
    SessionCreateRequest,
    SessionCreateResponse,
    ToolOutputResponse,
)
from diagram_stream.services import document_store
from diagram_stream.services.diagram_service import diagram_service
from diagram_stream.tools.document import wrap_cells
from diagram_stream.tools.tool_input_repair import repair_tool_input

logger = logging.getLogger(__name__)

app = FastAPI(title="Diagram Stream API")


def get_db() -> Generator[DbSession, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def on_startup() -> None:
    Base.metadata.create_all(bind=engine)
    register_mcp_tools(mcp_registry)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/api/sessions", response_model=SessionCreateResponse)
def create_session_api(payload: SessionCreateRequest | None = None, db: DbSession = Depends(get_db)):
    title = (payload.title if payload else None) or "Diagram Session"
    session = document_store.create_session(db, title=title)
    return SessionCreateResponse(session_id=session.id, title=session.title)


@app.get("/api/sessions/{session_id}/document", response_model=DocumentResponse)
def session_document(session_id: str, db: DbSession = Depends(get_db)):
    session = document_store.get_session(db, session_id)
    if not session:
        return JSONResponse(status_code=404, content={"error": "Session not found"})
    record = document_store.latest_version(db, session.id)
    if record is None:
        return DocumentResponse(session_id=session.id, xml=wrap_cells([]))
    return DocumentResponse(
        session_id=session.id,
        version=record.version,
        reason=record.reason,
        xml=record.xml,
        created_at=record.created_at,
    )


@app.post("/api/sessions/{session_id}/display", response_model=ToolOutputResponse)
def display_api(session_id: str, payload: FragmentRequest, db: DbSession = Depends(get_db)):
    session = document_store.get_session(db, session_id)
    if not session:
        return JSONResponse(status_code=404, content={"error": "Session not found"})
    return diagram_service.display_diagram(db, session, payload.xml).to_dict()


@app.post("/api/sessions/{session_id}/append", response_model=ToolOutputResponse)
def append_api(session_id: str, payload: FragmentRequest, db: DbSession = Depends(get_db)):
    session = document_store.get_session(db, session_id)
    if not session:
        return JSONResponse(status_code=404, content={"error": "Session not found"})
    return diagram_service.append_diagram(db, session, payload.xml).to_dict()


@app.post("/api/sessions/{session_id}/edit", response_model=ToolOutputResponse)
def edit_api(session_id: str, payload: EditRequest, db: DbSession = Depends(get_db)):
    session = document_store.get_session(db, session_id)
    if not session:
        return JSONResponse(status_code=404, content={"error": "Session not found"})
    return diagram_service.edit_diagram(db, session, payload.operations, base_xml=payload.base_xml).to_dict()


@app.post("/api/regions", response_model=ToolOutputResponse)
def cache_regions_api(payload: RegionCacheRequest):
    regions = [region.model_dump() for region in payload.regions]
    result = diagram_service.cache_regions(regions, payload.warnings)
    if not result.ok:
        return JSONResponse(status_code=400, content={"error": result.error_text})
    return result.to_dict()


@app.get("/api/regions/{cache_key}", response_model=RegionLookupResponse)
def region_lookup_api(cache_key: str):
    regions = diagram_service.store.get(cache_key)
    if regions is None:
        return JSONResponse(status_code=404, content={"error": "Cache key not found or expired"})
    return RegionLookupResponse(cache_key=cache_key, regions=dict(regions))


@app.get("/mcp/discover", response_model=MCPDiscoverResponse)
def mcp_discover_endpoint():
    tools = mcp_registry.list_tools()
    return MCPDiscoverResponse(tools=tools)


@app.post("/mcp/execute", response_model=MCPExecuteResponse)
def mcp_execute_endpoint(payload: MCPExecuteRequest, db: DbSession = Depends(get_db)):
    context: dict = {"db": db}
    if payload.session_id:
        session = document_store.get_session(db, payload.session_id)
        if not session:
            raise HTTPException(status_code=404, detail="Session not found")
        context["session"] = session
        context["session_id"] = str(session.id)

    args = payload.args or {}
    if not args and payload.raw_args is not None:
        args = repair_tool_input(payload.tool_id, payload.raw_args)
        if args is None:
            raise HTTPException(status_code=400, detail="Tool arguments could not be parsed")

    try:
        result = mcp_registry.execute(payload.tool_id, args, context=context)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return MCPExecuteResponse(result=result)
