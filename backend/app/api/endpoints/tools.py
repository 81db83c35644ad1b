from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from backend.app.api.deps import get_record_store
from backend.app.core.errors import PersistenceError
from backend.app.services.record_store import RecordStore

router = APIRouter()

@router.get("")
async def list_tools(
    tool_type: Optional[str] = Query(default=None, alias="type"),
    store: RecordStore = Depends(get_record_store),
):
    """
    Returns saved tools sorted by URL, optionally restricted to one type.
    """
    try:
        tools = await store.list_tools(tool_type)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"tools": [t.model_dump() for t in tools], "total": len(tools), "type": tool_type}

@router.get("/{record_id}")
async def get_tool(record_id: str, store: RecordStore = Depends(get_record_store)):
    try:
        tool = await store.get_tool(record_id)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if tool is None:
        raise HTTPException(status_code=404, detail="Tool not found")
    return tool.model_dump()
