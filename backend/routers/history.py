"""
History Router - conversation history
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from agents.pipeline import Stores
from models import HistoryMessage
from routers.deps import get_stores

router = APIRouter(prefix="/api/history", tags=["history"])


@router.get("", response_model=List[HistoryMessage])
async def get_history(limit: Optional[int] = Query(None, ge=1), stores: Stores = Depends(get_stores)):
    """All messages, or the most recent `limit`"""
    entries = stores.history.recent(limit) if limit else stores.history.list()
    return [
        HistoryMessage(role=e.role, content=e.content, createdAt=e.created_at.isoformat())
        for e in entries
    ]


@router.delete("")
async def clear_history(stores: Stores = Depends(get_stores)):
    stores.history.clear()
    return {"success": True}


__all__ = ["router"]
