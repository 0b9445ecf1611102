"""
Chat session history endpoints.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .deps import get_chat_store
from ..models.chat import ChatHistoryResult, ChatSessionsResult
from ..services.chat_store import SESSION_NOT_FOUND, ChatStore

router = APIRouter(prefix="/chat-sessions", tags=["sessions"])


@router.get("", response_model=ChatSessionsResult)
async def list_chat_sessions(chat_store: ChatStore = Depends(get_chat_store)):
    """All chat sessions, most recently updated first."""
    result = await run_in_threadpool(chat_store.list_sessions)
    if not result.success:
        return JSONResponse(status_code=500, content=result.model_dump(mode="json", by_alias=True))
    return result


@router.get(
    "/{chat_session_id}",
    response_model=ChatHistoryResult,
    responses={404: {"model": ChatHistoryResult, "description": "Chat session not found"}},
)
async def get_chat_history(chat_session_id: str, chat_store: ChatStore = Depends(get_chat_store)):
    """One session's messages (oldest first) and its recording."""
    result = await run_in_threadpool(chat_store.get_chat_history, chat_session_id)
    if not result.success:
        status_code = 404 if result.error == SESSION_NOT_FOUND else 500
        return JSONResponse(status_code=status_code, content=result.model_dump(mode="json", by_alias=True))
    return result
