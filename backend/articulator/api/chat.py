"""
Chat API endpoint - conversational follow-ups on an analyzed recording.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from .deps import get_analysis_service, get_chat_store, get_storage, provider_error_response, resolve_upload_path
from .video import STREAM_HEADERS
from ..core.errors import ProviderError
from ..core.stream_protocol import MEDIA_TYPE
from ..models.chat import ChatRequest, ErrorResponse
from ..services.analysis import AnalysisService, build_llm_messages
from ..services.chat_store import ChatStore
from ..services.prompts import CHAT_PROMPT
from ..storage import LocalStorage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


def _parse_chat_request(payload) -> ChatRequest:
    """Validate the body, turning any schema problem into a 400."""
    if not isinstance(payload, dict) or not isinstance(payload.get("messages"), list) or not payload["messages"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid messages format")
    if not payload.get("chatSessionId"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="chatSessionId is required")
    try:
        return ChatRequest.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid messages format: {e.errors()[0]['msg']}",
        )


@router.post(
    "/chat",
    responses={
        200: {"description": "Protocol v1 event stream", "content": {MEDIA_TYPE: {}}},
        400: {"description": "Malformed messages or missing chatSessionId"},
        404: {"description": "Chat session not found"},
        500: {"model": ErrorResponse, "description": "Provider or storage failure"},
        504: {"model": ErrorResponse, "description": "Provider never finished processing"},
    },
)
async def chat(
    request: Request,
    storage: LocalStorage = Depends(get_storage),
    chat_store: ChatStore = Depends(get_chat_store),
    analysis: AnalysisService = Depends(get_analysis_service),
):
    """
    Ingest any recording, persist the latest user turn, then stream the reply.

    Body: ``{messages[], chatSessionId, filePath?, mimeType?}``. When
    ``filePath`` is given the recording is ingested and attached to the latest
    user turn; otherwise a recording ingested earlier in the session is
    re-attached to the first user turn.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid messages format")
    body = _parse_chat_request(payload)

    chat_session = await run_in_threadpool(chat_store.get_session, body.chat_session_id)
    if chat_session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat session not found")

    file_path = resolve_upload_path(storage, body.file_path) if body.file_path else None

    if file_path is not None:
        try:
            remote_file = await analysis.ingest(str(file_path), body.mime_type)
        except ProviderError as e:
            logger.error(f"Error in chat API: {e}", exc_info=True)
            return provider_error_response(e, "Error processing chat request")
        messages = build_llm_messages(body.messages, remote_file, attach_to_latest=True)
    else:
        remembered = analysis.remembered_file(chat_session.video)
        messages = build_llm_messages(body.messages, remembered, attach_to_latest=False)

    # Persist only once ingestion succeeded
    try:
        if file_path is not None:
            await run_in_threadpool(chat_store.set_remote_file, chat_session.id, remote_file)
        latest = body.messages[-1]
        if latest.role == "user":
            await run_in_threadpool(chat_store.add_user_message, chat_session.id, latest.content)
    except (SQLAlchemyError, LookupError) as e:
        logger.error(f"Failed to persist user message: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error saving message"
        )

    logger.info(
        "Starting chat response",
        extra={"extra_fields": {
            "chat_session_id": chat_session.id,
            "message_count": len(messages),
            "has_video": file_path is not None,
        }}
    )
    return StreamingResponse(
        analysis.stream_reply(messages, CHAT_PROMPT, chat_session_id=chat_session.id),
        media_type=MEDIA_TYPE,
        headers=STREAM_HEADERS,
    )
