"""
Video API endpoints - recording upload, standalone analysis and playback.
"""

import logging
import re
import time
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from fastapi.responses import FileResponse, StreamingResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from .deps import (
    get_analysis_service,
    get_chat_store,
    get_storage,
    provider_error_response,
    resolve_upload_path,
)
from ..core.errors import ProviderError
from ..core.stream_protocol import MEDIA_TYPE
from ..llm.base import LLMMessage
from ..models.chat import AnalyzeVideoRequest, ErrorResponse, UploadVideoResponse
from ..services.analysis import DEFAULT_MIME_TYPE, AnalysisService
from ..services.chat_store import ChatStore
from ..services.prompts import ANALYSIS_PROMPT, ANALYSIS_REQUEST_TEXT
from ..storage import LocalStorage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["video"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}

CONTENT_TYPES = {
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".mp4": "video/mp4",
}

_DRIVE_LETTER = re.compile(r"^[A-Za-z]:$")


def _upload_extension(video: UploadFile) -> str:
    name = (video.filename or "").lower()
    if name.endswith(".webm") or (video.content_type or "").startswith("video/webm"):
        return "webm"
    return "mp4"


def reconstruct_path(segments: List[str]) -> str:
    """Rebuild the filesystem path a client split into URL segments."""
    if segments and _DRIVE_LETTER.match(segments[0]):
        return "\\".join(segments)
    return "/".join(segments)


def resolve_video_path(video_path: str, storage: LocalStorage) -> Path:
    """
    Map a ``/video/...`` path onto a file inside the upload directory.

    Only paths containing the upload directory as a segment are served; the
    part after its last occurrence is resolved against the configured
    directory, so the result can never leave it.

    Raises:
        PermissionError: The path is not allowed
        FileNotFoundError: Allowed, but no such file
    """
    segments = [s for s in video_path.replace("\\", "/").split("/") if s]
    full_path = reconstruct_path(segments)
    dir_name = storage.dir_name

    if ".." in segments or dir_name not in segments:
        raise PermissionError(f"Path not allowed: {full_path}")

    last = len(segments) - 1 - segments[::-1].index(dir_name)
    relative = segments[last + 1:]
    if not relative:
        raise FileNotFoundError(full_path)

    try:
        resolved = storage.full_path("/".join(relative))
    except ValueError as e:
        raise PermissionError(str(e)) from e
    if not resolved.is_file():
        raise FileNotFoundError(full_path)
    return resolved


@router.post(
    "/upload-video",
    response_model=UploadVideoResponse,
    responses={
        400: {"description": "No video file provided"},
        500: {"description": "Storage failure"},
    },
)
async def upload_video(
    video: Optional[UploadFile] = File(None),
    storage: LocalStorage = Depends(get_storage),
    chat_store: ChatStore = Depends(get_chat_store),
):
    """
    Store a finished recording and open the chat session that will analyze it.

    Args:
        video: Multipart ``video`` field

    Returns:
        UploadVideoResponse with the stored path and the new session id
    """
    if video is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No video file provided")

    data = await video.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Video file is empty")

    extension = _upload_extension(video)
    timestamp = int(time.time() * 1000)
    file_name = f"video_{timestamp}.{extension}"
    while await storage.exists(file_name):
        timestamp += 1
        file_name = f"video_{timestamp}.{extension}"

    if not await storage.save(file_name, data):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error uploading video")

    file_path = str(storage.full_path(file_name))
    mime_type = "video/webm" if extension == "webm" else "video/mp4"

    try:
        chat_session = await run_in_threadpool(chat_store.create_session_with_video, file_name, file_path, mime_type)
    except SQLAlchemyError as e:
        logger.error(f"Failed to create chat session for {file_name}: {e}", exc_info=True)
        await storage.delete(file_name)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error uploading video")

    logger.info(
        f"Video uploaded: {file_name}",
        extra={"extra_fields": {"size_bytes": len(data), "chat_session_id": chat_session.id}}
    )
    return UploadVideoResponse(
        file_path=file_path,
        file_name=file_name,
        mime_type=mime_type,
        chat_session_id=chat_session.id,
    )


@router.post(
    "/analyze-video",
    responses={
        200: {"description": "Protocol v1 event stream", "content": {MEDIA_TYPE: {}}},
        400: {"description": "Missing or invalid file path"},
        404: {"description": "Chat session not found"},
        500: {"model": ErrorResponse, "description": "Provider failure"},
        504: {"model": ErrorResponse, "description": "Provider never finished processing"},
    },
)
async def analyze_video(
    request: Request,
    storage: LocalStorage = Depends(get_storage),
    chat_store: ChatStore = Depends(get_chat_store),
    analysis: AnalysisService = Depends(get_analysis_service),
):
    """
    Run the coaching analysis on a stored recording and stream the feedback.
    """
    try:
        body = AnalyzeVideoRequest.model_validate(await request.json())
    except (ValidationError, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file path provided")

    file_path = resolve_upload_path(storage, body.file_path)
    mime_type = body.mime_type or DEFAULT_MIME_TYPE

    if body.chat_session_id and await run_in_threadpool(chat_store.get_session, body.chat_session_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat session not found")

    try:
        remote_file = await analysis.ingest(str(file_path), mime_type)
    except ProviderError as e:
        logger.error(f"Error analyzing video: {e}", exc_info=True)
        return provider_error_response(e, "Error analyzing video")

    if body.chat_session_id:
        try:
            await run_in_threadpool(chat_store.set_remote_file, body.chat_session_id, remote_file)
            await run_in_threadpool(chat_store.add_user_message, body.chat_session_id, ANALYSIS_REQUEST_TEXT)
        except (SQLAlchemyError, LookupError) as e:
            logger.error(f"Failed to persist analysis request: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error saving message"
            )

    messages = [LLMMessage.with_file("user", ANALYSIS_REQUEST_TEXT, remote_file.uri, remote_file.mime_type)]
    return StreamingResponse(
        analysis.stream_reply(messages, ANALYSIS_PROMPT, chat_session_id=body.chat_session_id),
        media_type=MEDIA_TYPE,
        headers=STREAM_HEADERS,
    )


@router.get(
    "/video/{video_path:path}",
    responses={
        403: {"description": "Path outside the upload directory"},
        404: {"description": "File not found"},
    },
)
async def serve_video(video_path: str, storage: LocalStorage = Depends(get_storage)):
    """Serve a stored recording for playback."""
    try:
        resolved = resolve_video_path(video_path, storage)
    except PermissionError as e:
        logger.warning(f"Rejected video path: {e}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    except FileNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    return FileResponse(
        resolved,
        media_type=CONTENT_TYPES.get(resolved.suffix.lower(), "video/mp4"),
        headers={"Cache-Control": "public, max-age=31536000, immutable"},
    )
