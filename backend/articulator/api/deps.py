"""
Shared dependencies and error helpers for the API routers.
Services live on ``app.state`` and are created by ``create_app``.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from ..core.errors import FileProcessingTimeout, ProviderError
from ..services.analysis import AnalysisService
from ..services.chat_store import ChatStore
from ..storage import LocalStorage

logger = logging.getLogger(__name__)


def get_chat_store(request: Request) -> ChatStore:
    return request.app.state.chat_store


def get_analysis_service(request: Request) -> AnalysisService:
    return request.app.state.analysis_service


def get_storage(request: Request) -> LocalStorage:
    return request.app.state.storage


def error_response(status_code: int, error: str, details: str = "", kind: Optional[str] = None) -> JSONResponse:
    """Structured ``{error, details, timestamp}`` body used for provider failures."""
    body = {
        "error": error,
        "details": details,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if kind:
        body["kind"] = kind
    return JSONResponse(status_code=status_code, content=body)


def provider_error_response(error: ProviderError, context: str) -> JSONResponse:
    """Map a provider failure to 504 (timeout) or 500 (anything else)."""
    if isinstance(error, FileProcessingTimeout):
        return error_response(status.HTTP_504_GATEWAY_TIMEOUT, context, str(error), kind=error.kind)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, context, str(error), kind=getattr(error, "kind", None)
    )


def resolve_upload_path(storage: LocalStorage, file_path: Optional[str]) -> Path:
    """
    Validate a client supplied recording path before any provider call.

    Raises:
        HTTPException: 400 if the path is missing, outside the upload directory
            or not an existing file
    """
    if not file_path:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file path provided")

    candidate = Path(file_path)
    if not candidate.is_absolute():
        candidate = storage.base_dir / candidate
    resolved = candidate.resolve()
    if storage.base_dir not in resolved.parents:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File path is outside the upload directory")
    if not resolved.is_file():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Video file not found")
    return resolved
