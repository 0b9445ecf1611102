"""
Request logging middleware.

Pure ASGI (not BaseHTTPMiddleware) so streamed analysis responses pass
through untouched. Logs method, path, status and duration for every request;
JSON bodies are logged filtered and truncated, while multipart uploads,
event streams and video payloads are only measured.
"""

import json
import logging
import time
from typing import Dict, List, Optional

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..core.logging_config import filter_sensitive_data, truncate_large_data

logger = logging.getLogger(__name__)

LOGGABLE_CONTENT_TYPES = ("application/json", "text/plain")


def _is_loggable(content_type: Optional[str]) -> bool:
    return bool(content_type) and content_type.split(";")[0].strip() in LOGGABLE_CONTENT_TYPES


def _summarize_body(chunks: List[bytes], max_length: int = 5000) -> Optional[str]:
    """Decode a JSON or text body, mask credentials and truncate."""
    raw = b"".join(chunks)
    if not raw:
        return None
    text = raw.decode("utf-8", errors="ignore")
    try:
        text = json.dumps(filter_sensitive_data(json.loads(text)), ensure_ascii=False)
    except json.JSONDecodeError:
        pass
    return truncate_large_data(text, max_length=max_length)


class RequestLoggingMiddleware:
    """Log every HTTP request with its outcome."""

    def __init__(self, app: ASGIApp, exclude_paths: Optional[list] = None):
        """
        Args:
            app: The ASGI application
            exclude_paths: Paths that are passed through without logging
        """
        self.app = app
        self.exclude_paths = exclude_paths or ["/health", "/"]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path", "") in self.exclude_paths:
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        method = scope.get("method", "UNKNOWN")
        path = scope.get("path", "")
        request_headers: Dict[str, str] = {
            k.decode("latin-1"): v.decode("latin-1") for k, v in scope.get("headers", [])
        }
        client = scope.get("client")

        log_request_body = _is_loggable(request_headers.get("content-type"))
        request_chunks: List[bytes] = []
        request_size = 0

        async def logging_receive() -> Message:
            nonlocal request_size
            message = await receive()
            if message["type"] == "http.request":
                body = message.get("body", b"")
                request_size += len(body)
                if log_request_body:
                    request_chunks.append(body)
            return message

        status_code = 0
        response_content_type: Optional[str] = None
        response_chunks: List[bytes] = []
        response_size = 0

        async def logging_send(message: Message) -> None:
            nonlocal status_code, response_content_type, response_size
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
                headers = {k.decode("latin-1").lower(): v.decode("latin-1") for k, v in message.get("headers", [])}
                response_content_type = headers.get("content-type")
            elif message["type"] == "http.response.body":
                body = message.get("body", b"")
                response_size += len(body)
                if _is_loggable(response_content_type):
                    response_chunks.append(body)
            await send(message)

        logger.info(
            f"Request started: {method} {path}",
            extra={"extra_fields": {
                "method": method,
                "path": path,
                "client": client[0] if client else None,
                "user_agent": request_headers.get("user-agent"),
            }}
        )

        try:
            await self.app(scope, logging_receive, logging_send)
        except Exception as e:
            logger.error(
                f"Request failed: {method} {path} - {e}",
                exc_info=True,
                extra={"extra_fields": {
                    "method": method,
                    "path": path,
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                }}
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        request_body = _summarize_body(request_chunks)
        response_body = _summarize_body(response_chunks) if status_code >= 400 else None

        if status_code < 400:
            level = logging.INFO
        elif status_code < 500:
            level = logging.WARNING
        else:
            level = logging.ERROR

        message = f"Request completed: {method} {path} - {status_code} ({duration_ms:.2f}ms)"
        if response_body:
            message += f" | response_body={response_body}"

        logger.log(
            level,
            message,
            extra={"extra_fields": {
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
                "request_bytes": request_size,
                "response_bytes": response_size,
                "response_content_type": response_content_type,
                "request_body": request_body,
                "response_body": response_body,
            }}
        )
