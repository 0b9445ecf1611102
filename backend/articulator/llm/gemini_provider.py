"""
Google Gemini LLM Provider.
Talks to the Generative Language REST API: resumable file uploads through
the Files API and Server-Sent Events from ``streamGenerateContent``.
"""

import httpx
import json
import logging
import os
import time
from typing import Optional, List, Dict, Any, AsyncGenerator

import aiofiles

from .base import LLMProvider, LLMMessage, RemoteFile, StreamChunk, FILE_STATE_PROCESSING
from ..core.errors import ProviderError

logger = logging.getLogger(__name__)


class GeminiProvider(LLMProvider):
    """
    Provider for Google's Gemini models.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash-preview-05-20",
        base_url: str = "https://generativelanguage.googleapis.com",
        default_temperature: float = 0.7,
        default_max_tokens: int = 4096,
        timeout: float = 120.0,
    ):
        super().__init__(api_key, model, base_url.rstrip("/"), default_temperature, default_max_tokens)
        self.timeout = timeout

    def _get_headers(self) -> Dict[str, str]:
        return {"x-goog-api-key": self.api_key}

    @staticmethod
    def _parse_file(data: Dict[str, Any], mime_type: str = "") -> RemoteFile:
        return RemoteFile(
            name=data["name"],
            state=data.get("state", FILE_STATE_PROCESSING),
            mime_type=data.get("mimeType", mime_type),
            uri=data.get("uri"),
        )

    def _format_contents(self, messages: List[LLMMessage]) -> List[Dict[str, Any]]:
        """Convert LLMMessage list to Gemini ``contents``."""
        contents = []
        for message in messages:
            role = "model" if message.role == "assistant" else "user"
            if isinstance(message.content, str):
                parts = [{"text": message.content}]
            else:
                parts = []
                for part in message.content:
                    if part.get("type") == "file":
                        parts.append({"file_data": {
                            "mime_type": part["mime_type"],
                            "file_uri": part["file_uri"],
                        }})
                    else:
                        parts.append({"text": part.get("text", "")})
            contents.append({"role": role, "parts": parts})
        return contents

    async def upload_file(self, file_path: str, mime_type: str) -> RemoteFile:
        """Upload a file with the two-step resumable protocol."""
        start_time = time.time()
        async with aiofiles.open(file_path, "rb") as f:
            data = await f.read()

        start_headers = {
            **self._get_headers(),
            "X-Goog-Upload-Protocol": "resumable",
            "X-Goog-Upload-Command": "start",
            "X-Goog-Upload-Header-Content-Length": str(len(data)),
            "X-Goog-Upload-Header-Content-Type": mime_type,
        }
        metadata = {"file": {"display_name": os.path.basename(file_path)}}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url}/upload/v1beta/files", json=metadata, headers=start_headers
                )
                resp.raise_for_status()
                upload_url = resp.headers.get("x-goog-upload-url")
                if not upload_url:
                    raise ProviderError("Provider did not return an upload URL")

                resp = await client.post(
                    upload_url,
                    content=data,
                    headers={
                        **self._get_headers(),
                        "Content-Length": str(len(data)),
                        "X-Goog-Upload-Offset": "0",
                        "X-Goog-Upload-Command": "upload, finalize",
                    },
                )
                resp.raise_for_status()
                remote = self._parse_file(resp.json()["file"], mime_type)
        except httpx.HTTPStatusError as e:
            logger.error(f"File upload rejected by provider: {e.response.status_code}", exc_info=True)
            raise ProviderError(
                f"File upload failed with status {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"File upload failed: {e}", exc_info=True)
            raise ProviderError(f"File upload failed: {e}") from e

        logger.info(
            "Provider file uploaded",
            extra={"extra_fields": {
                "provider": "gemini",
                "file_name": remote.name,
                "state": remote.state,
                "size_bytes": len(data),
                "duration_ms": round((time.time() - start_time) * 1000, 2),
            }}
        )
        return remote

    async def get_file(self, name: str) -> RemoteFile:
        """Fetch file metadata, including its processing state."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(f"{self.base_url}/v1beta/{name}", headers=self._get_headers())
                resp.raise_for_status()
                return self._parse_file(resp.json())
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"File lookup failed with status {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"File lookup failed: {e}") from e

    async def chat_completion_stream(
        self,
        messages: List[LLMMessage],
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> AsyncGenerator[StreamChunk, None]:
        """Stream completion chunks from ``streamGenerateContent``."""
        start_time = time.time()
        model = kwargs.get("model", self.model)
        url = f"{self.base_url}/v1beta/models/{model}:streamGenerateContent"
        payload: Dict[str, Any] = {
            "contents": self._format_contents(messages),
            "generationConfig": {
                "temperature": temperature if temperature is not None else self.default_temperature,
                "maxOutputTokens": max_tokens or self.default_max_tokens,
            },
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                f"LLM API stream starting: provider=gemini, model={model}, "
                f"temperature={payload['generationConfig']['temperature']}, {len(messages)} messages"
            )

        content_length = 0
        finish_reason = None
        usage: Dict[str, int] = {}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async with client.stream(
                    "POST", url, params={"alt": "sse"}, json=payload, headers=self._get_headers()
                ) as response:
                    if response.status_code >= 400:
                        body = await response.aread()
                        raise ProviderError(
                            f"Completion request failed with status {response.status_code}: "
                            f"{body.decode('utf-8', errors='ignore')[:500]}",
                            status_code=response.status_code,
                        )

                    async for line in response.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        try:
                            chunk = json.loads(line[len("data:"):].strip())
                        except json.JSONDecodeError:
                            # Skip malformed chunks
                            continue

                        for candidate in chunk.get("candidates", [])[:1]:
                            for part in candidate.get("content", {}).get("parts", []):
                                text = part.get("text")
                                if text:
                                    content_length += len(text)
                                    yield StreamChunk(text=text)
                            if candidate.get("finishReason"):
                                finish_reason = candidate["finishReason"].lower()

                        metadata = chunk.get("usageMetadata")
                        if metadata:
                            usage = {
                                "prompt_tokens": metadata.get("promptTokenCount", 0),
                                "completion_tokens": metadata.get("candidatesTokenCount", 0),
                                "total_tokens": metadata.get("totalTokenCount", 0),
                            }
        except ProviderError:
            raise
        except httpx.HTTPError as e:
            logger.error(
                f"LLM API stream failed: {e}",
                exc_info=True,
                extra={"extra_fields": {
                    "provider": "gemini",
                    "model": model,
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                }}
            )
            raise ProviderError(f"Completion stream failed: {e}") from e

        logger.info(
            "LLM API stream completed",
            extra={"extra_fields": {
                "provider": "gemini",
                "model": model,
                "prompt_tokens": usage.get("prompt_tokens", 0),
                "completion_tokens": usage.get("completion_tokens", 0),
                "total_tokens": usage.get("total_tokens", 0),
                "duration_ms": round((time.time() - start_time) * 1000, 2),
                "content_length": content_length,
            }}
        )
        yield StreamChunk(finish_reason=finish_reason or "stop", usage=usage)
