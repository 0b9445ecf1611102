"""
LLM Provider Base - Abstract base for generative-AI providers.
Covers the two capabilities the analysis gateway needs: ingesting a media
file and streaming a completion that may reference it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Dict, List, Optional, Union

FILE_STATE_PROCESSING = "PROCESSING"
FILE_STATE_ACTIVE = "ACTIVE"
FILE_STATE_FAILED = "FAILED"


@dataclass
class LLMMessage:
    """
    Represents a message in a conversation.
    Content is either plain text or a list of parts (text and file references).
    """
    role: str  # "user", "assistant"
    content: Union[str, List[Dict[str, Any]]]

    @staticmethod
    def text(role: str, text: str) -> "LLMMessage":
        """Create a text-only message."""
        return LLMMessage(role=role, content=text)

    @staticmethod
    def with_file(role: str, text: str, file_uri: str, mime_type: str) -> "LLMMessage":
        """
        Create a message that attaches an ingested provider file.

        Args:
            role: Message role
            text: Text content
            file_uri: Remote file URI returned by the provider
            mime_type: Mime type of the attached file
        """
        return LLMMessage(role=role, content=[
            {"type": "file", "file_uri": file_uri, "mime_type": mime_type},
            {"type": "text", "text": text},
        ])

    @property
    def plain_text(self) -> str:
        """Text of the message with any file parts dropped."""
        if isinstance(self.content, str):
            return self.content
        return "".join(part.get("text", "") for part in self.content if part.get("type") == "text")


@dataclass
class RemoteFile:
    """Handle for a file ingested by the provider."""
    name: str
    state: str
    mime_type: str
    uri: Optional[str] = None

    @property
    def is_processing(self) -> bool:
        return self.state == FILE_STATE_PROCESSING

    @property
    def is_active(self) -> bool:
        return self.state == FILE_STATE_ACTIVE

    @property
    def is_failed(self) -> bool:
        return self.state == FILE_STATE_FAILED


@dataclass
class StreamChunk:
    """
    One item of a streamed completion.
    Text chunks carry ``text``; the last chunk carries ``finish_reason`` and ``usage``.
    """
    text: str = ""
    finish_reason: Optional[str] = None
    usage: Dict[str, int] = field(default_factory=dict)


class LLMProvider(ABC):
    """
    Abstract base class for LLM API providers.
    """

    def __init__(self, api_key: str, model: str, base_url: Optional[str] = None,
                 default_temperature: float = 0.7, default_max_tokens: int = 4096):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.default_temperature = default_temperature
        self.default_max_tokens = default_max_tokens

    @abstractmethod
    async def upload_file(self, file_path: str, mime_type: str) -> RemoteFile:
        """
        Submit a local file to the provider.

        Args:
            file_path: Path of the file on local disk
            mime_type: Mime type to declare for the file

        Returns:
            RemoteFile whose state is usually still PROCESSING
        """
        pass

    @abstractmethod
    async def get_file(self, name: str) -> RemoteFile:
        """Fetch the current state of a previously uploaded file."""
        pass

    @abstractmethod
    async def chat_completion_stream(
        self,
        messages: List[LLMMessage],
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> AsyncGenerator[StreamChunk, None]:
        """
        Stream completion chunks.

        Args:
            messages: Conversation messages, may attach remote files
            system_prompt: System instruction for the model
            temperature: Sampling temperature override
            max_tokens: Max tokens override
            **kwargs: Additional provider-specific parameters

        Yields:
            StreamChunk: text fragments, then one final chunk with finish metadata
        """
        pass
