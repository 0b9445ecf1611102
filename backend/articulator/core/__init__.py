"""Core module - logging, error types and the streaming wire protocol."""

from .errors import (
    ArticulatorError,
    ChatStreamError,
    FileProcessingFailed,
    FileProcessingTimeout,
    MediaAccessError,
    ProviderError,
    RecorderStateError,
    UploadError,
)
from .stream_protocol import PROTOCOL_VERSION, StreamDecoder, StreamEvent, encode_event

__all__ = [
    'ArticulatorError',
    'ChatStreamError',
    'FileProcessingFailed',
    'FileProcessingTimeout',
    'MediaAccessError',
    'ProviderError',
    'RecorderStateError',
    'UploadError',
    'PROTOCOL_VERSION',
    'StreamDecoder',
    'StreamEvent',
    'encode_event',
]
