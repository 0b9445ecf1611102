"""Services module - persistence and provider orchestration behind the HTTP endpoints."""

from .analysis import AnalysisService, build_llm_messages
from .chat_store import ChatStore
from .file_ingestion import RetryPolicy, ingest_file, wait_until_active

__all__ = [
    'AnalysisService',
    'build_llm_messages',
    'ChatStore',
    'RetryPolicy',
    'ingest_file',
    'wait_until_active',
]
