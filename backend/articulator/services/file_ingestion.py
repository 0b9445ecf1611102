"""
File Ingestion - hand a local recording to the provider and wait until it is usable.

The provider processes uploads asynchronously. Its handle is polled at a fixed
interval until it reports ACTIVE or FAILED, bounded by both an attempt count
and a wall-clock deadline.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ..core.errors import FileProcessingFailed, FileProcessingTimeout, ProviderError
from ..llm.base import LLMProvider, RemoteFile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounds for polling a file that is still PROCESSING."""
    interval_seconds: float = 1.0
    max_attempts: int = 120
    deadline_seconds: Optional[float] = 300.0

    @classmethod
    def from_settings(cls, config: Any) -> "RetryPolicy":
        return cls(
            interval_seconds=config.file_poll_interval_seconds,
            max_attempts=config.file_poll_max_attempts,
            deadline_seconds=config.file_poll_deadline_seconds,
        )


async def wait_until_active(
    provider: LLMProvider,
    remote_file: RemoteFile,
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> RemoteFile:
    """
    Poll ``remote_file`` until the provider finishes processing it.

    Args:
        provider: Provider that issued the handle
        remote_file: Handle returned by the upload
        policy: Polling bounds
        sleep: Awaitable sleep, replaceable in tests
        clock: Monotonic clock, replaceable in tests

    Returns:
        The ACTIVE handle

    Raises:
        FileProcessingFailed: The provider reported FAILED
        FileProcessingTimeout: Attempts or deadline ran out while PROCESSING
        ProviderError: Any other terminal state, or an active file without URI
    """
    started = clock()
    attempts = 0

    while remote_file.is_processing:
        elapsed = clock() - started
        if attempts >= policy.max_attempts or (
            policy.deadline_seconds is not None and elapsed >= policy.deadline_seconds
        ):
            logger.warning(
                f"Gave up waiting for provider file {remote_file.name}",
                extra={"extra_fields": {"attempts": attempts, "elapsed_seconds": round(elapsed, 2)}}
            )
            raise FileProcessingTimeout(
                f"File {remote_file.name} still processing after {attempts} checks",
                attempts=attempts,
                elapsed_seconds=elapsed,
            )

        await sleep(policy.interval_seconds)
        attempts += 1
        remote_file = await provider.get_file(remote_file.name)
        logger.debug(f"Provider file {remote_file.name} state: {remote_file.state} (check {attempts})")

    if remote_file.is_failed:
        raise FileProcessingFailed(f"Provider failed to process file {remote_file.name}")
    if not remote_file.is_active:
        raise ProviderError(f"Unexpected provider file state: {remote_file.state}")
    if not remote_file.uri:
        raise ProviderError(f"Provider file {remote_file.name} has no URI")

    logger.info(f"Provider file ready: {remote_file.name} after {attempts} checks")
    return remote_file


async def ingest_file(
    provider: LLMProvider,
    file_path: str,
    mime_type: str,
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> RemoteFile:
    """Upload a local file and wait until the provider can use it."""
    remote_file = await provider.upload_file(file_path, mime_type)
    logger.info(f"Initial provider file state: {remote_file.state}")
    return await wait_until_active(provider, remote_file, policy, sleep=sleep)
