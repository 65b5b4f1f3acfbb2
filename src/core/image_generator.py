"""Image generation coordinator with fallback support."""

import asyncio
import logging
import time
from typing import Awaitable, Callable

import httpx

from src.core.base_backend import BaseBackend
from src.core.errors import GenerationFailedError, TargetFailedError
from src.core.gateway_config import ConfigStore
from src.core.models import GenerationRequest, GenerationResult, HistoryEntry
from src.core.orchestrator import RetryOrchestrator
from src.utils.history_manager import HistoryManager
from src.utils.image_store import ImageStore

logger = logging.getLogger(__name__)


class ImageGenerator:
    """Owns one generation request from config snapshot to history entry.

    Runs the retry orchestrator against the primary target and, if that
    fails for any reason, against the fallback target. Successful results
    with at least one image are recorded in history.

    Attributes:
        config: Live gateway configuration
        history: Generation history
        backend: Upstream chat-completions backend
        http_client: Client used to download generated images
    """

    def __init__(
        self,
        config: ConfigStore,
        history: HistoryManager,
        backend: BaseBackend,
        http_client: httpx.AsyncClient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """Initialize the image generator.

        Args:
            config: Live gateway configuration
            history: Generation history
            backend: Upstream chat-completions backend
            http_client: Client used to download generated images
            sleep: Coroutine used for the inter-attempt delay
        """
        self.config = config
        self.history = history
        self.backend = backend
        self.http_client = http_client
        self._sleep = sleep

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate images with automatic fallback.

        Args:
            request: The generation request

        Returns:
            The result from whichever target succeeded

        Raises:
            GenerationFailedError: If the primary failed and the fallback is
                missing or also failed
        """
        snapshot = await self.config.snapshot()
        logger.info(f"Received image generation request: {request.prompt}")

        orchestrator = RetryOrchestrator(
            self.backend,
            self.image_store_for(snapshot.storage_path),
            sleep=self._sleep
        )

        try:
            result = await orchestrator.attempt_generation(snapshot.primary, request, snapshot.policy)
        except TargetFailedError as primary_error:
            if snapshot.fallback is None:
                logger.error(f"Primary upstream failed and no fallback is configured: {primary_error}")
                raise GenerationFailedError(
                    f"primary failed: {primary_error}; no fallback available"
                ) from primary_error

            logger.warning(f"Primary upstream failed: {primary_error}, trying fallback...")
            try:
                result = await orchestrator.attempt_generation(snapshot.fallback, request, snapshot.policy)
            except TargetFailedError as fallback_error:
                logger.error(f"Fallback upstream failed: {fallback_error}")
                raise GenerationFailedError(
                    f"primary failed: {primary_error}; fallback failed: {fallback_error}"
                ) from fallback_error
            logger.info("Generated image with fallback upstream")

        await self._record(request, result)
        return result

    def image_store_for(self, storage_path: str) -> ImageStore:
        """Image store writing under ``storage_path`` with the shared client."""
        return ImageStore(self.http_client, storage_path)

    async def _record(self, request: GenerationRequest, result: GenerationResult) -> None:
        images = result.image_urls()
        if not images:
            return
        entry = HistoryEntry(
            prompt=request.prompt,
            timestamp=int(time.time() * 1000),
            images=images
        )
        await self.history.add(entry)
