"""Application-wide context shared by every request handler."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import httpx

from src.backends.chat_proxy import ChatProxyBackend
from src.core.gateway_config import ConfigStore
from src.core.image_generator import ImageGenerator
from src.utils.concurrency_limiter import ConcurrencyLimiter
from src.utils.health import HealthChecker
from src.utils.history_manager import HistoryManager
from src.utils.prompt_enhancer import PromptEnhancer

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """Everything a handler needs, created once per application.

    Config and history are each guarded by their own reader/writer lock
    inside :class:`ConfigStore` and :class:`HistoryManager`.
    """
    config: ConfigStore
    history: HistoryManager
    http_client: httpx.AsyncClient
    backend: ChatProxyBackend
    generator: ImageGenerator
    enhancer: PromptEnhancer
    limiter: ConcurrencyLimiter
    health: HealthChecker = field(default_factory=HealthChecker)

    async def aclose(self) -> None:
        """Release the shared HTTP client."""
        await self.http_client.aclose()


def build_state(
    config: ConfigStore,
    history: HistoryManager,
    http_client: Optional[httpx.AsyncClient] = None,
    max_concurrent_requests: int = 32
) -> AppState:
    """Wire the collaborators together.

    Args:
        config: Live gateway configuration
        history: Generation history
        http_client: Shared client; a new one is created if omitted
        max_concurrent_requests: Admission ceiling for the HTTP layer

    Returns:
        A ready-to-use AppState
    """
    client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(120.0), follow_redirects=True)
    backend = ChatProxyBackend(client)
    return AppState(
        config=config,
        history=history,
        http_client=client,
        backend=backend,
        generator=ImageGenerator(config, history, backend, client),
        enhancer=PromptEnhancer(backend),
        limiter=ConcurrencyLimiter(max_concurrent_requests),
    )


def load_state(
    config_file: str,
    history_file: str,
    max_concurrent_requests: int = 32,
    http_client: Optional[httpx.AsyncClient] = None
) -> AppState:
    """Load config and history from disk and build the application state."""
    config = ConfigStore.from_file(config_file)
    history = HistoryManager.from_file(history_file)
    logger.info(f"Loaded config from {config_file} and {Path(history_file).name}")
    return build_state(config, history, http_client, max_concurrent_requests)
