"""Shared test fixtures and configuration."""

import os
from typing import Callable, List

import httpx
import pytest

from src.core.gateway_config import ConfigStore, GatewayConfig
from src.core.models import GenerationRequest
from src.utils.history_manager import HistoryManager

PRIMARY_URL = "http://primary.test/v1"
FALLBACK_URL = "http://fallback.test/v1"
PRIMARY_ENDPOINT = "http://primary.test/v1/chat/completions"
FALLBACK_ENDPOINT = "http://fallback.test/v1/chat/completions"
FAKE_PNG = b"\x89PNG\r\n\x1a\nfake-image-bytes"


def chat_body(*texts: str) -> dict:
    """Build a chat-completion response body with one choice per text."""
    return {"choices": [{"message": {"role": "assistant", "content": text}} for text in texts]}


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class UpstreamRecorder:
    """Mock transport handler that counts calls per URL."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def calls_to(self, url: str) -> int:
        return sum(1 for request in self.requests if str(request.url) == url)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def sample_prompt():
    """Return a sample prompt for testing."""
    return "a red fox"


@pytest.fixture
def sample_generation_request(sample_prompt):
    """Return a sample GenerationRequest for testing."""
    return GenerationRequest(prompt=sample_prompt)


@pytest.fixture
def recording_sleep():
    """Return a sleep replacement that records requested delays."""
    return RecordingSleep()


@pytest.fixture
def storage_dir(tmp_path):
    """Return an empty image storage directory."""
    path = tmp_path / "storage"
    path.mkdir()
    return path


@pytest.fixture
def make_config(storage_dir):
    """Return a factory for ConfigStore instances backed by tmp storage."""
    def _make(fallback: bool = False, retry_limit: int = 3, config_file=None) -> ConfigStore:
        config = GatewayConfig(
            gemini_proxy_url=PRIMARY_URL,
            fallback_proxy_url=FALLBACK_URL if fallback else None,
            api_key="sk-test",
            storage_path=str(storage_dir),
            timeout=30,
            retry_limit=retry_limit,
        )
        return ConfigStore(config, config_file)
    return _make


@pytest.fixture
def history(tmp_path):
    """Return an empty history manager persisting into tmp_path."""
    return HistoryManager(history_file=tmp_path / "history.json")


# Skip integration tests unless explicitly requested
def pytest_collection_modifyitems(config, items):
    """Automatically skip integration tests unless RUN_INTEGRATION_TESTS is set."""
    skip_integration = pytest.mark.skip(reason="Integration tests disabled (set RUN_INTEGRATION_TESTS=true to enable)")

    for item in items:
        if "integration" in item.keywords:
            if not os.getenv("RUN_INTEGRATION_TESTS", "").lower() == "true":
                item.add_marker(skip_integration)
