"""OpenAI-compatible chat-completions proxy backend."""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from src.core.base_backend import BaseBackend
from src.core.errors import (
    UpstreamResponseError,
    UpstreamStatusError,
    UpstreamTransportError,
)
from src.core.models import ChatCompletionRequest, ChatCompletionResponse, UpstreamTarget

logger = logging.getLogger(__name__)


class ChatProxyBackend(BaseBackend):
    """Backend that talks to a chat-completions proxy over HTTP.

    One ``httpx.AsyncClient`` is shared by every request for the lifetime of
    the application so connections are pooled.

    Attributes:
        client: Shared async HTTP client
        default_timeout: Timeout used by calls that do not pass their own
    """

    def __init__(self, client: httpx.AsyncClient, default_timeout: Optional[float] = None):
        """Initialize the backend.

        Args:
            client: Async HTTP client to send requests with
            default_timeout: Timeout in seconds for single-shot calls
        """
        self.client = client
        self.default_timeout = default_timeout

    async def _post(
        self,
        url: str,
        target: UpstreamTarget,
        body: Dict[str, Any],
        timeout: Optional[float]
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {target.api_key}"}
        try:
            response = await self.client.post(
                url,
                json=body,
                headers=headers,
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT
            )
        except httpx.TransportError as e:
            raise UpstreamTransportError(f"request to {url} failed: {e!r}") from e

        if not response.is_success:
            raise UpstreamStatusError(response.status_code, response.text)
        return response

    async def chat_completion(
        self,
        url: str,
        target: UpstreamTarget,
        payload: ChatCompletionRequest,
        timeout: float
    ) -> ChatCompletionResponse:
        response = await self._post(url, target, payload.model_dump(), timeout)
        try:
            return ChatCompletionResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise UpstreamResponseError(f"unreadable chat completion response: {e}") from e

    async def raw_chat_completion(
        self,
        url: str,
        target: UpstreamTarget,
        payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        response = await self._post(url, target, payload, self.default_timeout)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamResponseError(f"unreadable chat completion response: {e}") from e

    @property
    def name(self) -> str:
        """Get the backend name."""
        return "ChatProxy"
