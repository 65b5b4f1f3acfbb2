"""Abstract base class for upstream chat-completion backends."""

from abc import ABC, abstractmethod
from typing import Any, Dict

from .models import ChatCompletionRequest, ChatCompletionResponse, UpstreamTarget


class BaseBackend(ABC):
    """Interface for talking to an OpenAI-compatible chat-completions upstream.

    The orchestrator only depends on this contract, so tests and alternative
    transports can stand in for the HTTP implementation.
    """

    @abstractmethod
    async def chat_completion(
        self,
        url: str,
        target: UpstreamTarget,
        payload: ChatCompletionRequest,
        timeout: float
    ) -> ChatCompletionResponse:
        """Send one chat-completion request.

        Args:
            url: Canonical chat-completions endpoint
            target: Target whose credential is sent as a bearer token
            payload: Request body
            timeout: Per-request timeout in seconds

        Returns:
            The parsed chat-completion response

        Raises:
            UpstreamTransportError: On connection failures and timeouts
            UpstreamStatusError: If the upstream answers with a non-2xx status
            UpstreamResponseError: If a 2xx body cannot be parsed
        """

    @abstractmethod
    async def raw_chat_completion(
        self,
        url: str,
        target: UpstreamTarget,
        payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Send an arbitrary chat-completion body and return the JSON reply.

        Raises the same errors as :meth:`chat_completion`.
        """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""

    def __repr__(self) -> str:
        """String representation of the backend."""
        return f"{self.__class__.__name__}(name='{self.name}')"
