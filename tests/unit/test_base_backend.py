"""Unit tests for base backend abstract class."""

import asyncio

import pytest

from src.core.base_backend import BaseBackend
from src.core.models import ChatCompletionResponse, UpstreamTarget


class ConcreteBackend(BaseBackend):
    """Concrete implementation of BaseBackend for testing."""

    def __init__(self):
        self.calls = []

    async def chat_completion(self, url, target, payload, timeout):
        """Mock implementation."""
        self.calls.append((url, timeout))
        return ChatCompletionResponse.model_validate({"choices": [{"message": {"content": "ok"}}]})

    async def raw_chat_completion(self, url, target, payload):
        """Mock implementation."""
        return {"echo": payload}

    @property
    def name(self) -> str:
        """Mock implementation."""
        return "ConcreteBackend"


class TestBaseBackend:
    """Tests for BaseBackend abstract class."""

    def test_cannot_instantiate_abstract_class(self):
        """Test that BaseBackend cannot be instantiated directly."""
        with pytest.raises(TypeError):
            BaseBackend()

    def test_missing_method_is_abstract(self):
        """Test that a subclass must implement every method."""
        class Incomplete(BaseBackend):
            async def chat_completion(self, url, target, payload, timeout):
                return ChatCompletionResponse()

            @property
            def name(self):
                return "Incomplete"

        with pytest.raises(TypeError):
            Incomplete()

    def test_chat_completion(self):
        """Test that chat_completion can be awaited."""
        backend = ConcreteBackend()
        target = UpstreamTarget(base_url="http://primary.test/v1")

        result = asyncio.run(backend.chat_completion("http://primary.test/v1/chat/completions", target, None, 5.0))

        assert result.texts() == ["ok"]
        assert backend.calls == [("http://primary.test/v1/chat/completions", 5.0)]

    def test_raw_chat_completion(self):
        """Test that raw_chat_completion can be awaited."""
        target = UpstreamTarget(base_url="http://primary.test/v1")

        result = asyncio.run(ConcreteBackend().raw_chat_completion("u", target, {"a": 1}))

        assert result == {"echo": {"a": 1}}

    def test_repr(self):
        """Test string representation."""
        assert repr(ConcreteBackend()) == "ConcreteBackend(name='ConcreteBackend')"
