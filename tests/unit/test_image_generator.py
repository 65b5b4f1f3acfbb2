"""Unit tests for the generation coordinator."""

import asyncio
from unittest.mock import patch

import httpx
import pytest

from conftest import (
    FAKE_PNG,
    FALLBACK_ENDPOINT,
    PRIMARY_ENDPOINT,
    RecordingSleep,
    UpstreamRecorder,
    chat_body,
)
from src.backends.chat_proxy import ChatProxyBackend
from src.core.errors import GenerationFailedError, TargetFailedError
from src.core.image_generator import ImageGenerator
from src.core.models import GenerationRequest, GenerationResult, ImageOutcome
from src.utils.history_manager import HistoryManager


def make_generator(config, history, handler):
    recorder = UpstreamRecorder(handler)
    client = recorder.client()
    generator = ImageGenerator(
        config, history, ChatProxyBackend(client), client, sleep=RecordingSleep()
    )
    return generator, recorder


def image_host(request):
    return httpx.Response(200, content=FAKE_PNG)


class TestImageGenerator:
    """Tests for ImageGenerator.generate."""

    def test_end_to_end_red_fox(self, make_config, history, storage_dir):
        """Test the full pipeline: extraction, download and history entry."""
        def handler(request):
            if request.url.host == "cdn.example":
                return image_host(request)
            return httpx.Response(200, json=chat_body("here: ![img](https://cdn.example/x.png) enjoy"))

        generator, recorder = make_generator(make_config(), history, handler)
        result = asyncio.run(generator.generate(GenerationRequest(prompt="a red fox")))

        assert len(result.data) == 1
        outcome = result.data[0]
        assert outcome.url.startswith("/images/")
        assert outcome.url.endswith(".png")
        assert outcome.revised_prompt == "here: ![img](https://cdn.example/x.png) enjoy"

        stored = storage_dir / outcome.url.rsplit("/", 1)[-1]
        assert stored.read_bytes() == FAKE_PNG

        entries = asyncio.run(history.get_all())
        assert len(entries) == 1
        assert entries[0].prompt == "a red fox"
        assert entries[0].images == [outcome.url]
        assert recorder.calls_to(PRIMARY_ENDPOINT) == 1

    def test_fallback_used_when_primary_fails(self, make_config, history):
        """Test that a failing primary hands over to the fallback."""
        def handler(request):
            if request.url.host == "primary.test":
                return httpx.Response(500, text="down")
            if request.url.host == "cdn.example":
                return image_host(request)
            return httpx.Response(200, json=chat_body("[x](https://cdn.example/f.jpg)"))

        generator, recorder = make_generator(make_config(fallback=True, retry_limit=2), history, handler)
        result = asyncio.run(generator.generate(GenerationRequest(prompt="a red fox")))

        assert result.data[0].url.endswith(".jpg")
        assert recorder.calls_to(PRIMARY_ENDPOINT) == 2
        assert recorder.calls_to(FALLBACK_ENDPOINT) == 1
        assert asyncio.run(history.get_count()) == 1

    def test_client_error_triggers_fallback(self, make_config, history):
        """Test that a terminal 4xx on the primary still triggers fallback."""
        def handler(request):
            if request.url.host == "primary.test":
                return httpx.Response(400, text="bad")
            if request.url.host == "cdn.example":
                return image_host(request)
            return httpx.Response(200, json=chat_body("https://cdn.example/f.png"))

        generator, recorder = make_generator(make_config(fallback=True), history, handler)
        asyncio.run(generator.generate(GenerationRequest(prompt="a red fox")))

        assert recorder.calls_to(PRIMARY_ENDPOINT) == 1
        assert recorder.calls_to(FALLBACK_ENDPOINT) == 1

    def test_no_fallback_available(self, make_config, history):
        """Test the error message when the primary fails and no fallback exists."""
        generator, recorder = make_generator(
            make_config(), history, lambda request: httpx.Response(400, text="bad")
        )

        with pytest.raises(GenerationFailedError, match="primary failed: .*; no fallback available"):
            asyncio.run(generator.generate(GenerationRequest(prompt="a red fox")))
        assert asyncio.run(history.get_count()) == 0

    def test_both_targets_fail(self, make_config, history):
        """Test the error chain when primary and fallback both fail."""
        generator, recorder = make_generator(
            make_config(fallback=True, retry_limit=1),
            history,
            lambda request: httpx.Response(503, text="busy")
        )

        with pytest.raises(GenerationFailedError) as exc_info:
            asyncio.run(generator.generate(GenerationRequest(prompt="a red fox")))

        message = str(exc_info.value)
        assert message.startswith("primary failed: ")
        assert "; fallback failed: " in message
        assert "retries exhausted" in message
        assert asyncio.run(history.get_count()) == 0

    def test_empty_choices_not_recorded(self, make_config, history):
        """Test that a success with no images leaves history untouched."""
        generator, recorder = make_generator(
            make_config(), history, lambda request: httpx.Response(200, json={"choices": []})
        )

        result = asyncio.run(generator.generate(GenerationRequest(prompt="a red fox")))

        assert result.data == []
        assert asyncio.run(history.get_count()) == 0

    def test_history_persisted(self, make_config, history, tmp_path):
        """Test that a successful generation is written to the history file."""
        def handler(request):
            if request.url.host == "cdn.example":
                return image_host(request)
            return httpx.Response(200, json=chat_body("https://cdn.example/x.png"))

        generator, recorder = make_generator(make_config(), history, handler)
        asyncio.run(generator.generate(GenerationRequest(prompt="a red fox")))

        reloaded = HistoryManager.from_file(tmp_path / "history.json")
        assert asyncio.run(reloaded.get_count()) == 1

    def test_history_write_failure_is_not_fatal(self, make_config, tmp_path):
        """Test that a failing history save does not fail the request."""
        history = HistoryManager(history_file=tmp_path / "missing-dir" / "history.json")

        def handler(request):
            if request.url.host == "cdn.example":
                return image_host(request)
            return httpx.Response(200, json=chat_body("https://cdn.example/x.png"))

        generator, recorder = make_generator(make_config(), history, handler)
        result = asyncio.run(generator.generate(GenerationRequest(prompt="a red fox")))

        assert len(result.data) == 1
        assert asyncio.run(history.get_count()) == 1

    def test_history_cap_over_many_generations(self, make_config, history):
        """Test len(history) == min(successes, 100), newest first."""
        def handler(request):
            if request.url.host == "cdn.example":
                return image_host(request)
            return httpx.Response(200, json=chat_body("https://cdn.example/x.png"))

        generator, recorder = make_generator(make_config(), history, handler)

        async def run_many():
            for i in range(105):
                await generator.generate(GenerationRequest(prompt=f"prompt {i}"))

        asyncio.run(run_many())
        entries = asyncio.run(history.get_all())

        assert len(entries) == 100
        assert entries[0].prompt == "prompt 104"
        assert entries[-1].prompt == "prompt 5"

    def test_primary_failure_then_fallback_result_is_returned(self, make_config, history):
        """Test that the coordinator returns exactly the fallback's result."""
        generator, recorder = make_generator(make_config(fallback=True), history, image_host)
        fallback_result = GenerationResult(
            created=123,
            data=[ImageOutcome(url="/images/a.png", revised_prompt="text")]
        )
        calls = []

        class FakeOrchestrator:
            def __init__(self, *args, **kwargs):
                pass

            async def attempt_generation(self, target, request, policy):
                calls.append(target.base_url)
                if "primary" in target.base_url:
                    raise TargetFailedError(target.base_url, RuntimeError("down"))
                return fallback_result

        with patch("src.core.image_generator.RetryOrchestrator", FakeOrchestrator):
            result = asyncio.run(generator.generate(GenerationRequest(prompt="a red fox")))

        assert result == fallback_result
        assert calls == ["http://primary.test/v1", "http://fallback.test/v1"]
        assert asyncio.run(history.get_count()) == 1
