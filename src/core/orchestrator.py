"""Retry driver for a single upstream target."""

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Optional

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_fixed

from src.core.base_backend import BaseBackend
from src.core.errors import (
    GatewayError,
    ImageDownloadError,
    NoImageUrlError,
    RetriesExhaustedError,
    TargetFailedError,
    UpstreamStatusError,
    UpstreamTransportError,
)
from src.core.models import (
    ChatCompletionRequest,
    GenerationRequest,
    GenerationResult,
    ImageOutcome,
    RetryPolicy,
    UpstreamTarget,
)
from src.core.request_builder import build_chat_request, build_endpoint_url
from src.core.url_extractor import extract_url
from src.utils.image_store import ImageStore, local_image_path

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS = 429


class AttemptAction(Enum):
    """What the driver loop should do after an attempt."""
    RETRY = "retry"
    FAIL_TARGET = "fail_target"
    SUCCEED = "succeed"


def classify_attempt(
    status_code: Optional[int] = None,
    transport_error: Optional[BaseException] = None
) -> AttemptAction:
    """Classify the outcome of one upstream attempt.

    Transport failures, 429 and every other non-4xx failure are retried.
    Client errors (400-499 except 429) will never succeed on retry and end
    the target immediately.

    Args:
        status_code: HTTP status of the response, if one was received
        transport_error: Connection or timeout error, if the request failed

    Returns:
        The action the driver loop should take
    """
    if transport_error is not None or status_code is None:
        return AttemptAction.RETRY
    if 200 <= status_code < 300:
        return AttemptAction.SUCCEED
    if 400 <= status_code < 500 and status_code != TOO_MANY_REQUESTS:
        return AttemptAction.FAIL_TARGET
    return AttemptAction.RETRY


def classify_exception(error: BaseException) -> AttemptAction:
    """Classify an exception raised during an attempt."""
    if isinstance(error, UpstreamTransportError):
        return classify_attempt(transport_error=error)
    if isinstance(error, UpstreamStatusError):
        return classify_attempt(status_code=error.status_code)
    return AttemptAction.FAIL_TARGET


def _is_retryable(error: BaseException) -> bool:
    return classify_exception(error) is AttemptAction.RETRY


class RetryOrchestrator:
    """Runs attempts against one target and resolves the returned images.

    Attributes:
        backend: Upstream chat-completions backend
        image_store: Where extracted images are downloaded to
    """

    def __init__(
        self,
        backend: BaseBackend,
        image_store: ImageStore,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """Initialize the orchestrator.

        Args:
            backend: Upstream chat-completions backend
            image_store: Fetcher/persister for extracted image URLs
            sleep: Coroutine used for the inter-attempt delay
        """
        self.backend = backend
        self.image_store = image_store
        self._sleep = sleep

    async def attempt_generation(
        self,
        target: UpstreamTarget,
        request: GenerationRequest,
        policy: RetryPolicy
    ) -> GenerationResult:
        """Generate images against a single target within the retry budget.

        Args:
            target: Upstream endpoint and credential
            request: The generation request
            policy: Attempt ceiling, per-attempt timeout and fixed delay

        Returns:
            GenerationResult with one outcome per returned choice

        Raises:
            TargetFailedError: If the target failed terminally or the budget
                ran out. ``cause`` holds the classified error.
        """
        url = build_endpoint_url(target.base_url)
        payload = build_chat_request(request)

        retrying = AsyncRetrying(
            sleep=self._sleep,
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_fixed(policy.delay),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    number = attempt.retry_state.attempt_number
                    logger.info(
                        f"Generating image [attempt {number}/{policy.max_attempts}] | target: {url}"
                    )
                    return await self._attempt(url, target, payload, policy)
        except UpstreamTransportError as e:
            logger.warning(f"Network error against {url}, attempts used up: {e}")
            raise TargetFailedError(url, e) from e
        except UpstreamStatusError as e:
            if _is_retryable(e):
                exhausted = RetriesExhaustedError(policy.max_attempts, e)
                logger.error(f"Upstream {url} {exhausted}")
                raise TargetFailedError(url, exhausted) from e
            logger.error(f"Upstream request failed | status: {e.status_code} | body: {e.body}")
            raise TargetFailedError(url, e) from e
        except NoImageUrlError as e:
            logger.error(f"Could not find an image address in response from {url}")
            raise TargetFailedError(url, e) from e
        except GatewayError as e:
            logger.error(f"Upstream {url} failed: {e}")
            raise TargetFailedError(url, e) from e

        # AsyncRetrying always makes at least one attempt.
        raise TargetFailedError(url, RetriesExhaustedError(policy.max_attempts))

    async def _attempt(
        self,
        url: str,
        target: UpstreamTarget,
        payload: ChatCompletionRequest,
        policy: RetryPolicy
    ) -> GenerationResult:
        try:
            response = await self.backend.chat_completion(url, target, payload, policy.timeout)
        except UpstreamTransportError as e:
            logger.warning(f"Network error: {e} | retrying")
            raise
        except UpstreamStatusError as e:
            if _is_retryable(e):
                logger.warning(f"Upstream returned {e.status_code} | retrying")
            raise

        outcomes = []
        for content in response.texts():
            image_url = extract_url(content)
            if image_url is None:
                raise NoImageUrlError(content)
            outcomes.append(await self._resolve(image_url, content))

        return GenerationResult(created=int(time.time()), data=outcomes)

    async def _resolve(self, image_url: str, content: str) -> ImageOutcome:
        outcome = ImageOutcome(url=image_url, revised_prompt=content)
        try:
            filename = await self.image_store.fetch(image_url)
        except ImageDownloadError as e:
            logger.warning(f"Keeping remote URL, download failed: {e}")
            return outcome
        outcome.url = local_image_path(filename)
        return outcome
