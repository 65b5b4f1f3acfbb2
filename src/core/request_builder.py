"""Translate image generation requests into upstream chat-completion calls."""

from typing import List

from src.core.models import (
    DEFAULT_IMAGE_MODEL,
    ChatCompletionRequest,
    ChatMessage,
    ContentPart,
    GenerationRequest,
    ImageUrl,
    ImageUrlPart,
    TextPart,
)

CHAT_COMPLETIONS_PATH = "/chat/completions"
IMAGES_GENERATIONS_PATH = "/images/generations"


def build_prompt_text(request: GenerationRequest) -> str:
    """Combine the prompt with the negative prompt, if one was given.

    Args:
        request: The inbound generation request

    Returns:
        The prompt, with ``"\\nNegative prompt: ..."`` appended when the
        negative prompt is non-blank
    """
    if request.negative_prompt:
        negative = request.negative_prompt.strip()
        if negative:
            return f"{request.prompt}\nNegative prompt: {negative}"
    return request.prompt


def build_content_parts(request: GenerationRequest) -> List[ContentPart]:
    """Build the multi-part message content: text first, then reference images."""
    parts: List[ContentPart] = [TextPart(text=build_prompt_text(request))]

    references = []
    if request.image:
        references.append(request.image)
    if request.images:
        references.extend(request.images)

    for reference in references:
        parts.append(ImageUrlPart(image_url=ImageUrl(url=reference)))

    return parts


def build_chat_request(request: GenerationRequest) -> ChatCompletionRequest:
    """Build the chat-completion request for an image generation request.

    Args:
        request: The inbound generation request

    Returns:
        A single-message request carrying the requested (or default) model
    """
    return ChatCompletionRequest(
        model=request.model or DEFAULT_IMAGE_MODEL,
        messages=[ChatMessage(role="user", content=build_content_parts(request))],
    )


def build_endpoint_url(base_url: str) -> str:
    """Canonicalize a configured base URL to the chat-completions endpoint.

    Examples:
        ``http://host/v1`` -> ``http://host/v1/chat/completions``
        ``http://host`` -> ``http://host/v1/chat/completions``
        ``http://host/v1/images/generations`` -> ``http://host/v1/chat/completions``
    """
    url = base_url.strip()
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"

    if IMAGES_GENERATIONS_PATH in url:
        return url.replace(IMAGES_GENERATIONS_PATH, CHAT_COMPLETIONS_PATH)
    if url.endswith(CHAT_COMPLETIONS_PATH):
        return url

    base = url.rstrip("/")
    if base.endswith("/v1"):
        return f"{base}{CHAT_COMPLETIONS_PATH}"
    return f"{base}/v1{CHAT_COMPLETIONS_PATH}"


def build_chat_url(base_url: str) -> str:
    """Endpoint used by the single-shot chat and enhancement calls.

    These calls only check whether ``/v1`` appears anywhere in the base URL.
    """
    base = base_url.strip().rstrip("/")
    if "/v1" in base:
        return f"{base}{CHAT_COMPLETIONS_PATH}"
    return f"{base}/v1{CHAT_COMPLETIONS_PATH}"
