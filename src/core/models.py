"""Core data models for the image generation gateway."""

import time
from typing import Optional, List, Literal, Union, Any, Annotated
from pydantic import BaseModel, Field


DEFAULT_IMAGE_MODEL = "gemini-3-pro-image"


class GenerationRequest(BaseModel):
    """Inbound OpenAI-style image generation request.

    Attributes:
        prompt: The text prompt describing the desired image
        image: Optional single reference image (data URI or URL)
        images: Optional list of reference images
        model: Optional upstream model identifier
        negative_prompt: Optional text describing what to avoid in the image
    """

    prompt: str = Field(
        ...,
        min_length=1,
        description="Text prompt describing the desired image"
    )
    image: Optional[str] = Field(
        default=None,
        description="Reference image as a data URI or URL"
    )
    images: Optional[List[str]] = Field(
        default=None,
        description="Additional reference images, sent in order"
    )
    model: Optional[str] = Field(
        default=None,
        description="Upstream model identifier"
    )
    negative_prompt: Optional[str] = Field(
        default=None,
        description="Text describing what to avoid in the image"
    )

    class Config:
        frozen = True
        extra = "ignore"
        json_schema_extra = {
            "example": {
                "prompt": "a red fox in the snow, cinematic lighting",
                "negative_prompt": "blurry, low quality",
                "model": DEFAULT_IMAGE_MODEL
            }
        }


class UpstreamTarget(BaseModel):
    """One upstream chat-completions endpoint."""

    base_url: str
    api_key: str = ""

    class Config:
        frozen = True


class RetryPolicy(BaseModel):
    """Retry budget applied identically to every target.

    Attributes:
        max_attempts: Attempt ceiling per target
        timeout: Per-attempt timeout in seconds
        delay: Fixed pause between attempts in seconds
    """

    max_attempts: int = Field(default=10, ge=1)
    timeout: float = Field(default=300.0, gt=0)
    delay: float = Field(default=2.0, ge=0)

    class Config:
        frozen = True


class ImageOutcome(BaseModel):
    """One resolved image.

    ``url`` is either ``/images/<file>`` when the image was stored locally, or
    the original remote URL when the download failed.
    """

    url: Optional[str] = None
    b64_json: Optional[str] = None
    revised_prompt: Optional[str] = None


class GenerationResult(BaseModel):
    """OpenAI-style image response."""

    created: int = Field(default_factory=lambda: int(time.time()))
    data: List[ImageOutcome] = Field(default_factory=list)

    def image_urls(self) -> List[str]:
        """Return every resolved URL, in order."""
        return [item.url for item in self.data if item.url]


class HistoryEntry(BaseModel):
    """A completed generation as shown on the history page.

    Attributes:
        prompt: Prompt of the request
        timestamp: Completion time in epoch milliseconds
        images: Resolved image paths
    """

    prompt: str
    timestamp: int
    images: List[str] = Field(default_factory=list)


# --- Chat completion structures (upstream wire format) ---

class ImageUrl(BaseModel):
    url: str


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageUrlPart(BaseModel):
    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl


ContentPart = Annotated[Union[TextPart, ImageUrlPart], Field(discriminator="type")]


class ChatMessage(BaseModel):
    role: str
    content: List[ContentPart]


class ChatCompletionRequest(BaseModel):
    """Request body sent to the upstream. No sampling parameters are forwarded."""

    model: str
    messages: List[ChatMessage]


class ChatMessageResponse(BaseModel):
    content: Optional[str] = ""


class ChatChoice(BaseModel):
    message: ChatMessageResponse


class ChatCompletionResponse(BaseModel):
    choices: List[ChatChoice] = Field(default_factory=list)

    def texts(self) -> List[str]:
        """Return the message text of each choice."""
        return [choice.message.content or "" for choice in self.choices]


class ChatProxyRequest(BaseModel):
    """Body of the passthrough chat endpoint."""

    messages: List[Any]
    model: Optional[str] = None


class EnhanceRequest(BaseModel):
    prompt: str
