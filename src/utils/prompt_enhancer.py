"""Prompt enhancement through the upstream chat model."""

import logging

from src.core.base_backend import BaseBackend
from src.core.errors import UpstreamResponseError
from src.core.models import UpstreamTarget
from src.core.request_builder import build_chat_url

logger = logging.getLogger(__name__)

ENHANCE_MODEL = "gemini-3-flash"

ENHANCE_SYSTEM_PROMPT = (
    "You are a professional image prompt engineer. Your task is to 'beautify' or "
    "'enhance' the user's input prompt. "
    "1. If the input is in Chinese, translate the core idea to English and expand it. "
    "2. Add artistic details like lighting, composition, style (e.g., cinematic, oil "
    "painting, hyper-realistic), and mood. "
    "3. Use professional vocabulary (e.g., 'octane render', '4k resolution', "
    "'volumetric lighting'). "
    "4. Keep the original intent of the user. "
    "5. Output ONLY the final enhanced English prompt text, no explanations."
)


class PromptEnhancer:
    """Rewrites a short prompt into a detailed English image prompt.

    This is a single-shot call with no retry: the caller gets the upstream
    error straight away.

    Example:
        enhancer = PromptEnhancer(backend)
        better = await enhancer.enhance(target, "一只狐狸")
    """

    def __init__(self, backend: BaseBackend, model: str = ENHANCE_MODEL):
        self.backend = backend
        self.model = model

    async def enhance(self, target: UpstreamTarget, prompt: str) -> str:
        """Enhance a prompt.

        Args:
            target: Upstream to ask
            prompt: The user's prompt

        Returns:
            The enhanced prompt, stripped of surrounding whitespace

        Raises:
            UpstreamTransportError: If the upstream cannot be reached
            UpstreamStatusError: If the upstream rejects the request
            UpstreamResponseError: If the reply has no usable choice
        """
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": ENHANCE_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        data = await self.backend.raw_chat_completion(build_chat_url(target.base_url), target, payload)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamResponseError(f"enhancement response has no choices: {e}") from e
        if not isinstance(content, str):
            raise UpstreamResponseError("enhancement response content is not text")

        enhanced = content.strip()
        logger.info(f"Prompt enhanced: {prompt} -> {enhanced}")
        return enhanced
