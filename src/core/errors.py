"""Exception hierarchy for the generation pipeline."""

from typing import Optional


class GatewayError(Exception):
    """Base class for all gateway errors."""


class UpstreamTransportError(GatewayError):
    """Connection, DNS or timeout failure while talking to an upstream."""


class UpstreamStatusError(GatewayError):
    """The upstream answered with a non-success HTTP status.

    Attributes:
        status_code: HTTP status returned by the upstream
        body: Response text, kept for logging
    """

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"upstream returned status {status_code}: {body}")


class UpstreamResponseError(GatewayError):
    """A success response whose body could not be used."""


class NoImageUrlError(UpstreamResponseError):
    """A returned choice contained no extractable image URL."""

    def __init__(self, content: str):
        self.content = content
        super().__init__(f"no URL in response: {content}")


class RetriesExhaustedError(GatewayError):
    """Every attempt against a target ended in a retryable failure."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        message = f"retries exhausted after {attempts} attempts"
        if last_error is not None:
            message += f" (last error: {last_error})"
        super().__init__(message)


class TargetFailedError(GatewayError):
    """A single upstream target could not produce a result.

    Attributes:
        target_url: Endpoint that failed
        cause: The classified error that ended the attempts
    """

    def __init__(self, target_url: str, cause: BaseException):
        self.target_url = target_url
        self.cause = cause
        super().__init__(str(cause))


class GenerationFailedError(GatewayError):
    """Both the primary and the fallback target failed, or no fallback exists."""


class ImageDownloadError(GatewayError):
    """An image could not be downloaded or written to storage."""
