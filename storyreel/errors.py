from __future__ import annotations


class StoryreelError(Exception):
    """Base class for every error raised by the render service."""


class ConfigurationError(StoryreelError):
    """A required credential or identifier is missing."""


class ProviderError(StoryreelError):
    """An external provider answered with a non-2xx status or an unusable payload."""

    def __init__(self, provider: str, message: str, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.body = body

    @property
    def retryable(self) -> bool:
        return self.status_code is not None and self.status_code >= 500


class RateLimitedError(ProviderError):
    """The provider answered 429."""

    @property
    def retryable(self) -> bool:
        return True


class DataError(StoryreelError):
    pass


class JobNotFoundError(DataError):
    pass


class MissingJobFieldError(DataError):
    def __init__(self, field: str, message: str | None = None) -> None:
        super().__init__(message or f"video job is missing required field '{field}'")
        self.field = field


class MediaProcessingError(StoryreelError):
    def __init__(self, command: list[str], returncode: int | None, stderr_tail: str = "") -> None:
        super().__init__(f"{command[0] if command else 'ffmpeg'} exited with {returncode}: {stderr_tail[-500:]}")
        self.command = command
        self.returncode = returncode
        self.stderr_tail = stderr_tail


class InvalidStatusTransition(StoryreelError):
    pass


class RenderInProgressError(StoryreelError):
    pass


class RenderTimeoutError(StoryreelError):
    def __init__(self, job_id: str, timeout: float) -> None:
        super().__init__(f"render of video job {job_id} exceeded {timeout:g}s")
        self.job_id = job_id
        self.timeout = timeout
