from typing import Optional


class UpstreamError(Exception):
    """
    Raised when one of the external providers (speech, catalog, Gemini) fails.
    Routes turn these into a generic 500; the message stays server-side.
    """

    service = "upstream"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.message = message
        self.cause = cause
        super().__init__(f"{self.service}: {message}")


class TranscriptionError(UpstreamError):
    service = "speech"


class CatalogError(UpstreamError):
    service = "catalog"


class GeminiRequestError(UpstreamError):
    service = "gemini"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(message, cause=cause)


class ModelOutputError(ValueError):
    """Model text could not be parsed into a JSON array. Never leaves the resolver."""
