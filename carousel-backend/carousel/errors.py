"""Exception types raised by the carousel pipeline.

Fetch and render errors are caught at the single-slide boundary and turned
into failed slide records. ``BatchValidationError`` rejects a whole request
before any slide work starts. ``UploadError`` is reported per upload and
never affects the generated images.
"""

from __future__ import annotations

from typing import Optional


class CarouselError(Exception):
    """Base class for every error raised by the carousel package."""


class FetchError(CarouselError):
    """A background image could not be downloaded."""


class NetworkError(FetchError):
    """Transport-level failure (DNS, connection reset, bad URL, ...)."""


class FetchTimeoutError(FetchError):
    """A single request hop did not complete within the fetch timeout."""


class HttpStatusError(FetchError):
    """The final response carried a status code other than 200."""

    def __init__(self, status_code: int, reason: str = "") -> None:
        self.status_code = status_code
        self.reason = reason
        message = f"Failed to download image: HTTP {status_code}"
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)


class InvalidContentTypeError(FetchError):
    """The response declared a content type that is not an image."""

    def __init__(self, content_type: str) -> None:
        self.content_type = content_type
        super().__init__(f"Invalid content type: {content_type} (expected image/*)")


class EmptyResponseError(FetchError):
    """The response body ended without delivering any bytes."""

    def __init__(self, url: Optional[str] = None) -> None:
        self.url = url
        super().__init__("Empty response body" + (f" from {url}" if url else ""))


class RedirectLoopError(FetchError):
    """More redirects were followed than the configured budget allows."""

    def __init__(self, max_redirects: int) -> None:
        self.max_redirects = max_redirects
        super().__init__(f"Too many redirects (max {max_redirects})")


class RenderError(CarouselError):
    """Resizing, rasterizing or compositing a slide failed."""


class BatchValidationError(CarouselError):
    """The batch request is malformed and no slide was processed."""


class UploadError(CarouselError):
    """An upload to the storage backend failed."""
