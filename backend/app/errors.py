"""Error taxonomy for the extraction pipeline.

Only ``FetchError`` (and ``ExtractionCancelled`` before the fetch completes)
ever reaches a caller. Provider and validation errors are raised inside a
provider attempt and recovered by the chain runner.
"""
from typing import Optional


class BrandExtractionError(Exception):
    """Base class for every pipeline error."""


class FetchError(BrandExtractionError):
    """Document retrieval failed: network error, non-success status or timeout."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        detail = f"{reason} (status {status_code})" if status_code else reason
        super().__init__(f"Failed to fetch {url}: {detail}")


class ProviderError(BrandExtractionError):
    """A single screenshot or vision provider attempt failed."""

    def __init__(self, provider: str, reason: str, attempt_index: Optional[int] = None):
        self.provider = provider
        self.reason = reason
        self.attempt_index = attempt_index
        super().__init__(f"[{provider}] {reason}")


class ProfileValidationError(ProviderError):
    """A provider answered, but the answer was malformed or rejected."""


class ExtractionCancelled(BrandExtractionError):
    """The caller's deadline or cancel token fired before a profile could be built."""
