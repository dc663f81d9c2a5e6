from __future__ import annotations

from typing import Optional


class TreeShareError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(TreeShareError):
    status_code = 400


class InvalidIdentifierError(ValidationError):
    pass


class InvalidBlobNameError(TreeShareError):
    status_code = 400


class BlobNameRejectedError(TreeShareError):
    status_code = 403


class TranscodeError(TreeShareError):
    status_code = 400


class StorageError(TreeShareError):
    status_code = 500


class IngestionTimeoutError(StorageError):
    status_code = 503


class NotFoundError(TreeShareError):
    status_code = 404


class RateLimitError(TreeShareError):
    status_code = 429

    def __init__(self, detail: str, retry_after: int, identity: Optional[str] = None) -> None:
        super().__init__(detail)
        self.retry_after = retry_after
        self.identity = identity
