from __future__ import annotations

from typing import Optional


class IsoTrackError(Exception):
    """Base exception with user-friendly message."""
    pass


class ConfigError(IsoTrackError):
    pass


class ValidationError(IsoTrackError):
    pass


class NotFoundError(IsoTrackError):
    pass


class ApiError(IsoTrackError):
    pass


class NetworkError(ApiError):
    pass


class UpstreamError(ApiError):
    def __init__(
        self,
        message: str,
        status_code: int = 0,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class AuthenticationError(ApiError):
    pass


class UploadError(IsoTrackError):
    pass


class OrphanedObjectError(UploadError):
    """The object store holds the bytes but no document record points at them."""

    def __init__(self, message: str, file_key: str) -> None:
        super().__init__(message)
        self.file_key = file_key


class UploadCancelledError(UploadError):
    pass
