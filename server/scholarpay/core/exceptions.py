"""
scholarpay/core/exceptions.py
Service layer exceptions
"""
from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SourceFetchError(ServiceError):
    """A payment evidence source could not be loaded from Supabase."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)


class LoadCancelledError(SourceFetchError):
    """The caller cancelled an in-flight source load."""

    def __init__(self, message: str = "Payment source load cancelled") -> None:
        super().__init__(message)
        self.status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ExportError(ServiceError):
    """The external CSV export service did not return a usable response."""

    def __init__(self, upstream_status: int, text: str) -> None:
        super().__init__(
            f"CSV export failed ({upstream_status}): {text}",
            status.HTTP_502_BAD_GATEWAY,
        )
        self.upstream_status = upstream_status
        self.text = text
