"""Domain exceptions raised by services and mapped to HTTP responses."""

from __future__ import annotations


class CloudDriveError(Exception):
    """Base class. Carries a user-facing message and an HTTP status."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(CloudDriveError):
    status_code = 400


class AuthenticationFailed(CloudDriveError):
    status_code = 401


class NotFound(CloudDriveError):
    status_code = 404


class PayloadTooLarge(CloudDriveError):
    status_code = 413


class EmailDeliveryError(CloudDriveError):
    """SMTP hand-off failed."""


class BlobStoreError(CloudDriveError):
    """Object storage call failed."""
