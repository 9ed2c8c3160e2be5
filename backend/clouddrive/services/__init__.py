"""Business logic services and the long-lived clients they depend on."""

from clouddrive.services.auth_service import AuthService
from clouddrive.services.blob_store import BlobStore
from clouddrive.services.file_service import FileService
from clouddrive.services.mailer import Mailer

__all__ = [
    "AuthService",
    "BlobStore",
    "FileService",
    "Mailer",
]
