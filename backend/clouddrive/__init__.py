"""CloudDrive: cloud-storage backend with a folder tree over S3."""

__version__ = "0.3.0"
