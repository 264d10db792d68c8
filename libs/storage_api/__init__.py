"""Storage API client for the tabular storage service."""

from .client import (
    JOB_STATUS_SUCCESS,
    JOB_STATUS_ERROR,
    StorageApiError,
    StorageClient,
    StorageApiClient,
)

__all__ = [
    "JOB_STATUS_SUCCESS",
    "JOB_STATUS_ERROR",
    "StorageApiError",
    "StorageClient",
    "StorageApiClient",
]
