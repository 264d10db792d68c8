"""Dagster Resources - External Service Connections."""

from .minio_resource import MinIOResource
from .storage_api_resource import StorageApiResource

__all__ = [
    "MinIOResource",
    "StorageApiResource",
]
