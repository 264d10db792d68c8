# =============================================================================
# Configuration Models Module
# =============================================================================
# Provides Pydantic Settings models for service configurations:
# - StorageApiSettings: tabular storage service API configuration
# - MinIOSettings: S3-compatible object storage workspace configuration
# =============================================================================

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "StorageApiSettings",
    "MinIOSettings",
]


# =============================================================================
# Storage API Settings (Tabular Storage Service)
# =============================================================================

class StorageApiSettings(BaseSettings):
    """
    Configuration for the tabular storage service API.

    Maps environment variables with prefix "STORAGE_API_":
    - STORAGE_API_URL → url
    - STORAGE_API_TOKEN → token
    - STORAGE_API_BRANCH_ID → branch_id
    - STORAGE_API_JOB_TIMEOUT → job_timeout
    - STORAGE_API_MAX_RETRIES → max_retries

    Attributes:
        url: Storage API base URL (e.g., "https://connection.example.com")
        token: Storage API token
        branch_id: Development branch id (None = default branch)
        job_timeout: Seconds to wait for a storage job before giving up (default: 3600)
        max_retries: Transport-level retries for API calls (default: 5)
    """

    url: str = Field(..., validation_alias="STORAGE_API_URL", description="Storage API base URL")
    token: str = Field(..., validation_alias="STORAGE_API_TOKEN", description="Storage API token")
    branch_id: Optional[str] = Field(None, validation_alias="STORAGE_API_BRANCH_ID", description="Development branch id")
    job_timeout: int = Field(3600, validation_alias="STORAGE_API_JOB_TIMEOUT", description="Storage job wait timeout (seconds)")
    max_retries: int = Field(5, validation_alias="STORAGE_API_MAX_RETRIES", description="Transport retries")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore unrelated env vars from shared .env files
    )

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so paths can be appended."""
        return v.rstrip("/")

    @field_validator("branch_id", mode="before")
    @classmethod
    def empty_branch_to_none(cls, v):
        """An empty STORAGE_API_BRANCH_ID means the default branch."""
        if v is None or str(v).strip() == "":
            return None
        return str(v).strip()


# =============================================================================
# MinIO Settings (Object Store Workspace)
# =============================================================================

class MinIOSettings(BaseSettings):
    """
    Configuration for MinIO (S3-compatible object storage) workspaces.

    Maps environment variables with prefix "MINIO_":
    - MINIO_ENDPOINT → endpoint
    - MINIO_ROOT_USER → access_key
    - MINIO_ROOT_PASSWORD → secret_key
    - MINIO_USE_SSL → use_ssl
    - MINIO_WORKSPACE_BUCKET → workspace_bucket

    Attributes:
        endpoint: MinIO server endpoint (host:port)
        access_key: Access key (maps from MINIO_ROOT_USER)
        secret_key: Secret key (maps from MINIO_ROOT_PASSWORD)
        use_ssl: Whether to use SSL/TLS (default: False)
        workspace_bucket: Bucket holding object-store workspaces (default: "workspaces")
    """

    endpoint: str = Field(..., validation_alias="MINIO_ENDPOINT", description="MinIO server endpoint (host:port)")
    access_key: str = Field(..., validation_alias="MINIO_ROOT_USER", description="Access key (maps from MINIO_ROOT_USER)")
    secret_key: str = Field(..., validation_alias="MINIO_ROOT_PASSWORD", description="Secret key (maps from MINIO_ROOT_PASSWORD)")
    use_ssl: bool = Field(False, validation_alias="MINIO_USE_SSL", description="Whether to use SSL/TLS")
    workspace_bucket: str = Field("workspaces", validation_alias="MINIO_WORKSPACE_BUCKET", description="Workspace bucket name")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore unrelated env vars from shared .env files
    )
