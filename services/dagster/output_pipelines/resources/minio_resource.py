# =============================================================================
# MinIO Resource - S3-Compatible Workspace Storage
# =============================================================================
# Provides access to object-store workspaces: one prefix per workspace id in
# the workspace bucket. Used by the upload op for the "workspace-s3" staging.
# =============================================================================

from minio import Minio
from minio.error import S3Error
from dagster import ConfigurableResource
from pydantic import Field

from libs.models import MinIOSettings
from libs.output_mapping import ObjectStoreStaging


class MinIOResource(ConfigurableResource):
    """
    Dagster resource for MinIO (S3-compatible object storage) workspaces.

    Provides methods for:
    - Creating a Minio client
    - Checking that a workspace prefix holds any objects
    - Building the ObjectStoreStaging provider of a workspace

    Configuration matches MinIOSettings from libs.models.config.

    Attributes:
        endpoint: MinIO server endpoint (host:port)
        access_key: Access key for authentication
        secret_key: Secret key for authentication
        use_ssl: Whether to use SSL/TLS (default: False)
        workspace_bucket: Bucket holding workspace prefixes (default: "workspaces")
    """

    endpoint: str = Field(..., description="MinIO server endpoint (host:port)")
    access_key: str = Field(..., description="Access key for authentication")
    secret_key: str = Field(..., description="Secret key for authentication")
    use_ssl: bool = Field(False, description="Whether to use SSL/TLS")
    workspace_bucket: str = Field("workspaces", description="Workspace bucket name")

    @classmethod
    def from_settings(cls, settings: MinIOSettings) -> "MinIOResource":
        """Create the resource from MinIOSettings (environment / .env)."""
        return cls(
            endpoint=settings.endpoint,
            access_key=settings.access_key,
            secret_key=settings.secret_key,
            use_ssl=settings.use_ssl,
            workspace_bucket=settings.workspace_bucket,
        )

    def get_client(self) -> Minio:
        """
        Create a MinIO client instance.

        Returns:
            Configured Minio client
        """
        return Minio(
            self.endpoint,
            access_key=self.access_key,
            secret_key=self.secret_key,
            secure=self.use_ssl,
        )

    def workspace_exists(self, workspace_id: str) -> bool:
        """
        Check that the workspace prefix holds at least one object.

        Raises:
            RuntimeError: If the workspace bucket does not exist
        """
        client = self.get_client()
        try:
            objects = client.list_objects(
                self.workspace_bucket,
                prefix=f"{workspace_id}/",
                recursive=True,
            )
            return next(iter(objects), None) is not None
        except S3Error as exc:
            if exc.code == "NoSuchBucket":
                raise RuntimeError(
                    f"Workspace bucket '{self.workspace_bucket}' does not exist"
                ) from exc
            raise

    def get_workspace_staging(self, workspace_id: str) -> ObjectStoreStaging:
        """
        Staging provider for one object-store workspace.

        Args:
            workspace_id: Workspace id (object key prefix)

        Returns:
            ObjectStoreStaging listing ``<workspace_id>/...`` objects
        """
        return ObjectStoreStaging(self.get_client(), self.workspace_bucket, workspace_id)
