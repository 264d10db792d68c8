# =============================================================================
# Storage API Resource - Tabular Storage Service Connection
# =============================================================================
# Creates branch-scoped StorageApiClient instances for the upload op.
# =============================================================================

from typing import Optional

from dagster import ConfigurableResource
from pydantic import Field

from libs.models import StorageApiSettings
from libs.output_mapping import BranchInfo
from libs.storage_api import StorageApiClient

__all__ = ["StorageApiResource", "DEFAULT_BRANCH_ID"]

DEFAULT_BRANCH_ID = "default"


class StorageApiResource(ConfigurableResource):
    """
    Dagster resource for the tabular storage service.

    Configuration matches StorageApiSettings from libs.models.config, plus
    the branch name used in branch isolation errors.

    Attributes:
        url: Storage API base URL
        token: Storage API token
        branch_id: Development branch id (None = default branch)
        branch_name: Branch display name
        job_timeout: Seconds to wait for a storage job (default: 3600)
        max_retries: Transport-level retries (default: 5)
    """

    url: str = Field(..., description="Storage API base URL")
    token: str = Field(..., description="Storage API token")
    branch_id: Optional[str] = Field(None, description="Development branch id")
    branch_name: str = Field("Main", description="Branch display name")
    job_timeout: int = Field(3600, description="Storage job wait timeout (seconds)")
    max_retries: int = Field(5, description="Transport retries")

    @classmethod
    def from_settings(cls, settings: StorageApiSettings, branch_name: str = "Main") -> "StorageApiResource":
        """Create the resource from StorageApiSettings (environment / .env)."""
        return cls(
            url=settings.url,
            token=settings.token,
            branch_id=settings.branch_id,
            branch_name=branch_name,
            job_timeout=settings.job_timeout,
            max_retries=settings.max_retries,
        )

    def get_client(self) -> StorageApiClient:
        """
        Create a storage client scoped to the configured branch.

        Returns:
            StorageApiClient (close it when done)
        """
        return StorageApiClient(
            self.url,
            self.token,
            branch_id=self.branch_id or None,
            job_timeout=self.job_timeout,
            max_retries=self.max_retries,
        )

    def get_branch(self) -> BranchInfo:
        """Branch the client writes to."""
        if not self.branch_id:
            return BranchInfo(id=DEFAULT_BRANCH_ID, name=self.branch_name, is_default=True)
        return BranchInfo(id=self.branch_id, name=self.branch_name, is_default=False)
