# =============================================================================
# Destination Resolution and Bucket Creation
# =============================================================================
# - DestinationResolver: configuration > manifest > default bucket + name
# - BucketCreator: ensures the destination bucket exists (idempotent),
#   respecting development branch isolation
# =============================================================================

from typing import Optional

from pydantic import ValidationError

from libs.models import SYSTEM_METADATA_PROVIDER, BucketInfo, MappingEntry, SystemMetadata
from libs.storage_api import StorageApiError, StorageClient

from .environment import BranchInfo
from .exceptions import ConfigurationError, PolicyViolation, RemoteOperationError
from .naming import MappingDestination

__all__ = ["DestinationResolver", "BucketCreator"]


class DestinationResolver:
    """
    Computes the destination table id of a mapping entry.

    Precedence: the entry's ``destination`` (configuration already wins
    over the manifest in the merged entry), then the default ``bucket`` plus
    the source name with a trailing ``.csv`` stripped. A bare table name
    destination is prefixed with the default bucket.

    Example:
        >>> resolver = DestinationResolver(bucket="out.c-main")
        >>> resolver.resolve(MappingEntry(source="orders.csv")).table_id
        'out.c-main.orders'
    """

    def __init__(self, bucket: Optional[str] = None) -> None:
        self.bucket = bucket

    def _default_table_name(self, source_name: str) -> str:
        if source_name.endswith(".csv"):
            return source_name[: -len(".csv")]
        return source_name

    def resolve(self, entry: MappingEntry) -> MappingDestination:
        """
        Resolve the destination of a merged mapping entry.

        Raises:
            ConfigurationError: If no destination applies or the result is
                not a valid table id
        """
        destination = entry.destination
        if destination and "." not in destination and self.bucket:
            destination = f"{self.bucket}.{destination}"
        elif not destination and self.bucket:
            destination = f"{self.bucket}.{self._default_table_name(entry.source)}"

        if not destination:
            raise ConfigurationError(
                f'Failed to resolve destination for output table "{entry.source}".'
            )

        try:
            return MappingDestination(table_id=destination)
        except ValidationError as exc:
            raise ConfigurationError(
                f'Failed to resolve valid destination. "{destination}" is not a valid table ID.'
            ) from exc


class BucketCreator:
    """
    Ensures destination buckets exist.

    Bucket descriptors are cached per instance; a second call for the same
    bucket returns the cached descriptor without touching storage.

    Args:
        client: Storage client
        branch: Branch the client writes to
    """

    def __init__(self, client: StorageClient, branch: BranchInfo) -> None:
        self.client = client
        self.branch = branch
        self._buckets: dict[str, BucketInfo] = {}

    def _get_bucket(self, bucket_id: str) -> Optional[BucketInfo]:
        try:
            data = self.client.get_bucket(bucket_id)
        except StorageApiError as exc:
            raise RemoteOperationError(f'Failed to get bucket "{bucket_id}": {exc}') from exc
        return BucketInfo.from_api(data) if data else None

    def _check_branch(self, bucket: BucketInfo) -> None:
        if self.branch.is_default or bucket.branch_id == self.branch.id:
            return
        raise PolicyViolation(
            f'Trying to create a table in the development bucket "{bucket.id}" on branch '
            f'"{self.branch.name}" (ID "{self.branch.id}"), but the bucket is not assigned '
            "to any development branch."
        )

    def _create_bucket(
        self, destination: MappingDestination, system_metadata: SystemMetadata
    ) -> BucketInfo:
        bucket_id = destination.bucket_id
        try:
            data = self.client.create_bucket(destination.bucket_name, destination.stage)
        except StorageApiError as exc:
            if not exc.is_already_exists:
                raise RemoteOperationError(
                    f'Failed to create bucket "{bucket_id}": {exc}'
                ) from exc
            bucket = self._get_bucket(bucket_id)
            if bucket is None:
                raise RemoteOperationError(
                    f'Bucket "{bucket_id}" reported as existing but cannot be read.'
                ) from exc
            self._check_branch(bucket)
            return bucket

        metadata = [item.model_dump() for item in system_metadata.created_by_metadata()]
        if metadata:
            try:
                self.client.post_bucket_metadata(bucket_id, SYSTEM_METADATA_PROVIDER, metadata)
            except StorageApiError as exc:
                raise RemoteOperationError(
                    f'Failed to write metadata of bucket "{bucket_id}": {exc}'
                ) from exc

        if data and data.get("id"):
            return BucketInfo.from_api(data)
        return BucketInfo(
            id=bucket_id,
            name=destination.bucket_name,
            stage=destination.stage,
            branch_id=None if self.branch.is_default else self.branch.id,
        )

    def ensure_destination_bucket(
        self,
        destination: MappingDestination,
        system_metadata: SystemMetadata,
    ) -> BucketInfo:
        """
        Return the destination's bucket, creating it when absent.

        A create rejected with "already exists" (a concurrent writer won the
        race) re-reads the bucket. New buckets are tagged with the
        ``KBC.createdBy.*`` provenance.

        Raises:
            PolicyViolation: On a development branch, if the bucket exists
                but is not assigned to the branch
            RemoteOperationError: If a bucket call fails
        """
        bucket_id = destination.bucket_id
        if bucket_id in self._buckets:
            return self._buckets[bucket_id]

        bucket = self._get_bucket(bucket_id)
        if bucket is not None:
            self._check_branch(bucket)
        else:
            bucket = self._create_bucket(destination, system_metadata)

        self._buckets[bucket_id] = bucket
        return bucket
