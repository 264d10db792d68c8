# =============================================================================
# Load Table Task - One Source -> Destination Unit of Work
# =============================================================================

"""
Deferred load task.

State machine (one way, no retries)::

    CREATED --start_import--> STARTED --finish--> SUCCEEDED | FAILED

``start_import`` only submits the remote job; the queue waits for it and
hands the finished job to ``finish``.
"""

from enum import Enum
from typing import Any, Optional

from libs.storage_api import JOB_STATUS_ERROR, StorageApiError, StorageClient

from ..exceptions import RemoteOperationError
from ..metadata import MetadataDefinition
from ..naming import MappingDestination

__all__ = ["TaskState", "LoadTableTask"]


class TaskState(str, Enum):
    CREATED = "created"
    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class LoadTableTask:
    """
    Create-or-load job for one destination table.

    Attributes:
        destination: Destination table
        options: Load options sent with the job (data reference, incremental,
            primaryKey, columns, deleteWhere*, distributionKey)
        metadata: Metadata writes applied after a successful load
        create_table: Submit a create-table job instead of a load job
        state: Current task state
    """

    def __init__(
        self,
        destination: MappingDestination,
        options: dict[str, Any],
        metadata: Optional[list[MetadataDefinition]] = None,
        create_table: bool = False,
    ) -> None:
        self.destination = destination
        self.options = options
        self.metadata = list(metadata or [])
        self.create_table = create_table
        self.state = TaskState.CREATED
        self._storage_job_id: Optional[str] = None

    @property
    def storage_job_id(self) -> Optional[str]:
        return self._storage_job_id

    @property
    def destination_table_name(self) -> str:
        return self.destination.table_id

    def _failed(self, message: Any) -> RemoteOperationError:
        self.state = TaskState.FAILED
        return RemoteOperationError(
            f'Failed to load table "{self.destination_table_name}": {message}'
        )

    def start_import(self, client: StorageClient) -> str:
        """
        Submit the create or load job and return its id without waiting.

        Raises:
            RuntimeError: If the task was already started
            RemoteOperationError: If the job cannot be submitted
        """
        if self.state != TaskState.CREATED:
            raise RuntimeError(
                f'Import of table "{self.destination_table_name}" was already started.'
            )

        try:
            if self.create_table:
                job_id = client.create_table_async(
                    self.destination.bucket_id,
                    self.destination.table_name,
                    self.options,
                )
            else:
                job_id = client.write_table_async(self.destination.table_id, self.options)
        except StorageApiError as exc:
            raise self._failed(exc) from exc

        self._storage_job_id = job_id
        self.state = TaskState.STARTED
        return job_id

    def finish(self, job_result: dict[str, Any]) -> str:
        """
        Record the terminal job and return the loaded table id.

        Raises:
            RemoteOperationError: If the job failed
        """
        if job_result.get("status") == JOB_STATUS_ERROR:
            error = job_result.get("error") or {}
            message = error.get("message", "Unknown error")
            raise self._failed(message) from StorageApiError(message, code=error.get("code"))

        self.state = TaskState.SUCCEEDED
        results = job_result.get("results") or {}
        return str(job_result.get("tableId") or results.get("id") or self.destination.table_id)

    def apply_metadata(self, client: StorageClient) -> None:
        """
        Write table and column metadata of a succeeded task.

        Raises:
            RuntimeError: If the task has not succeeded
            RemoteOperationError: If a metadata write fails
        """
        if self.state != TaskState.SUCCEEDED:
            raise RuntimeError(
                f'Cannot apply metadata to table "{self.destination_table_name}" '
                f"in state {self.state.value}."
            )
        for definition in self.metadata:
            try:
                definition.apply(client)
            except StorageApiError as exc:
                raise RemoteOperationError(
                    f'Failed to write metadata of table "{self.destination_table_name}": {exc}'
                ) from exc
