# =============================================================================
# Load Table Queue - Submit All, Wait In Order, Fail Fast
# =============================================================================

"""
Deferred load queue.

``start`` submits every task's job in input order. ``wait_for_all`` waits
for them one by one in the same order; the first failure raises and the
remaining tasks are not examined. Jobs already submitted keep running on
the storage side.
"""

import logging
from typing import Optional

from libs.models import TableInfo, TableMetrics, TableResult
from libs.storage_api import StorageApiError, StorageClient

from ..exceptions import RemoteOperationError
from .load_table_task import LoadTableTask

__all__ = ["LoadTableQueue"]


class LoadTableQueue:
    """
    Owns the load tasks of one upload_tables call.

    Args:
        client: Storage client
        tasks: Tasks in submission order
        logger: Logger (defaults to the module logger)

    Example:
        >>> queue = LoadTableQueue(client, tasks)
        >>> queue.start()
        >>> job_ids = queue.wait_for_all()
        >>> [t.id for t in queue.get_table_result().tables]
        ['out.c-main.orders']
    """

    def __init__(
        self,
        client: StorageClient,
        tasks: list[LoadTableTask],
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.tasks = list(tasks)
        self.logger = logger or logging.getLogger(__name__)
        self._result = TableResult()

    def start(self) -> None:
        """Submit every task's job without waiting."""
        for task in self.tasks:
            task.start_import(self.client)
        self.logger.info(f"Started {len(self.tasks)} table load job(s)")

    def wait_for_all(self) -> list[str]:
        """
        Wait for every job in submission order.

        Returns:
            Job ids in submission order

        Raises:
            RemoteOperationError: On the first failed job (or failed
                metadata/table read); results gathered so far are kept
            RuntimeError: If a task was never started
        """
        job_ids = []
        for task in self.tasks:
            job_id = task.storage_job_id
            if job_id is None:
                raise RuntimeError(
                    f'Import of table "{task.destination_table_name}" was not started.'
                )
            self.logger.info(f'Waiting for job {job_id} loading "{task.destination_table_name}"')
            try:
                job = self.client.wait_for_job(job_id)
            except StorageApiError as exc:
                raise RemoteOperationError(
                    f'Failed to load table "{task.destination_table_name}": {exc}'
                ) from exc

            table_id = task.finish(job)
            task.apply_metadata(self.client)

            try:
                table = TableInfo.from_api(self.client.get_table(table_id))
            except StorageApiError as exc:
                raise RemoteOperationError(f'Failed to read table "{table_id}": {exc}') from exc

            self._result.add(table, TableMetrics.from_job(table_id, job))
            job_ids.append(job_id)

        self.logger.info(f"Loaded {len(job_ids)} table(s)")
        return job_ids

    def get_table_result(self) -> TableResult:
        return self._result

    def get_task_count(self) -> int:
        return len(self.tasks)
