# =============================================================================
# Storage API Client
# =============================================================================
# HTTP client for the tabular storage service. Exposes the capabilities the
# output mapping core consumes: async table create/load jobs, job waiting,
# table/bucket introspection, bucket creation, column and metadata writes.
# =============================================================================

"""
Storage API client.

The output mapping core depends on the :class:`StorageClient` protocol only;
:class:`StorageApiClient` is the httpx implementation used in deployments.
"""

import logging
import time
from pathlib import Path
from typing import Any, Optional, Protocol

import httpx

from libs.models import StorageApiSettings

__all__ = [
    "JOB_STATUS_SUCCESS",
    "JOB_STATUS_ERROR",
    "StorageApiError",
    "StorageClient",
    "StorageApiClient",
]

logger = logging.getLogger(__name__)

JOB_STATUS_SUCCESS = "success"
JOB_STATUS_ERROR = "error"
_TERMINAL_JOB_STATUSES = (JOB_STATUS_SUCCESS, JOB_STATUS_ERROR)

# Upper bound of the polling interval while waiting for a job (seconds)
_MAX_POLL_INTERVAL = 20.0


class StorageApiError(Exception):
    """
    Error reported by the storage API.

    Attributes:
        code: Machine-readable error code (e.g., "storage.buckets.alreadyExists")
        status_code: HTTP status code (None for job-level errors)
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_already_exists(self) -> bool:
        return self.code is not None and self.code.endswith("alreadyExists")


class StorageClient(Protocol):
    """Storage capabilities consumed by the output mapping core."""

    def create_table_async(self, bucket_id: str, name: str, options: dict[str, Any]) -> str: ...

    def write_table_async(self, table_id: str, options: dict[str, Any]) -> str: ...

    def wait_for_job(self, job_id: str) -> dict[str, Any]: ...

    def get_table(self, table_id: str) -> dict[str, Any]: ...

    def table_exists(self, table_id: str) -> bool: ...

    def get_bucket(self, bucket_id: str) -> Optional[dict[str, Any]]: ...

    def bucket_exists(self, bucket_id: str) -> bool: ...

    def create_bucket(self, name: str, stage: str, backend: Optional[str] = None) -> dict[str, Any]: ...

    def list_buckets(self) -> list[dict[str, Any]]: ...

    def add_table_column(
        self,
        table_id: str,
        name: str,
        definition: Optional[dict[str, Any]] = None,
        basetype: Optional[str] = None,
    ) -> None: ...

    def remove_table_primary_key(self, table_id: str) -> None: ...

    def create_table_primary_key(self, table_id: str, columns: list[str]) -> None: ...

    def create_table_definition(self, bucket_id: str, definition: dict[str, Any]) -> str: ...

    def post_bucket_metadata(self, bucket_id: str, provider: str, metadata: list[dict[str, str]]) -> None: ...

    def post_table_metadata(self, table_id: str, provider: str, metadata: list[dict[str, str]]) -> None: ...

    def post_column_metadata(self, column_id: str, provider: str, metadata: list[dict[str, str]]) -> None: ...

    def upload_file(self, path: str, options: dict[str, Any]) -> str: ...

    def upload_sliced_file(self, paths: list[str], options: dict[str, Any]) -> str: ...


class StorageApiClient:
    """
    httpx implementation of :class:`StorageClient`.

    All table and bucket paths are branch-scoped when ``branch_id`` is set
    (``/v2/storage/branch/<id>/...``); job paths are global.

    Attributes:
        url: Storage API base URL
        branch_id: Development branch id (None = default branch)
        job_timeout: Seconds to wait for a job before raising StorageApiError

    Example:
        >>> client = StorageApiClient("https://connection.example.com", "token")
        >>> job_id = client.write_table_async("out.c-main.orders", {"dataFileId": "42"})
        >>> client.wait_for_job(job_id)["status"]
        'success'
    """

    def __init__(
        self,
        url: str,
        token: str,
        branch_id: Optional[str] = None,
        job_timeout: int = 3600,
        max_retries: int = 5,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.branch_id = branch_id
        self.job_timeout = job_timeout
        self._client = httpx.Client(
            base_url=self.url,
            headers={"X-StorageApi-Token": token},
            timeout=60.0,
            transport=transport or httpx.HTTPTransport(retries=max_retries),
        )

    @classmethod
    def from_settings(
        cls,
        settings: StorageApiSettings,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> "StorageApiClient":
        """Create a client from StorageApiSettings."""
        return cls(
            settings.url,
            settings.token,
            branch_id=settings.branch_id,
            job_timeout=settings.job_timeout,
            max_retries=settings.max_retries,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "StorageApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Transport helpers
    # -------------------------------------------------------------------------

    def _path(self, path: str) -> str:
        if self.branch_id:
            return f"/v2/storage/branch/{self.branch_id}/{path}"
        return f"/v2/storage/{path}"

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """Send a request and decode the JSON body; raise StorageApiError on any failure."""
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise StorageApiError(f"{method} {path} failed: {exc}") from exc
        if response.is_error:
            message = response.text
            code = None
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                message = body.get("error", message)
                code = body.get("code")
            raise StorageApiError(message, code=code, status_code=response.status_code)
        if not response.content:
            return None
        return response.json()

    def _run_job(self, job: dict[str, Any]) -> dict[str, Any]:
        """Wait for a job started by a synchronous-looking call; raise if it failed."""
        finished = self.wait_for_job(str(job["id"]))
        if finished.get("status") == JOB_STATUS_ERROR:
            error = finished.get("error") or {}
            raise StorageApiError(
                error.get("message", "Storage job failed"),
                code=error.get("code"),
            )
        return finished

    # -------------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------------

    def create_table_async(self, bucket_id: str, name: str, options: dict[str, Any]) -> str:
        """Start a job creating table ``name`` in ``bucket_id`` and loading data into it."""
        job = self._request(
            "POST",
            self._path(f"buckets/{bucket_id}/tables-async"),
            json={"name": name, **options},
        )
        return str(job["id"])

    def write_table_async(self, table_id: str, options: dict[str, Any]) -> str:
        """Start a job loading data into the existing table ``table_id``."""
        job = self._request(
            "POST",
            self._path(f"tables/{table_id}/import-async"),
            json=options,
        )
        return str(job["id"])

    def wait_for_job(self, job_id: str) -> dict[str, Any]:
        """
        Block until the job reaches a terminal status.

        Polls with exponential backoff capped at 20 seconds.

        Returns:
            Job detail with ``status`` "success" or "error"

        Raises:
            StorageApiError: If the job does not finish within ``job_timeout``
        """
        deadline = time.monotonic() + self.job_timeout
        attempt = 0
        while True:
            job = self._request("GET", f"/v2/storage/jobs/{job_id}")
            if job.get("status") in _TERMINAL_JOB_STATUSES:
                return job
            if time.monotonic() >= deadline:
                raise StorageApiError(
                    f"Storage job {job_id} did not finish within {self.job_timeout} seconds",
                    code="storage.jobs.timeout",
                )
            interval = min(2 ** attempt * 0.5, _MAX_POLL_INTERVAL)
            logger.debug(f"Job {job_id} is {job.get('status')}, next poll in {interval}s")
            time.sleep(interval)
            attempt += 1

    # -------------------------------------------------------------------------
    # Tables
    # -------------------------------------------------------------------------

    def get_table(self, table_id: str) -> dict[str, Any]:
        return self._request(
            "GET",
            self._path(f"tables/{table_id}"),
            params={"include": "columns,metadata,columnMetadata"},
        )

    def table_exists(self, table_id: str) -> bool:
        try:
            self.get_table(table_id)
        except StorageApiError as exc:
            if exc.is_not_found:
                return False
            raise
        return True

    def add_table_column(
        self,
        table_id: str,
        name: str,
        definition: Optional[dict[str, Any]] = None,
        basetype: Optional[str] = None,
    ) -> None:
        payload: dict[str, Any] = {"name": name}
        if definition is not None:
            payload["definition"] = definition
        if basetype is not None:
            payload["basetype"] = basetype
        job = self._request("POST", self._path(f"tables/{table_id}/columns"), json=payload)
        self._run_job(job)

    def remove_table_primary_key(self, table_id: str) -> None:
        job = self._request("DELETE", self._path(f"tables/{table_id}/primary-key"))
        self._run_job(job)

    def create_table_primary_key(self, table_id: str, columns: list[str]) -> None:
        job = self._request(
            "POST",
            self._path(f"tables/{table_id}/primary-key"),
            json={"columns": columns},
        )
        self._run_job(job)

    def create_table_definition(self, bucket_id: str, definition: dict[str, Any]) -> str:
        """Create a typed table from a definition and return its id."""
        job = self._request(
            "POST",
            self._path(f"buckets/{bucket_id}/tables-definition"),
            json=definition,
        )
        finished = self._run_job(job)
        return str((finished.get("results") or {}).get("id") or finished.get("tableId"))

    # -------------------------------------------------------------------------
    # Buckets
    # -------------------------------------------------------------------------

    def get_bucket(self, bucket_id: str) -> Optional[dict[str, Any]]:
        """Return the bucket detail, or None if the bucket does not exist."""
        try:
            return self._request("GET", self._path(f"buckets/{bucket_id}"))
        except StorageApiError as exc:
            if exc.is_not_found:
                return None
            raise

    def bucket_exists(self, bucket_id: str) -> bool:
        return self.get_bucket(bucket_id) is not None

    def create_bucket(self, name: str, stage: str, backend: Optional[str] = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": name, "stage": stage}
        if backend:
            payload["backend"] = backend
        return self._request("POST", self._path("buckets"), json=payload)

    def list_buckets(self) -> list[dict[str, Any]]:
        return self._request("GET", self._path("buckets")) or []

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------

    def post_bucket_metadata(self, bucket_id: str, provider: str, metadata: list[dict[str, str]]) -> None:
        self._request(
            "POST",
            self._path(f"buckets/{bucket_id}/metadata"),
            json={"provider": provider, "metadata": metadata},
        )

    def post_table_metadata(self, table_id: str, provider: str, metadata: list[dict[str, str]]) -> None:
        self._request(
            "POST",
            self._path(f"tables/{table_id}/metadata"),
            json={"provider": provider, "metadata": metadata},
        )

    def post_column_metadata(self, column_id: str, provider: str, metadata: list[dict[str, str]]) -> None:
        self._request(
            "POST",
            self._path(f"columns/{column_id}/metadata"),
            json={"provider": provider, "metadata": metadata},
        )

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    def upload_file(self, path: str, options: dict[str, Any]) -> str:
        """Upload a single local file to file storage and return its file id."""
        file_path = Path(path)
        with open(file_path, "rb") as file_data:
            body = self._request(
                "POST",
                self._path("files/upload"),
                data={"name": file_path.name, **options},
                files={"file": (file_path.name, file_data)},
            )
        return str(body["id"])

    def upload_sliced_file(self, paths: list[str], options: dict[str, Any]) -> str:
        """Upload the parts of a sliced file under one file id."""
        prepared = self._request(
            "POST",
            self._path("files/prepare"),
            json={"isSliced": True, **options},
        )
        file_id = str(prepared["id"])
        for part in paths:
            part_path = Path(part)
            with open(part_path, "rb") as file_data:
                self._request(
                    "POST",
                    self._path(f"files/{file_id}/parts"),
                    files={"file": (part_path.name, file_data)},
                )
        return file_id
