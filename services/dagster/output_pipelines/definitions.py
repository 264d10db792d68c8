"""Dagster Definitions - Repository Configuration.

Defines jobs and resources for the Output Mapping Pipeline.
"""

from dagster import Definitions, EnvVar

from .jobs import upload_files_job, upload_tables_job
from .resources import MinIOResource, StorageApiResource


# =============================================================================
# Definitions
# =============================================================================

defs = Definitions(
    jobs=[
        upload_tables_job,
        upload_files_job,
    ],
    resources={
        "storage_api": StorageApiResource(
            url=EnvVar("STORAGE_API_URL"),
            token=EnvVar("STORAGE_API_TOKEN"),
            job_timeout=3600,
        ),
        "minio": MinIOResource(
            endpoint=EnvVar("MINIO_ENDPOINT"),
            access_key=EnvVar("MINIO_ROOT_USER"),
            secret_key=EnvVar("MINIO_ROOT_PASSWORD"),
            use_ssl=False,
            workspace_bucket="workspaces",
        ),
    },
    schedules=[],
    sensors=[],
)
